"""Device records and the devices-state snapshot returned to callers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .errors import InvalidIdentity, InvalidVMName

HEX_ID_RE = re.compile(r'^[0-9a-f]{4}$')
VM_NAME_RE = re.compile(r'^[A-Za-z0-9_-]{1,64}$')


def validate_vm_name(vm_name: str) -> str:
    """Check the name format only; whether it is running is a live lookup."""
    name = vm_name or ''
    if not name.strip():
        raise InvalidVMName('VM name is required.')
    if not VM_NAME_RE.fullmatch(name):
        raise InvalidVMName(
            f'Invalid VM name {name!r}: use 1-64 of A-Z a-z 0-9 _ -.'
        )
    return name


def normalize_hex_id(raw: str) -> str:
    """Trim, lowercase, and strip an optional ``0x`` prefix."""
    ident = (raw or '').strip().lower()
    if ident.startswith('0x'):
        ident = ident[2:]
    return ident


@dataclass(frozen=True)
class DeviceIdentity:
    """A USB device class, in canonical form (lowercase, no prefix).

    Several physical devices may share one identity.
    """

    vendor_id: str
    product_id: str

    @classmethod
    def parse(cls, vendor_id: str, product_id: str) -> 'DeviceIdentity':
        vid = normalize_hex_id(vendor_id)
        pid = normalize_hex_id(product_id)
        if not HEX_ID_RE.match(vid) or not HEX_ID_RE.match(pid):
            raise InvalidIdentity(
                f'Invalid vendor or product ID format: {vendor_id!r}:{product_id!r} '
                '(expected 4 hex digits each).'
            )
        return cls(vid, pid)

    @classmethod
    def from_pair(cls, text: str) -> 'DeviceIdentity':
        """Parse ``VID:PID`` as printed by lsusb."""
        vid, sep, pid = (text or '').strip().partition(':')
        if not sep:
            raise InvalidIdentity(
                f'Expected VENDOR:PRODUCT (e.g. 046d:c548), got {text!r}.'
            )
        return cls.parse(vid, pid)

    @property
    def key(self) -> str:
        return f'{self.vendor_id}:{self.product_id}'

    def as_dict(self) -> dict[str, str]:
        return {'vendorId': self.vendor_id, 'productId': self.product_id}


@dataclass(frozen=True)
class HostDeviceRecord:
    identity: DeviceIdentity
    description: str = ''

    def as_dict(self) -> dict[str, str]:
        return {**self.identity.as_dict(), 'description': self.description}


@dataclass(frozen=True)
class AttachedDeviceRecord:
    identity: DeviceIdentity
    vm_name: str

    def as_dict(self) -> dict[str, str]:
        return self.identity.as_dict()


@dataclass(frozen=True)
class FavoriteRecord:
    id: int
    identity: DeviceIdentity
    description: str
    created_at: str

    def as_dict(self) -> dict:
        return {
            'id': self.id,
            **self.identity.as_dict(),
            'description': self.description,
            'createdAt': self.created_at,
        }


@dataclass
class DevicesStateSnapshot:
    devices: list[HostDeviceRecord] = field(default_factory=list)
    attached_devices: list[AttachedDeviceRecord] = field(default_factory=list)
    favorites: list[FavoriteRecord] = field(default_factory=list)
    # source name -> reason, for sources replaced by an empty list
    degraded: dict[str, str] = field(default_factory=dict)
    vm_name: str = ''

    def device_rows(self) -> list[dict]:
        """Host devices annotated with attached/favorite flags."""
        attached = {d.identity.key for d in self.attached_devices}
        favorite = {f.identity.key for f in self.favorites}
        rows = []
        for dev in self.devices:
            row = dev.as_dict()
            row['attached'] = dev.identity.key in attached
            row['favorite'] = dev.identity.key in favorite
            rows.append(row)
        return rows

    def as_dict(self) -> dict:
        return {
            'vmName': self.vm_name,
            'devices': [d.as_dict() for d in self.devices],
            'attachedDevices': [d.as_dict() for d in self.attached_devices],
            'favorites': [f.as_dict() for f in self.favorites],
            'rows': self.device_rows(),
            'degraded': dict(self.degraded),
        }
