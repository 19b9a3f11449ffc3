"""Host USB bus and libvirt domain enumeration via external commands."""

from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

from .descriptor import decode_hostdevs
from .errors import EnumerationFailed
from .models import AttachedDeviceRecord, DeviceIdentity, HostDeviceRecord
from .runtime import LIBVIRT_URI, LSUSB_CMD, virsh_system_cmd
from .util import CmdError, CmdResult, run_cmd

log = logger

# Bus 001 Device 002: ID 046d:c548 Logitech, Inc. Logi Bolt Receiver
LSUSB_LINE_RE = re.compile(
    r'ID\s+([0-9a-fA-F]{4}):([0-9a-fA-F]{4})\s+(.+)'
)


def parse_lsusb(text: str) -> list[HostDeviceRecord]:
    devices: list[HostDeviceRecord] = []
    for line in (text or '').splitlines():
        m = LSUSB_LINE_RE.search(line)
        if m is None:
            continue
        ident = DeviceIdentity(m.group(1).lower(), m.group(2).lower())
        devices.append(HostDeviceRecord(ident, m.group(3).strip()))
    return devices


def parse_name_lines(text: str) -> list[str]:
    return [line.strip() for line in (text or '').splitlines() if line.strip()]


@dataclass
class HostEnumerator:
    """Runs lsusb/virsh and parses their output into records.

    Every call is independent; nothing is cached between calls.
    """

    libvirt_uri: str = LIBVIRT_URI
    use_sudo: bool = False
    timeout_s: float | None = 30.0

    def _run(self, cmd: list[str], what: str) -> CmdResult:
        try:
            return run_cmd(
                cmd,
                sudo=self.use_sudo,
                check=True,
                capture=True,
                timeout=self.timeout_s,
            )
        except CmdError as ex:
            detail = (ex.result.stderr or ex.result.stdout).strip()
            raise EnumerationFailed(
                f'Failed to {what} (code={ex.result.code}): {detail}'
            ) from ex
        except OSError as ex:
            raise EnumerationFailed(f'Failed to {what}: {ex}') from ex

    def virsh(self, *args: str) -> list[str]:
        return virsh_system_cmd(*args, uri=self.libvirt_uri)

    def list_host_devices(self) -> list[HostDeviceRecord]:
        res = self._run(list(LSUSB_CMD), 'list USB devices')
        devices = parse_lsusb(res.stdout)
        log.debug('Found {} host USB devices', len(devices))
        return devices

    def list_attached_devices(self, vm_name: str) -> list[AttachedDeviceRecord]:
        res = self._run(
            self.virsh('dumpxml', vm_name),
            f'get VM information for {vm_name}',
        )
        return [
            AttachedDeviceRecord(ident, vm_name)
            for ident in decode_hostdevs(res.stdout)
        ]

    def list_running_vms(self) -> list[str]:
        res = self._run(
            self.virsh('list', '--name', '--state-running'),
            'list running VMs',
        )
        return parse_name_lines(res.stdout)
