"""Concurrent assembly of the devices-state snapshot.

Three sources are queried at once and joined before composing:

* host USB devices (required: a failure fails the whole call)
* devices attached to the selected VM (optional enrichment)
* favorites (optional enrichment)

Each source lands in its own result slot so a failure in one can never mask
or overwrite the outcome of another. Enrichment failures are logged, replaced
by an empty list, and reported in ``DevicesStateSnapshot.degraded``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from .errors import EnumerationFailed, USBPassError
from .models import DevicesStateSnapshot, validate_vm_name

log = logger

HOST_SOURCE = 'devices'
ATTACHED_SOURCE = 'attachedDevices'
FAVORITES_SOURCE = 'favorites'


@dataclass
class SourceResult:
    name: str
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _fetch(
    name: str, func: Callable[..., Any], *args: Any, timeout_s: float | None
) -> SourceResult:
    try:
        value = await asyncio.wait_for(
            asyncio.to_thread(func, *args), timeout=timeout_s
        )
    except asyncio.TimeoutError:
        return SourceResult(
            name, error=EnumerationFailed(f'{name} timed out after {timeout_s}s')
        )
    except Exception as ex:
        return SourceResult(name, error=ex)
    return SourceResult(name, value=list(value or []))


def _degrade(slot: SourceResult, snapshot: DevicesStateSnapshot) -> list:
    if slot.ok:
        return slot.value
    log.warning('Failed to get {}; continuing without it: {}', slot.name, slot.error)
    snapshot.degraded[slot.name] = str(slot.error)
    return []


async def collect_devices_state(
    enumerator,
    favorites,
    vm_name: str = '',
    *,
    timeout_s: float | None = None,
) -> DevicesStateSnapshot:
    """Build one snapshot from the enumerator and favorites collaborators.

    Args:
        enumerator: provides ``list_host_devices()`` and
            ``list_attached_devices(vm_name)``.
        favorites: provides ``list_favorites()``.
        vm_name: optional VM whose attached devices are included. Its format
            is validated before any source is queried.
        timeout_s: bounded wait applied to each source.

    Raises:
        InvalidVMName: ``vm_name`` is given but malformed.
        EnumerationFailed: host device enumeration failed; no snapshot.
    """
    if vm_name:
        validate_vm_name(vm_name)

    fetches = [
        _fetch(HOST_SOURCE, enumerator.list_host_devices, timeout_s=timeout_s),
        _fetch(FAVORITES_SOURCE, favorites.list_favorites, timeout_s=timeout_s),
    ]
    if vm_name:
        fetches.append(
            _fetch(
                ATTACHED_SOURCE,
                enumerator.list_attached_devices,
                vm_name,
                timeout_s=timeout_s,
            )
        )
    slots = {slot.name: slot for slot in await asyncio.gather(*fetches)}

    host = slots[HOST_SOURCE]
    if not host.ok:
        log.error('Failed to load USB devices: {}', host.error)
        if isinstance(host.error, USBPassError):
            raise host.error
        raise EnumerationFailed(
            f'Failed to load USB devices: {host.error}'
        ) from host.error

    snapshot = DevicesStateSnapshot(devices=host.value, vm_name=vm_name or '')
    snapshot.favorites = _degrade(slots[FAVORITES_SOURCE], snapshot)
    if ATTACHED_SOURCE in slots:
        snapshot.attached_devices = _degrade(slots[ATTACHED_SOURCE], snapshot)
    return snapshot
