"""Runtime helpers for constructing virsh and host command arguments."""

from __future__ import annotations

LIBVIRT_URI = 'qemu:///system'

LSUSB_CMD = ['lsusb']


def virsh_system_cmd(*args: str, uri: str = LIBVIRT_URI) -> list[str]:
    return ['virsh', '-c', uri or LIBVIRT_URI, *args]
