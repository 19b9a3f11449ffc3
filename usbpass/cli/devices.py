"""CLI commands for USB devices, running VMs, and attach/detach."""

from __future__ import annotations

import asyncio

import scriptconfig as scfg

from ..models import validate_vm_name
from ..passthrough import Operation, PassthroughOrchestrator
from ..state import collect_devices_state
from ._common import (
    _BaseCommand,
    _device_line,
    _load_cfg,
    _make_enumerator,
    _open_favorites,
)


class DevicesCLI(_BaseCommand):
    """List USB devices visible on the host."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        devices = _make_enumerator(cfg).list_host_devices()
        print('Host USB devices')
        if not devices:
            print('  (none)')
        for dev in devices:
            print(_device_line(dev.identity.key, dev.description))
        return 0


class VMsCLI(_BaseCommand):
    """List running libvirt VMs."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        names = _make_enumerator(cfg).list_running_vms()
        print('Running VMs')
        if not names:
            print('  (none)')
        for name in names:
            print(f'  - {name}')
        return 0


class AttachedCLI(_BaseCommand):
    """List USB devices attached to a VM."""

    vm = scfg.Value('', position=1, help='VM name.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        vm_name = validate_vm_name(args.vm)
        attached = _make_enumerator(cfg).list_attached_devices(vm_name)
        print(f'USB devices attached to {args.vm}')
        if not attached:
            print('  (none)')
        for dev in attached:
            print(_device_line(dev.identity.key))
        return 0


class _PassthroughCommand(_BaseCommand):
    vm = scfg.Value('', position=1, help='Running VM name.')
    device = scfg.Value('', position=2, help='Device as VENDOR:PRODUCT.')


def _run_passthrough(args, operation: Operation) -> int:
    cfg = _load_cfg(args.config)
    vid, _, pid = str(args.device or '').partition(':')
    orchestrator = PassthroughOrchestrator(_make_enumerator(cfg))
    result = orchestrator.run(operation, args.vm, vid, pid)
    print(f'✅ {result.message}')
    return 0


class AttachCLI(_PassthroughCommand):
    """Live-attach a host USB device to a running VM."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        return _run_passthrough(args, Operation.ATTACH)


class DetachCLI(_PassthroughCommand):
    """Live-detach a host USB device from a running VM."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        return _run_passthrough(args, Operation.DETACH)


class StateCLI(_BaseCommand):
    """Show host devices with attached/favorite markers for one VM."""

    vm = scfg.Value('', help='Optional VM whose attachments are shown.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        favorites = _open_favorites(cfg)
        try:
            snapshot = asyncio.run(
                collect_devices_state(
                    _make_enumerator(cfg),
                    favorites,
                    str(args.vm or '').strip(),
                    timeout_s=cfg.commands.timeout_s + 5,
                )
            )
        finally:
            favorites.close()
        header = f'USB devices (vm={snapshot.vm_name})' if snapshot.vm_name else 'USB devices'
        print(header)
        if not snapshot.devices:
            print('  (none)')
        for row in snapshot.device_rows():
            print(
                _device_line(
                    f"{row['vendorId']}:{row['productId']}",
                    row['description'],
                    'attached' if row['attached'] else '',
                    'favorite' if row['favorite'] else '',
                )
            )
        for source, reason in sorted(snapshot.degraded.items()):
            print(f'➖ {source} unavailable: {reason}')
        return 0

