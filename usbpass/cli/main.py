"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..errors import USBPassError
from ..web import run_server
from ._common import _BaseCommand, _load_cfg, log
from .config import ConfigModalCLI
from .devices import (
    AttachCLI,
    AttachedCLI,
    DetachCLI,
    DevicesCLI,
    StateCLI,
    VMsCLI,
)
from .favorites import FavoritesModalCLI
from .net import NetModalCLI


class ServeCLI(_BaseCommand):
    """Run the HTTP service until interrupted."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        run_server(_load_cfg(args.config))
        return 0


class USBPassModalCLI(scfg.ModalCLI):
    """Attach and detach host USB devices to running libvirt VMs."""

    serve = ServeCLI
    devices = DevicesCLI
    vms = VMsCLI
    attached = AttachedCLI
    attach = AttachCLI
    detach = DetachCLI
    state = StateCLI
    favorites = FavoritesModalCLI
    net = NetModalCLI
    config = ConfigModalCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    config_value = None
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    if '--config' in argv:
        try:
            config_value = argv[argv.index('--config') + 1]
        except IndexError:
            pass
    try:
        verbosity = _load_cfg(config_value).verbosity
    except USBPassError:
        verbosity = 1

    explicit_verbose = _count_verbose(argv)
    _setup_logging(explicit_verbose, verbosity)

    try:
        rc = USBPassModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled usbpass error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Normalize accepted aliases to scriptconfig command names."""
    if len(argv) >= 1 and argv[0] == 'init':
        return ['config', 'init', *argv[1:]]
    if len(argv) >= 1 and argv[0] in {'ls', 'list'}:
        return ['devices', *argv[1:]]
    if len(argv) >= 1 and argv[0] in {'fav', 'favs'}:
        return ['favorites', *argv[1:]]
    if len(argv) >= 2 and argv[0] == 'favorites' and argv[1] in {'rm', 'del'}:
        return [argv[0], 'remove', *argv[2:]]
    return argv


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
