"""CLI commands for the service config file."""

from __future__ import annotations

import sys

import scriptconfig as scfg

from ..config import ServiceConfig, dump_toml, save
from ._common import _BaseCommand, _cfg_path, _load_cfg


class ConfigShowCLI(_BaseCommand):
    """Show the effective config (file + environment overrides)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        print(f'# {_cfg_path(args.config)}')
        print(dump_toml(_load_cfg(args.config)), end='')
        return 0


class ConfigInitCLI(_BaseCommand):
    """Write a default config file."""

    force = scfg.Value(
        False, isflag=True, help='Overwrite an existing config file.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        save(path, ServiceConfig())
        print(f'Wrote config: {path}')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file subcommands."""

    show = ConfigShowCLI
    init = ConfigInitCLI
