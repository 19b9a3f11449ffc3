"""CLI commands for the favorites store."""

from __future__ import annotations

import scriptconfig as scfg

from ._common import (
    _BaseCommand,
    _device_line,
    _load_cfg,
    _open_favorites,
    _parse_device_arg,
)


class FavoritesListCLI(_BaseCommand):
    """List favorite devices, newest first."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        store = _open_favorites(_load_cfg(args.config))
        try:
            favorites = store.list_favorites()
        finally:
            store.close()
        print('Favorite devices')
        if not favorites:
            print('  (none)')
        for fav in favorites:
            print(_device_line(fav.identity.key, fav.description))
        return 0


class FavoritesAddCLI(_BaseCommand):
    """Add a device to favorites, or update its description."""

    device = scfg.Value('', position=1, help='Device as VENDOR:PRODUCT.')
    description = scfg.Value('', help='Free-text label.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ident = _parse_device_arg(args.device)
        store = _open_favorites(_load_cfg(args.config))
        try:
            store.add_favorite(ident, str(args.description or ''))
        finally:
            store.close()
        print(f'✅ Saved favorite {ident.key}')
        return 0


class FavoritesRemoveCLI(_BaseCommand):
    """Remove a device from favorites."""

    device = scfg.Value('', position=1, help='Device as VENDOR:PRODUCT.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ident = _parse_device_arg(args.device)
        store = _open_favorites(_load_cfg(args.config))
        try:
            removed = store.remove_favorite(ident)
        finally:
            store.close()
        if not removed:
            print(f'➖ {ident.key} was not a favorite')
            return 1
        print(f'✅ Removed favorite {ident.key}')
        return 0


class FavoritesModalCLI(scfg.ModalCLI):
    """Favorite device subcommands."""

    list = FavoritesListCLI
    add = FavoritesAddCLI
    remove = FavoritesRemoveCLI
