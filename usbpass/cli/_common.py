from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import ServiceConfig, config_path, load_effective
from ..enumerate import HostEnumerator
from ..favorites import FavoritesStore
from ..models import DeviceIdentity

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help='Path to config TOML (default: per-user config dir).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _cfg_path(p: str | None) -> Path:
    return Path(p).expanduser().resolve() if p else config_path()


def _load_cfg(config_path_opt: str | None) -> ServiceConfig:
    return load_effective(_cfg_path(config_path_opt))


def _make_enumerator(cfg: ServiceConfig) -> HostEnumerator:
    return HostEnumerator(
        libvirt_uri=cfg.commands.libvirt_uri,
        use_sudo=cfg.commands.use_sudo,
        timeout_s=cfg.commands.timeout_s,
    )


def _open_favorites(cfg: ServiceConfig) -> FavoritesStore:
    return FavoritesStore(cfg.store.db_path, timeout_s=cfg.store.timeout_s)


def _parse_device_arg(text: str) -> DeviceIdentity:
    return DeviceIdentity.from_pair(str(text or ''))


def _device_line(key: str, description: str = '', *marks: str) -> str:
    flags = ' '.join(m for m in marks if m)
    suffix = f'  [{flags}]' if flags else ''
    desc = f'  {description}' if description else ''
    return f'  - {key}{desc}{suffix}'
