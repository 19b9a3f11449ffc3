"""Service configuration: TOML file, environment overrides, and defaults."""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Mapping

import ubelt as ub

from .errors import ConfigError
from .runtime import LIBVIRT_URI
from .util import expand

APPNAME = 'usbpass'
SECTIONS = ('server', 'security', 'commands', 'store')


@dataclass
class ServerConfig:
    host: str = '0.0.0.0'
    port: int = 3000
    interface: str = ''
    rate_limit: int = 20
    rate_window_s: int = 60


@dataclass
class SecurityConfig:
    # empty means auto-detect from routes and libvirt networks
    allowed_networks: list[str] = field(default_factory=list)


@dataclass
class CommandConfig:
    libvirt_uri: str = LIBVIRT_URI
    use_sudo: bool = False
    timeout_s: float = 30.0


@dataclass
class StoreConfig:
    db_path: str = ''
    timeout_s: float = 5.0


@dataclass
class ServiceConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    commands: CommandConfig = field(default_factory=CommandConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'ServiceConfig':
        if self.store.db_path:
            self.store.db_path = expand(self.store.db_path)
        else:
            self.store.db_path = str(_appdir(APPNAME, 'data') / 'favorites.db')
        return self


def _appdir(appname: str, kind: str) -> Path:
    p = ub.Path.appdir(appname, type=kind).ensuredir()
    return Path(p)


def config_path() -> Path:
    return _appdir(APPNAME, 'config') / 'config.toml'


def split_cidrs(text: str) -> list[str]:
    return [part.strip() for part in (text or '').split(',') if part.strip()]


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: ServiceConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    # top-level keys must precede the first table header
    if cfg.verbosity != 1:
        lines.append(f'verbosity = {cfg.verbosity}')
        lines.append('')
    for section, body in d.items():
        if isinstance(body, dict):
            lines.append(f'[{section}]')
            for k, v in body.items():
                if isinstance(v, bool):
                    lines.append(f'{k} = {"true" if v else "false"}')
                elif isinstance(v, (int, float)):
                    lines.append(f'{k} = {v}')
                elif isinstance(v, list):
                    parts = [f'"{_toml_escape(str(item))}"' for item in v]
                    lines.append(f'{k} = [{", ".join(parts)}]')
                else:
                    lines.append(f'{k} = "{_toml_escape(str(v))}"')
            lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path | None = None) -> ServiceConfig:
    fpath = path or config_path()
    cfg = ServiceConfig()
    if not fpath.exists():
        return cfg
    try:
        raw = tomllib.loads(fpath.read_text(encoding='utf-8'))
    except tomllib.TOMLDecodeError as ex:
        raise ConfigError(f'Invalid config file {fpath}: {ex}') from ex
    for section in SECTIONS:
        if section in raw and isinstance(raw[section], dict):
            obj = getattr(cfg, section)
            for k, v in raw[section].items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    if isinstance(cfg.security.allowed_networks, str):
        cfg.security.allowed_networks = split_cidrs(
            cfg.security.allowed_networks
        )
    return cfg


def apply_env(
    cfg: ServiceConfig, environ: Mapping[str, str] | None = None
) -> ServiceConfig:
    env = os.environ if environ is None else environ
    if env.get('ALLOWED_NETWORKS', '').strip():
        cfg.security.allowed_networks = split_cidrs(env['ALLOWED_NETWORKS'])
    if env.get('BIND_HOST', '').strip():
        cfg.server.host = env['BIND_HOST'].strip()
    if env.get('BIND_PORT', '').strip():
        try:
            cfg.server.port = int(env['BIND_PORT'])
        except ValueError as ex:
            raise ConfigError(
                f'BIND_PORT must be an integer, got {env["BIND_PORT"]!r}'
            ) from ex
    if env.get('BIND_INTERFACE', '').strip():
        cfg.server.interface = env['BIND_INTERFACE'].strip()
    if env.get('USBPASS_DB_PATH', '').strip():
        cfg.store.db_path = env['USBPASS_DB_PATH'].strip()
    if env.get('LIBVIRT_DEFAULT_URI', '').strip():
        cfg.commands.libvirt_uri = env['LIBVIRT_DEFAULT_URI'].strip()
    return cfg


def load_effective(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> ServiceConfig:
    return apply_env(load(path), environ).expanded_paths()


def save(path: Path, cfg: ServiceConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(cfg), encoding='utf-8')
