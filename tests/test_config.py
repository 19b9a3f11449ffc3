"""Tests for config file loading, environment overrides, and persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from usbpass.config import (
    ServiceConfig,
    apply_env,
    dump_toml,
    load,
    load_effective,
    save,
    split_cidrs,
)
from usbpass.errors import ConfigError


def test_dump_load_roundtrip(tmp_path: Path) -> None:
    cfg = ServiceConfig()
    cfg.server.port = 8080
    cfg.server.interface = 'eth0'
    cfg.security.allowed_networks = ['10.0.0.0/8', '192.168.1.0/24']
    cfg.commands.use_sudo = True
    cfg.store.db_path = '/tmp/"quoted"/favorites.db'
    cfg.verbosity = 2
    fpath = tmp_path / 'config.toml'
    save(fpath, cfg)

    cfg2 = load(fpath)
    assert cfg2.server.port == 8080
    assert cfg2.server.interface == 'eth0'
    assert cfg2.security.allowed_networks == cfg.security.allowed_networks
    assert cfg2.commands.use_sudo is True
    assert cfg2.store.db_path == cfg.store.db_path
    assert cfg2.verbosity == 2


def test_dump_toml_verbosity_default_omitted() -> None:
    text = dump_toml(ServiceConfig())
    assert 'verbosity =' not in text
    assert '[server]' in text
    assert 'libvirt_uri = "qemu:///system"' in text


def test_load_missing_file_gives_defaults(tmp_path: Path) -> None:
    cfg = load(tmp_path / 'nope.toml')
    assert cfg.server.port == 3000
    assert cfg.security.allowed_networks == []


def test_load_invalid_toml(tmp_path: Path) -> None:
    fpath = tmp_path / 'config.toml'
    fpath.write_text('[server\nport = ', encoding='utf-8')
    with pytest.raises(ConfigError):
        load(fpath)


def test_load_accepts_comma_separated_networks(tmp_path: Path) -> None:
    fpath = tmp_path / 'config.toml'
    fpath.write_text(
        '[security]\nallowed_networks = "10.0.0.0/8, 192.168.1.0/24"\n',
        encoding='utf-8',
    )
    assert load(fpath).security.allowed_networks == [
        '10.0.0.0/8',
        '192.168.1.0/24',
    ]


def test_split_cidrs() -> None:
    assert split_cidrs(' 10.0.0.0/8,,192.168.1.0/24 ,') == [
        '10.0.0.0/8',
        '192.168.1.0/24',
    ]
    assert split_cidrs('') == []


def test_apply_env_overrides() -> None:
    cfg = apply_env(
        ServiceConfig(),
        {
            'ALLOWED_NETWORKS': '10.0.0.0/8,172.16.0.0/12',
            'BIND_PORT': '8443',
            'BIND_INTERFACE': 'eth1',
            'USBPASS_DB_PATH': '/var/lib/usbpass/fav.db',
            'LIBVIRT_DEFAULT_URI': 'qemu+ssh://host/system',
        },
    )
    assert cfg.security.allowed_networks == ['10.0.0.0/8', '172.16.0.0/12']
    assert cfg.server.port == 8443
    assert cfg.server.interface == 'eth1'
    assert cfg.store.db_path == '/var/lib/usbpass/fav.db'
    assert cfg.commands.libvirt_uri == 'qemu+ssh://host/system'


def test_apply_env_blank_values_ignored() -> None:
    cfg = apply_env(ServiceConfig(), {'ALLOWED_NETWORKS': '  ', 'BIND_PORT': ''})
    assert cfg.security.allowed_networks == []
    assert cfg.server.port == 3000


def test_apply_env_bad_port() -> None:
    with pytest.raises(ConfigError, match='BIND_PORT'):
        apply_env(ServiceConfig(), {'BIND_PORT': 'http'})


def test_load_effective_expands_db_path(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv('USBPASS_TEST_DIR', str(tmp_path))
    cfg = load_effective(
        tmp_path / 'missing.toml',
        {'USBPASS_DB_PATH': '$USBPASS_TEST_DIR/fav.db'},
    )
    assert cfg.store.db_path == str(tmp_path / 'fav.db')


def test_expanded_paths_default_db_path(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(
        'usbpass.config._appdir', lambda appname, kind: tmp_path / kind
    )
    cfg = ServiceConfig().expanded_paths()
    assert cfg.store.db_path == str(tmp_path / 'data' / 'favorites.db')


def test_dump_toml_verbosity_is_top_level(tmp_path: Path) -> None:
    cfg = ServiceConfig()
    cfg.verbosity = 0
    text = dump_toml(cfg)
    first_table = text.index('[server]')
    assert text.index('verbosity = 0') < first_table
    fpath = tmp_path / 'config.toml'
    save(fpath, cfg)
    assert load(fpath).verbosity == 0
