"""Collaborators shared by all request handlers."""

from __future__ import annotations

from dataclasses import dataclass

from aiohttp import web

from ..config import ServiceConfig
from ..enumerate import HostEnumerator
from ..favorites import FavoritesStore
from ..netpolicy import AllowedNetworkSet, resolve_allowed_networks
from ..passthrough import PassthroughOrchestrator


@dataclass
class ServiceContext:
    enumerator: HostEnumerator
    favorites: FavoritesStore
    orchestrator: PassthroughOrchestrator
    allowed: AllowedNetworkSet
    source_timeout_s: float | None = None

    @classmethod
    def from_config(cls, cfg: ServiceConfig) -> 'ServiceContext':
        enumerator = HostEnumerator(
            libvirt_uri=cfg.commands.libvirt_uri,
            use_sudo=cfg.commands.use_sudo,
            timeout_s=cfg.commands.timeout_s,
        )
        favorites = FavoritesStore(
            cfg.store.db_path, timeout_s=cfg.store.timeout_s
        )
        return cls(
            enumerator=enumerator,
            favorites=favorites,
            orchestrator=PassthroughOrchestrator(enumerator),
            allowed=resolve_allowed_networks(cfg, enumerator),
            # outer bound; the per-command timeout normally fires first
            source_timeout_s=cfg.commands.timeout_s + 5,
        )


CONTEXT_KEY = web.AppKey('context', ServiceContext)
