"""aiohttp application factory and blocking server entry point."""

from __future__ import annotations

from aiohttp import web
from loguru import logger

from ..config import ServiceConfig
from ..netpolicy import resolve_bind_addr
from .context import CONTEXT_KEY, ServiceContext
from .middleware import (
    error_handling_middleware,
    make_access_middleware,
    make_rate_limit_middleware,
    request_logging_middleware,
)
from .routes import setup_routes

log = logger


def create_app(
    ctx: ServiceContext,
    *,
    rate_limit: int = 20,
    rate_window_s: float = 60.0,
) -> web.Application:
    # Outermost first: the allow-list check runs before anything else.
    middlewares = [
        make_access_middleware(ctx.allowed),
        make_rate_limit_middleware(rate_limit, rate_window_s),
        request_logging_middleware,
        error_handling_middleware,
    ]
    app = web.Application(middlewares=middlewares)
    app[CONTEXT_KEY] = ctx
    setup_routes(app)

    async def _close_store(app: web.Application) -> None:
        app[CONTEXT_KEY].favorites.close()

    app.on_cleanup.append(_close_store)
    return app


def run_server(cfg: ServiceConfig) -> None:
    """Resolve policy and bind address, then serve until interrupted."""
    host, port = resolve_bind_addr(cfg)
    ctx = ServiceContext.from_config(cfg)
    app = create_app(
        ctx,
        rate_limit=cfg.server.rate_limit,
        rate_window_s=cfg.server.rate_window_s,
    )
    log.info('Starting server on {}:{}', host, port)
    web.run_app(app, host=host, port=port, print=None)
