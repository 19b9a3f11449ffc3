"""
API middleware: client allow-list, rate limiting, request logging, and a
single JSON error envelope.

Every failure response has the shape::

    {"error": {"code": "...", "message": "...", "details": {...}}, "status": N}
"""

from __future__ import annotations

import time
import traceback
from typing import Awaitable, Callable

from aiohttp import web
from loguru import logger

from ..access import is_allowed
from ..errors import USBPassError
from ..netpolicy import AllowedNetworkSet

log = logger

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def create_error_response(
    code: str, message: str, status: int = 400, details: dict | None = None
) -> web.Response:
    error: dict = {'error': {'code': code, 'message': message}, 'status': status}
    if details:
        error['error']['details'] = details
    return web.json_response(error, status=status)


async def parse_json_body(request: web.Request) -> tuple[dict | None, web.Response | None]:
    """Returns (body, error_response)."""
    try:
        body = await request.json()
    except Exception:
        return None, create_error_response(
            'INVALID_BODY', 'Request body must be valid JSON', status=400
        )
    if not isinstance(body, dict) or not body:
        return None, create_error_response(
            'EMPTY_BODY', 'Request body must contain data', status=400
        )
    return body, None


def make_access_middleware(allowed: AllowedNetworkSet):
    """Reject any client outside ``allowed`` before routing."""

    @web.middleware
    async def access_filter_middleware(request: web.Request, handler: Handler):
        client = request.remote or ''
        if not is_allowed(client, allowed):
            log.warning('Blocked request from unauthorized address: {!r}', client)
            return create_error_response(
                'ACCESS_DENIED',
                'Access denied: your IP is not in the allowed networks',
                status=403,
            )
        return await handler(request)

    return access_filter_middleware


class FixedWindowLimiter:
    """Per-client request counts over fixed windows of ``window_s`` seconds.

    Expired windows are swept at most once per window, so the map only holds
    clients seen during the last window or two.
    """

    def __init__(self, limit: int, window_s: float):
        self.limit = limit
        self.window_s = window_s
        self._windows: dict[str, tuple[float, int]] = {}
        self._last_sweep: float | None = None

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        expired = [
            client
            for client, (start, _) in self._windows.items()
            if now - start >= self.window_s
        ]
        for client in expired:
            del self._windows[client]
        self._last_sweep = now

    def hit(self, client: str, now: float | None = None) -> bool:
        """Count one request; False once ``client`` is over the limit."""
        now = time.monotonic() if now is None else now
        if self._last_sweep is None:
            self._last_sweep = now
        elif now - self._last_sweep >= self.window_s:
            self._sweep(now)
        start, count = self._windows.get(client, (now, 0))
        if now - start >= self.window_s:
            start, count = now, 0
        count += 1
        self._windows[client] = (start, count)
        return count <= self.limit


def make_rate_limit_middleware(limit: int, window_s: float, prefix: str = '/api'):
    """Fixed-window request limit per client address on ``prefix`` routes."""
    limiter = FixedWindowLimiter(limit, window_s)

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler: Handler):
        if limit <= 0 or not request.path.startswith(prefix):
            return await handler(request)
        client = request.remote or ''
        if not limiter.hit(client):
            log.warning('Rate limit exceeded for IP: {}', client)
            return create_error_response(
                'RATE_LIMITED',
                'Rate limit exceeded. Please try again later.',
                status=429,
            )
        return await handler(request)

    return rate_limit_middleware


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Handler):
    start = time.perf_counter()
    response = await handler(request)
    log.debug(
        '{} {} -> {} ({:.1f} ms)',
        request.method,
        request.path,
        response.status,
        (time.perf_counter() - start) * 1000,
    )
    return response


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Handler):
    try:
        return await handler(request)
    except USBPassError as ex:
        if ex.status >= 500:
            log.error('{} {} failed: {}', request.method, request.path, ex)
        else:
            log.info('{} {} rejected: {}', request.method, request.path, ex)
        return create_error_response(ex.code, str(ex), ex.status, ex.details())
    except web.HTTPException as ex:
        if ex.status < 400:
            raise
        return create_error_response(
            ex.reason.upper().replace(' ', '_') if ex.reason else 'HTTP_ERROR',
            ex.text or str(ex),
            status=ex.status,
        )
    except Exception as ex:
        log.error('Unexpected error: {}\n{}', ex, traceback.format_exc())
        return create_error_response(
            'INTERNAL_ERROR',
            'An unexpected error occurred',
            status=500,
            details={'type': type(ex).__name__, 'message': str(ex)},
        )
