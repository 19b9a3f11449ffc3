"""HTTP routes for USB devices, VMs, passthrough, device state, and favorites."""

from __future__ import annotations

import asyncio

from aiohttp import web

from ..models import DeviceIdentity, validate_vm_name
from ..passthrough import Operation
from ..state import collect_devices_state
from .context import CONTEXT_KEY, ServiceContext
from .middleware import create_error_response, parse_json_body


def setup_routes(app: web.Application) -> None:
    app.router.add_get('/api/usb-devices', list_usb_devices_handler)
    app.router.add_get('/api/vms', list_vms_handler)
    app.router.add_get('/api/vms/{vmName}/devices', attached_devices_handler)
    app.router.add_post('/api/vms/{vmName}/attach', attach_handler)
    app.router.add_post('/api/vms/{vmName}/detach', detach_handler)
    app.router.add_get('/api/devices-state', devices_state_handler)
    app.router.add_get('/api/favorites', list_favorites_handler)
    app.router.add_post('/api/favorites', add_favorite_handler)
    app.router.add_delete('/api/favorites', remove_favorite_handler)


def _ctx(request: web.Request) -> ServiceContext:
    return request.app[CONTEXT_KEY]


def _require_ids(body: dict) -> web.Response | None:
    if not str(body.get('vendorId') or '').strip() or not str(
        body.get('productId') or ''
    ).strip():
        return create_error_response(
            'MISSING_FIELD', 'vendorId and productId are required', status=400
        )
    return None


async def list_usb_devices_handler(request: web.Request) -> web.Response:
    """GET /api/usb-devices"""
    devices = await asyncio.to_thread(_ctx(request).enumerator.list_host_devices)
    return web.json_response({'devices': [d.as_dict() for d in devices]})


async def list_vms_handler(request: web.Request) -> web.Response:
    """GET /api/vms - running VMs only."""
    names = await asyncio.to_thread(_ctx(request).enumerator.list_running_vms)
    return web.json_response({'vms': [{'name': n} for n in names]})


async def attached_devices_handler(request: web.Request) -> web.Response:
    """GET /api/vms/{vmName}/devices"""
    vm_name = validate_vm_name(request.match_info.get('vmName', ''))
    devices = await asyncio.to_thread(
        _ctx(request).enumerator.list_attached_devices, vm_name
    )
    return web.json_response({'devices': [d.as_dict() for d in devices]})


async def _passthrough(request: web.Request, operation: Operation) -> web.Response:
    body, err = await parse_json_body(request)
    if err:
        return err
    err = _require_ids(body)
    if err:
        return err
    result = await asyncio.to_thread(
        _ctx(request).orchestrator.run,
        operation,
        request.match_info.get('vmName', ''),
        str(body['vendorId']),
        str(body['productId']),
    )
    return web.json_response(result.as_dict())


async def attach_handler(request: web.Request) -> web.Response:
    """POST /api/vms/{vmName}/attach"""
    return await _passthrough(request, Operation.ATTACH)


async def detach_handler(request: web.Request) -> web.Response:
    """POST /api/vms/{vmName}/detach"""
    return await _passthrough(request, Operation.DETACH)


async def devices_state_handler(request: web.Request) -> web.Response:
    """GET /api/devices-state?vmName="""
    ctx = _ctx(request)
    snapshot = await collect_devices_state(
        ctx.enumerator,
        ctx.favorites,
        request.query.get('vmName', ''),
        timeout_s=ctx.source_timeout_s,
    )
    return web.json_response(snapshot.as_dict())


async def list_favorites_handler(request: web.Request) -> web.Response:
    """GET /api/favorites"""
    favorites = await asyncio.to_thread(_ctx(request).favorites.list_favorites)
    return web.json_response({'favorites': [f.as_dict() for f in favorites]})


async def add_favorite_handler(request: web.Request) -> web.Response:
    """POST /api/favorites - upsert by (vendorId, productId)."""
    body, err = await parse_json_body(request)
    if err:
        return err
    err = _require_ids(body)
    if err:
        return err
    ident = DeviceIdentity.parse(str(body['vendorId']), str(body['productId']))
    description = str(body.get('description') or '')
    await asyncio.to_thread(_ctx(request).favorites.add_favorite, ident, description)
    return web.json_response(
        {'success': True, 'message': 'Device added to favorites'}
    )


async def remove_favorite_handler(request: web.Request) -> web.Response:
    """DELETE /api/favorites"""
    body, err = await parse_json_body(request)
    if err:
        return err
    err = _require_ids(body)
    if err:
        return err
    ident = DeviceIdentity.parse(str(body['vendorId']), str(body['productId']))
    await asyncio.to_thread(_ctx(request).favorites.remove_favorite, ident)
    return web.json_response(
        {'success': True, 'message': 'Device removed from favorites'}
    )
