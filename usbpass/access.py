"""Allow-list check of a client address against the resolved networks."""

from __future__ import annotations

import ipaddress

from .netpolicy import AllowedNetworkSet

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def parse_client_address(raw: str) -> IPAddress | None:
    """Parse ``ip``, ``ip:port``, ``[v6]`` or ``[v6]:port``; None if invalid."""
    text = (raw or '').strip()
    if not text:
        return None
    if text.startswith('['):
        host, sep, _ = text[1:].partition(']')
        text = host if sep else ''
    elif text.count(':') == 1:
        text = text.split(':', 1)[0]
    try:
        addr = ipaddress.ip_address(text)
    except ValueError:
        return None
    # dual-stack sockets report IPv4 peers as ::ffff:a.b.c.d
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def is_allowed(client_address: str, allowed: AllowedNetworkSet) -> bool:
    addr = parse_client_address(client_address)
    if addr is None:
        return False
    return allowed.contains(addr)
