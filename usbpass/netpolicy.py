"""Resolve which client networks may reach the service.

Either the configured CIDR list is used as given, or the set is detected
from the host: loopback, the subnet of every default-route interface, and the
subnet of every active libvirt network.
"""

from __future__ import annotations

import ipaddress
import re
import socket
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .config import ServiceConfig
from .enumerate import HostEnumerator, parse_name_lines
from .errors import ConfigError
from .util import run_cmd, which

log = logger

LOOPBACK_CIDR = '127.0.0.0/8'
PROC_NET_ROUTE = Path('/proc/net/route')
DEFAULT_PREFIX = 24

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass(frozen=True)
class AllowedNetworkSet:
    networks: tuple[IPNetwork, ...]
    source: str = 'config'

    @classmethod
    def from_cidrs(cls, cidrs: list[str], source: str = 'config') -> 'AllowedNetworkSet':
        nets: list[IPNetwork] = []
        for raw in cidrs:
            text = raw.strip()
            if not text:
                continue
            try:
                net = ipaddress.ip_network(text, strict=False)
            except ValueError as ex:
                raise ConfigError(f'Invalid allowed network {text!r}: {ex}') from ex
            if net not in nets:
                nets.append(net)
        return cls(tuple(nets), source)

    @property
    def cidrs(self) -> list[str]:
        return [str(n) for n in self.networks]

    def contains(self, addr: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
        return any(addr in net for net in self.networks)


def default_route_interfaces(route_path: Path = PROC_NET_ROUTE) -> list[str]:
    try:
        text = route_path.read_text(encoding='utf-8')
    except OSError as ex:
        log.warning('Could not read routing table {}: {}', route_path, ex)
        return []
    ifaces: list[str] = []
    for line in text.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 2:
            continue
        iface, destination = fields[0], fields[1]
        if destination == '00000000' and iface not in ifaces:
            log.info('Found default route on interface {}', iface)
            ifaces.append(iface)
    return ifaces


def _interface_ipv4(iface: str, *, timeout_s: float | None = None):
    if which('ip') is None:
        log.warning('ip command not found; cannot inspect interface {}', iface)
        return None
    try:
        res = run_cmd(
            ['ip', '-o', '-4', 'addr', 'show', 'dev', iface],
            check=False,
            capture=True,
            timeout=timeout_s,
        )
    except OSError as ex:
        log.warning('Failed to inspect interface {}: {}', iface, ex)
        return None
    if res.code != 0:
        return None
    m = re.search(r'\binet\s+(\S+)', res.stdout)
    if m is None:
        return None
    try:
        return ipaddress.ip_interface(m.group(1))
    except ValueError:
        return None


def interface_subnet(iface: str, *, timeout_s: float | None = None) -> str | None:
    addr = _interface_ipv4(iface, timeout_s=timeout_s)
    return str(addr.network) if addr is not None else None


def interface_ip(iface: str, *, timeout_s: float | None = None) -> str | None:
    addr = _interface_ipv4(iface, timeout_s=timeout_s)
    return str(addr.ip) if addr is not None else None


def list_interfaces() -> list[str]:
    try:
        return [name for _, name in socket.if_nameindex()]
    except OSError:
        return []


def netmask_to_prefix(netmask: str) -> int:
    try:
        return ipaddress.IPv4Network(f'0.0.0.0/{netmask.strip()}').prefixlen
    except ValueError as ex:
        raise ValueError(f'invalid netmask: {netmask}') from ex


def network_xml_subnets(xml_text: str, net_name: str = '') -> list[str]:
    """IPv4 subnets declared by the ``<ip>`` elements of a network XML."""
    root = ET.fromstring(xml_text)
    subnets: list[str] = []
    for ip_node in root.findall('./ip'):
        if ip_node.attrib.get('family', 'ipv4') != 'ipv4':
            continue
        address = ip_node.attrib.get('address', '').strip()
        if not address:
            continue
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            continue
        if ip.version != 4:
            continue
        prefix_raw = ip_node.attrib.get('prefix', '').strip()
        netmask = ip_node.attrib.get('netmask', '').strip()
        try:
            if prefix_raw:
                prefix = int(prefix_raw)
            elif netmask:
                prefix = netmask_to_prefix(netmask)
            else:
                prefix = DEFAULT_PREFIX
            net = ipaddress.ip_network(f'{address}/{prefix}', strict=False)
        except ValueError as ex:
            log.warning('Invalid netmask for libvirt network {}: {}', net_name, ex)
            continue
        subnets.append(str(net))
    return subnets


def libvirt_network_subnets(enumerator: HostEnumerator) -> list[str]:
    def _virsh(*args: str):
        return run_cmd(
            enumerator.virsh(*args),
            sudo=enumerator.use_sudo,
            check=False,
            capture=True,
            timeout=enumerator.timeout_s,
        )

    try:
        listing = _virsh('net-list', '--name')
    except OSError as ex:
        log.warning('Could not list libvirt networks: {}', ex)
        return []
    if listing.code != 0:
        log.warning(
            'Could not list libvirt networks: {}', listing.stderr.strip()
        )
        return []
    subnets: list[str] = []
    for net_name in parse_name_lines(listing.stdout):
        dump = _virsh('net-dumpxml', net_name)
        if dump.code != 0:
            log.warning(
                'Could not get XML for libvirt network {}: {}',
                net_name,
                dump.stderr.strip(),
            )
            continue
        try:
            found = network_xml_subnets(dump.stdout, net_name)
        except ET.ParseError as ex:
            log.warning(
                'Could not parse XML for libvirt network {}: {}', net_name, ex
            )
            continue
        for subnet in found:
            log.info(
                'Auto-allowing subnet {} from libvirt network {}', subnet, net_name
            )
        subnets.extend(found)
    return subnets


def auto_detect_cidrs(
    enumerator: HostEnumerator, *, route_path: Path = PROC_NET_ROUTE
) -> list[str]:
    cidrs = [LOOPBACK_CIDR]
    for iface in default_route_interfaces(route_path):
        subnet = interface_subnet(iface, timeout_s=enumerator.timeout_s)
        if subnet is None:
            log.warning('No IPv4 address on interface {}; skipping', iface)
            continue
        if subnet not in cidrs:
            log.info(
                'Auto-allowing subnet {} from default-route interface {}',
                subnet,
                iface,
            )
            cidrs.append(subnet)
    for subnet in libvirt_network_subnets(enumerator):
        if subnet not in cidrs:
            cidrs.append(subnet)
    if len(cidrs) == 1:
        log.warning(
            'No default route interfaces or libvirt networks found; '
            'only localhost will be allowed'
        )
    return cidrs


def resolve_allowed_networks(
    cfg: ServiceConfig,
    enumerator: HostEnumerator | None = None,
    *,
    route_path: Path = PROC_NET_ROUTE,
) -> AllowedNetworkSet:
    """Build the allow-list once; raises ConfigError on a bad explicit CIDR."""
    explicit = [c for c in cfg.security.allowed_networks if c.strip()]
    if explicit:
        allowed = AllowedNetworkSet.from_cidrs(explicit, source='config')
    else:
        if enumerator is None:
            enumerator = HostEnumerator(
                libvirt_uri=cfg.commands.libvirt_uri,
                use_sudo=cfg.commands.use_sudo,
                timeout_s=cfg.commands.timeout_s,
            )
        cidrs = auto_detect_cidrs(enumerator, route_path=route_path)
        allowed = AllowedNetworkSet.from_cidrs(cidrs, source='auto')
    log.info(
        'IP filter initialized ({}) with allowed networks: {}',
        allowed.source,
        ','.join(allowed.cidrs),
    )
    return allowed


def resolve_bind_addr(cfg: ServiceConfig) -> tuple[str, int]:
    port = int(cfg.server.port)
    iface = cfg.server.interface.strip()
    if not iface:
        log.info('Binding to {}:{}', cfg.server.host, port)
        return cfg.server.host, port
    available = list_interfaces()
    if available and iface not in available:
        raise ConfigError(
            f'Interface {iface} not found. Available interfaces: {available}'
        )
    ip = interface_ip(iface, timeout_s=cfg.commands.timeout_s)
    if ip is None:
        raise ConfigError(
            f'No IPv4 address found for interface {iface}. '
            f'Available interfaces: {available}'
        )
    log.info('Binding to interface {} ({}:{})', iface, ip, port)
    return ip, port
