from __future__ import annotations

import ipaddress

import pytest

from usbpass.config import ServiceConfig
from usbpass.enumerate import HostEnumerator
from usbpass.errors import ConfigError
from usbpass.netpolicy import (
    AllowedNetworkSet,
    auto_detect_cidrs,
    default_route_interfaces,
    libvirt_network_subnets,
    netmask_to_prefix,
    network_xml_subnets,
    resolve_allowed_networks,
    resolve_bind_addr,
)
from usbpass.util import CmdResult

ROUTE_TABLE = """\
Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT
eth0\t00000000\t0102A8C0\t0003\t0\t0\t100\t00000000\t0\t0\t0
eth0\t0002A8C0\t00000000\t0001\t0\t0\t100\t00FFFFFF\t0\t0\t0
wlan0\t00000000\t0101A8C0\t0003\t0\t0\t600\t00000000\t0\t0\t0
eth0\t00000000\t0102A8C0\t0003\t0\t0\t200\t00000000\t0\t0\t0
"""

NET_XML_PREFIX = """
<network>
  <name>default</name>
  <bridge name="virbr0"/>
  <ip address="192.168.122.1" prefix="24">
    <dhcp><range start="192.168.122.2" end="192.168.122.254"/></dhcp>
  </ip>
  <ip family="ipv6" address="fd00::1" prefix="64"/>
</network>
"""

NET_XML_NETMASK = '<network><ip address="10.77.0.1" netmask="255.255.0.0"/></network>'
NET_XML_BARE = '<network><ip address="172.30.5.1"/></network>'


def test_from_cidrs_dedups_and_normalizes() -> None:
    allowed = AllowedNetworkSet.from_cidrs(
        ["192.168.1.7/24", "192.168.1.0/24", " ", "10.0.0.0/8"]
    )
    assert allowed.cidrs == ["192.168.1.0/24", "10.0.0.0/8"]
    assert allowed.contains(ipaddress.ip_address("10.1.2.3"))
    assert not allowed.contains(ipaddress.ip_address("172.16.0.1"))


def test_from_cidrs_rejects_garbage() -> None:
    with pytest.raises(ConfigError):
        AllowedNetworkSet.from_cidrs(["not-a-network"])


def test_default_route_interfaces(tmp_path) -> None:
    route = tmp_path / "route"
    route.write_text(ROUTE_TABLE)
    assert default_route_interfaces(route) == ["eth0", "wlan0"]


def test_default_route_interfaces_missing_file(tmp_path) -> None:
    assert default_route_interfaces(tmp_path / "missing") == []


def test_netmask_to_prefix() -> None:
    assert netmask_to_prefix("255.255.255.0") == 24
    assert netmask_to_prefix("255.255.0.0") == 16
    with pytest.raises(ValueError):
        netmask_to_prefix("255.0.255.0")


def test_network_xml_subnets() -> None:
    assert network_xml_subnets(NET_XML_PREFIX) == ["192.168.122.0/24"]
    assert network_xml_subnets(NET_XML_NETMASK) == ["10.77.0.0/16"]
    assert network_xml_subnets(NET_XML_BARE) == ["172.30.5.0/24"]


def _fake_virsh(monkeypatch, docs: dict[str, str], *, list_code=0):
    def fake_run_cmd(cmd, **kwargs):
        if "net-list" in cmd:
            return CmdResult(list_code, "\n".join(docs) + "\n", "" if list_code == 0 else "no libvirtd")
        name = cmd[-1]
        if name not in docs:
            return CmdResult(1, "", f"network {name} not found")
        return CmdResult(0, docs[name], "")

    monkeypatch.setattr("usbpass.netpolicy.run_cmd", fake_run_cmd)


def test_libvirt_network_subnets_skips_bad_networks(monkeypatch) -> None:
    _fake_virsh(
        monkeypatch,
        {"default": NET_XML_PREFIX, "broken": "<network>", "iso": NET_XML_NETMASK},
    )
    assert libvirt_network_subnets(HostEnumerator()) == [
        "192.168.122.0/24",
        "10.77.0.0/16",
    ]


def test_libvirt_network_subnets_list_failure(monkeypatch) -> None:
    _fake_virsh(monkeypatch, {}, list_code=1)
    assert libvirt_network_subnets(HostEnumerator()) == []


def test_auto_detect_includes_loopback_routes_and_libvirt(monkeypatch, tmp_path) -> None:
    route = tmp_path / "route"
    route.write_text(ROUTE_TABLE)
    subnets = {"eth0": "192.168.2.0/24", "wlan0": None}
    monkeypatch.setattr(
        "usbpass.netpolicy.interface_subnet", lambda iface, **kw: subnets[iface]
    )
    monkeypatch.setattr(
        "usbpass.netpolicy.libvirt_network_subnets",
        lambda enum: ["192.168.122.0/24", "192.168.2.0/24"],
    )
    cidrs = auto_detect_cidrs(HostEnumerator(), route_path=route)
    assert cidrs == ["127.0.0.0/8", "192.168.2.0/24", "192.168.122.0/24"]


def test_auto_detect_loopback_only(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr("usbpass.netpolicy.libvirt_network_subnets", lambda enum: [])
    cidrs = auto_detect_cidrs(HostEnumerator(), route_path=tmp_path / "missing")
    assert cidrs == ["127.0.0.0/8"]


def test_resolve_explicit_config_skips_detection(monkeypatch) -> None:
    def boom(*a, **k):
        raise AssertionError("auto detection should not run")

    monkeypatch.setattr("usbpass.netpolicy.auto_detect_cidrs", boom)
    cfg = ServiceConfig()
    cfg.security.allowed_networks = ["10.0.0.0/8", "192.168.1.0/24"]
    allowed = resolve_allowed_networks(cfg)
    assert allowed.source == "config"
    assert allowed.cidrs == ["10.0.0.0/8", "192.168.1.0/24"]


def test_resolve_auto(monkeypatch) -> None:
    monkeypatch.setattr(
        "usbpass.netpolicy.auto_detect_cidrs",
        lambda enum, **kw: ["127.0.0.0/8", "192.168.122.0/24"],
    )
    allowed = resolve_allowed_networks(ServiceConfig(), HostEnumerator())
    assert allowed.source == "auto"
    assert allowed.cidrs == ["127.0.0.0/8", "192.168.122.0/24"]


def test_resolve_bind_addr_default() -> None:
    cfg = ServiceConfig()
    cfg.server.port = 8080
    assert resolve_bind_addr(cfg) == ("0.0.0.0", 8080)


def test_resolve_bind_addr_interface(monkeypatch) -> None:
    monkeypatch.setattr("usbpass.netpolicy.list_interfaces", lambda: ["lo", "eth0"])
    monkeypatch.setattr("usbpass.netpolicy.which", lambda cmd: "/usr/sbin/ip")
    monkeypatch.setattr(
        "usbpass.netpolicy.run_cmd",
        lambda cmd, **kw: CmdResult(
            0,
            "2: eth0    inet 192.168.2.14/24 brd 192.168.2.255 scope global eth0\n",
            "",
        ),
    )
    cfg = ServiceConfig()
    cfg.server.interface = "eth0"
    assert resolve_bind_addr(cfg) == ("192.168.2.14", 3000)


def test_resolve_bind_addr_unknown_interface(monkeypatch) -> None:
    monkeypatch.setattr("usbpass.netpolicy.list_interfaces", lambda: ["lo", "eth0"])
    cfg = ServiceConfig()
    cfg.server.interface = "wg0"
    with pytest.raises(ConfigError, match="wg0 not found"):
        resolve_bind_addr(cfg)


def test_resolve_bind_addr_interface_without_ipv4(monkeypatch) -> None:
    monkeypatch.setattr("usbpass.netpolicy.list_interfaces", lambda: ["eth0"])
    monkeypatch.setattr("usbpass.netpolicy.which", lambda cmd: "/usr/sbin/ip")
    monkeypatch.setattr(
        "usbpass.netpolicy.run_cmd", lambda cmd, **kw: CmdResult(0, "", "")
    )
    cfg = ServiceConfig()
    cfg.server.interface = "eth0"
    with pytest.raises(ConfigError, match="No IPv4"):
        resolve_bind_addr(cfg)
