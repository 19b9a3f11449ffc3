from __future__ import annotations

import pytest

from usbpass.descriptor import decode_hostdevs, encode_hostdev, encode_identity
from usbpass.errors import InvalidIdentity, MalformedDocument
from usbpass.models import DeviceIdentity

DOMAIN_XML = """
<domain type="kvm">
  <name>win11</name>
  <devices>
    <disk type="file" device="disk"/>
    <hostdev mode="subsystem" type="usb" managed="yes">
      <source>
        <vendor id="0x046d"/>
        <product id="0xc548"/>
      </source>
    </hostdev>
    <hostdev mode="subsystem" type="pci" managed="yes">
      <source>
        <address domain="0x0000" bus="0x01" slot="0x00" function="0x0"/>
      </source>
    </hostdev>
    <hostdev mode="capabilities" type="usb">
      <source>
        <vendor id="0x05ac"/>
        <product id="0x12a8"/>
      </source>
    </hostdev>
    <hostdev mode="subsystem" type="usb">
      <source>
        <vendor id="0x1D6B"/>
        <product id=""/>
      </source>
    </hostdev>
    <hostdev mode="subsystem" type="usb">
      <source>
        <vendor id="0x0781"/>
        <product id="0x5583"/>
      </source>
    </hostdev>
  </devices>
</domain>
"""


def test_encode_hostdev_exact_text() -> None:
    xml = encode_hostdev("046d", "c548")
    assert xml == (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<hostdev mode="subsystem" type="usb">\n'
        "    <source>\n"
        '        <vendor id="0x046d" />\n'
        '        <product id="0xc548" />\n'
        "    </source>\n"
        "</hostdev>"
    )


def test_encode_normalizes_case_and_prefix() -> None:
    assert encode_hostdev("0x046D", " C548 ") == encode_hostdev("046d", "c548")


def test_encode_is_deterministic() -> None:
    ident = DeviceIdentity("0781", "5583")
    assert encode_identity(ident) == encode_identity(ident)


@pytest.mark.parametrize(
    "vid,pid",
    [("46d", "c548"), ("046d", "c5489"), ("zzzz", "c548"), ("", "c548")],
)
def test_encode_rejects_bad_identity(vid, pid) -> None:
    with pytest.raises(InvalidIdentity):
        encode_hostdev(vid, pid)


def test_decode_keeps_only_usb_subsystem_entries() -> None:
    found = decode_hostdevs(DOMAIN_XML)
    assert found == [DeviceIdentity("046d", "c548"), DeviceIdentity("0781", "5583")]


def test_decode_domain_without_devices() -> None:
    assert decode_hostdevs("<domain><name>x</name></domain>") == []


def test_decode_skips_non_subsystem_mode() -> None:
    found = decode_hostdevs(DOMAIN_XML)
    assert DeviceIdentity("05ac", "12a8") not in found


@pytest.mark.parametrize(
    "vid,pid,key",
    [
        ("1d6b", "0002", "1d6b:0002"),
        ("046D", "C548", "046d:c548"),
        ("0x046d", "0XC548", "046d:c548"),
        ("  0x0781 ", " 5583  ", "0781:5583"),
        ("0XaBcD", "0x00fF", "abcd:00ff"),
    ],
)
def test_encode_then_decode_gives_canonical_identity(vid, pid, key) -> None:
    found = decode_hostdevs(encode_hostdev(vid, pid))
    assert [ident.key for ident in found] == [key]


@pytest.mark.parametrize(
    "text", ["<domain><devices>", "not xml at all", "<network><name>x</name></network>"]
)
def test_decode_malformed(text) -> None:
    with pytest.raises(MalformedDocument):
        decode_hostdevs(text)
