"""Encode/decode libvirt USB ``<hostdev>`` descriptors."""

from __future__ import annotations

import xml.etree.ElementTree as ET

from .errors import MalformedDocument
from .models import HEX_ID_RE, DeviceIdentity, normalize_hex_id

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def encode_hostdev(vendor_id: str, product_id: str) -> str:
    """Render a USB hostdev descriptor for ``virsh attach-device``.

    Raises InvalidIdentity unless both ids are 4 hex digits once normalized.
    Attribute order is fixed so identical input yields identical bytes.

    Example:
        >>> print(encode_hostdev('0x046D', 'c548'))
        <?xml version="1.0" encoding="UTF-8"?>
        <hostdev mode="subsystem" type="usb">
            <source>
                <vendor id="0x046d" />
                <product id="0xc548" />
            </source>
        </hostdev>
    """
    ident = DeviceIdentity.parse(vendor_id, product_id)
    root = ET.Element('hostdev', {'mode': 'subsystem', 'type': 'usb'})
    source = ET.SubElement(root, 'source')
    ET.SubElement(source, 'vendor', {'id': f'0x{ident.vendor_id}'})
    ET.SubElement(source, 'product', {'id': f'0x{ident.product_id}'})
    ET.indent(root, space='    ')
    return XML_DECLARATION + '\n' + ET.tostring(root, encoding='unicode')


def encode_identity(ident: DeviceIdentity) -> str:
    return encode_hostdev(ident.vendor_id, ident.product_id)


def _hostdev_identity(node: ET.Element) -> DeviceIdentity | None:
    if node.attrib.get('mode') != 'subsystem':
        return None
    if node.attrib.get('type') != 'usb':
        return None
    vendor = node.find('./source/vendor')
    product = node.find('./source/product')
    vid = normalize_hex_id(vendor.attrib.get('id', '') if vendor is not None else '')
    pid = normalize_hex_id(product.attrib.get('id', '') if product is not None else '')
    # Empty or odd ids are not USB passthrough entries we manage.
    if not HEX_ID_RE.match(vid) or not HEX_ID_RE.match(pid):
        return None
    return DeviceIdentity(vid, pid)


def decode_hostdevs(xml_text: str) -> list[DeviceIdentity]:
    """Return USB hostdev identities from a ``virsh dumpxml`` document.

    A bare ``<hostdev>`` fragment is accepted as well as a full ``<domain>``.
    Raises MalformedDocument only if the text is not well-formed XML or its
    root is neither of those.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as ex:
        raise MalformedDocument(f'Failed to parse VM XML: {ex}') from ex
    if root.tag == 'domain':
        nodes = root.findall('./devices/hostdev')
    elif root.tag == 'hostdev':
        nodes = [root]
    else:
        raise MalformedDocument(
            f'Failed to parse VM XML: expected <domain>, got <{root.tag}>'
        )
    found: list[DeviceIdentity] = []
    for node in nodes:
        ident = _hostdev_identity(node)
        if ident is not None:
            found.append(ident)
    return found
