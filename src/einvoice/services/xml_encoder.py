from __future__ import annotations

import base64
import binascii

from lxml import etree


def serialize(root: etree._Element) -> bytes:
    """Serialise an element tree as pretty-printed UTF-8 with an XML declaration."""
    return etree.tostring(
        root,
        xml_declaration=True,
        encoding="utf-8",
        pretty_print=True,
    )


def encode_attachment(data: bytes) -> str:
    """Base64 encode an embedded attachment for AttachmentBinaryObject."""
    return base64.b64encode(data).decode("ascii")


def decode_attachment(text: str) -> bytes:
    """Decode AttachmentBinaryObject content. Whitespace and line breaks are ignored.

    Raises ValueError when the content is not valid Base64.
    """
    compact = "".join(text.split())
    try:
        return base64.b64decode(compact, validate=True)
    except binascii.Error as e:
        raise ValueError(str(e)) from None
