from __future__ import annotations

import re
from typing import Optional

from lxml import etree as LXML_ET

CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"

_WHITESPACE_RE = re.compile(r"\s+")


def tag_local_name(tag: object) -> str:
    if not tag or not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def tag_namespace(tag: object) -> str:
    if not isinstance(tag, str) or not tag.startswith("{"):
        return ""
    return tag[1:].split("}", 1)[0]


def xml_root_from_bytes(raw: bytes, *, recover: bool = False) -> LXML_ET._Element:
    """Parse ``raw`` without entity expansion or network access.

    Strict parsing raises ``XMLSyntaxError``. With ``recover`` lxml repairs what
    it can, and a document it cannot repair raises ``ValueError``.
    """
    parser = LXML_ET.XMLParser(resolve_entities=False, no_network=True, recover=recover)
    root = LXML_ET.fromstring(raw, parser=parser)
    if root is None:
        raise ValueError("Document has no root element")
    return root


def child_by_local_name(node: LXML_ET._Element, local_name: str) -> Optional[LXML_ET._Element]:
    for child in node:
        if tag_local_name(child.tag) == local_name:
            return child
    return None


def iter_children_by_local_name(node: LXML_ET._Element, local_name: str) -> list[LXML_ET._Element]:
    return [child for child in node if tag_local_name(child.tag) == local_name]


def iter_element_children(node: LXML_ET._Element) -> list[LXML_ET._Element]:
    # Comments and processing instructions carry a non-string tag.
    return [child for child in node if isinstance(child.tag, str)]


def local_attributes(node: LXML_ET._Element) -> dict[str, str]:
    """Attributes keyed by lower-cased local name; the first one wins on a clash."""
    attrs: dict[str, str] = {}
    for key, value in node.attrib.items():
        name = tag_local_name(key).strip().lower()
        if name and name not in attrs:
            attrs[name] = str(value)
    return attrs


def node_text(node: Optional[LXML_ET._Element]) -> Optional[str]:
    if node is None:
        return None
    text = "".join(node.itertext()).strip()
    return text or None


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()
