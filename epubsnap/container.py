from __future__ import annotations

from lxml import etree as LXML_ET

from .archive import Archive, canonical_member
from .errors import ContainerInvalid, ContainerMissing
from .xmltools import CONTAINER_NS, tag_local_name, tag_namespace, xml_root_from_bytes

CONTAINER_PATH = "META-INF/container.xml"


def resolve_package_path(archive: Archive) -> str:
    """Read ``META-INF/container.xml`` and return the package document path."""
    raw = archive.get(CONTAINER_PATH)
    if raw is None:
        raise ContainerMissing(f"Parsing error: {CONTAINER_PATH} file not found in archive.")
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    try:
        root = xml_root_from_bytes(raw)
    except (LXML_ET.XMLSyntaxError, ValueError) as exc:
        raise ContainerInvalid(f"Parsing error: {CONTAINER_PATH} file content is not a valid XML.") from exc
    if tag_local_name(root.tag) != "container" or tag_namespace(root.tag) != CONTAINER_NS:
        raise ContainerInvalid(f"Parsing error: {CONTAINER_PATH} has no container root element.")

    for node in root.iter():
        if tag_local_name(node.tag) != "rootfile":
            continue
        full_path = canonical_member(node.attrib.get("full-path") or "")
        if not full_path:
            raise ContainerInvalid(f"Parsing error: {CONTAINER_PATH} rootfile has no full-path.")
        return full_path
    raise ContainerInvalid(f"Parsing error: {CONTAINER_PATH} declares no rootfile.")
