from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from lxml import etree as LXML_ET

from .archive import Archive, resolve_relative
from .errors import PackageInvalid, UnsupportedVersion
from .models import (
    DC_FIELDS,
    Manifest,
    ManifestItem,
    Metadata,
    MetadataValue,
    Navigation,
    Spine,
    SpineItem,
)
from .xmltools import (
    child_by_local_name,
    iter_children_by_local_name,
    iter_element_children,
    local_attributes,
    tag_local_name,
    xml_root_from_bytes,
)

logger = logging.getLogger("epubsnap.package")

SUPPORTED_VERSION_PREFIXES = ("2.", "3.")
# OPF 1.x style wrappers that some EPUB 2 producers still emit.
LEGACY_METADATA_WRAPPERS = {"dc-metadata", "x-metadata"}
MANIFEST_REQUIRED_ATTRS = {"id", "media-type", "href"}


@dataclass
class MetadataBuilder:
    """Work-in-progress metadata, filled in step by step and then frozen."""

    package_path: str
    version: str = ""
    values: dict[str, list[MetadataValue]] = field(
        default_factory=lambda: {name: [] for name in DC_FIELDS + ("meta",)}
    )
    manifest: list[ManifestItem] = field(default_factory=list)
    spine_toc: Optional[str] = None
    spine_ltr: Optional[bool] = None
    spine: list[SpineItem] = field(default_factory=list)
    navigation: Navigation = field(default_factory=Navigation)

    def manifest_item(self, item_id: str) -> Optional[ManifestItem]:
        for item in self.manifest:
            if item.id == item_id:
                return item
        folded = item_id.lower()
        for item in self.manifest:
            if item.id.lower() == folded:
                return item
        return None

    def freeze(self) -> Metadata:
        return Metadata(
            version=self.version,
            manifest=Manifest(items=tuple(self.manifest)),
            spine=Spine(toc=self.spine_toc, ltr=self.spine_ltr, items=tuple(self.spine)),
            navigation=self.navigation,
            **{name: tuple(values) for name, values in self.values.items()},
        )


def _package_root(archive: Archive, package_path: str) -> LXML_ET._Element:
    located = archive.locate(package_path)
    if located is None:
        raise PackageInvalid(
            f"Parsing error: {package_path} not found in the archive.", code="root_file_not_found"
        )
    raw = archive[located]
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    try:
        root = xml_root_from_bytes(raw)
    except (LXML_ET.XMLSyntaxError, ValueError) as exc:
        raise PackageInvalid(f"Parsing error: {package_path} file content is not a valid XML.") from exc
    if tag_local_name(root.tag) != "package":
        raise PackageInvalid(f"Parsing error: {package_path} has no package element.")
    return root


def _read_version(builder: MetadataBuilder, root: LXML_ET._Element) -> None:
    version = (root.attrib.get("version") or "").strip().lower()
    if not version.startswith(SUPPORTED_VERSION_PREFIXES):
        raise UnsupportedVersion(f"Unsupported EPUB version: {version or 'missing'}")
    builder.version = version


def _metadata_elements(metadata: LXML_ET._Element) -> list[LXML_ET._Element]:
    elements: list[LXML_ET._Element] = []
    for node in iter_element_children(metadata):
        if tag_local_name(node.tag).lower() in LEGACY_METADATA_WRAPPERS:
            elements.extend(iter_element_children(node))
        else:
            elements.append(node)
    return elements


def _read_metadata(builder: MetadataBuilder, root: LXML_ET._Element) -> None:
    metadata = child_by_local_name(root, "metadata")
    if metadata is None:
        return
    for node in _metadata_elements(metadata):
        attrs = local_attributes(node)
        value = MetadataValue(value="".join(node.itertext()).strip(), meta=attrs or None)
        name = tag_local_name(node.tag).strip().lower()
        builder.values[name if name in DC_FIELDS else "meta"].append(value)


def _read_manifest(builder: MetadataBuilder, root: LXML_ET._Element) -> None:
    manifest = child_by_local_name(root, "manifest")
    if manifest is None:
        return
    seen: set[str] = set()
    for node in iter_children_by_local_name(manifest, "item"):
        attrs = local_attributes(node)
        item_id = attrs.get("id", "").strip()
        media = attrs.get("media-type", "").strip().lower()
        href = attrs.get("href", "").strip()
        if not item_id or not media or not href:
            continue
        if item_id in seen:
            logger.debug("Dropping duplicate manifest id %r in %s", item_id, builder.package_path)
            continue
        seen.add(item_id)
        extra = {key: value for key, value in attrs.items() if key not in MANIFEST_REQUIRED_ATTRS}
        builder.manifest.append(
            ManifestItem(
                id=item_id,
                media=media,
                href=resolve_relative(builder.package_path, href.split("#", 1)[0]),
                meta=extra or None,
            )
        )


def _read_spine(builder: MetadataBuilder, root: LXML_ET._Element) -> None:
    spine = child_by_local_name(root, "spine")
    if spine is None:
        builder.spine_ltr = True
        return
    toc = (spine.attrib.get("toc") or "").strip()
    builder.spine_toc = toc or None
    direction = (spine.attrib.get("page-progression-direction") or "").strip().lower()
    builder.spine_ltr = direction != "rtl"
    for node in iter_children_by_local_name(spine, "itemref"):
        idref = (node.attrib.get("idref") or "").strip()
        if not idref:
            continue
        linear = (node.attrib.get("linear") or "").strip().lower() != "no"
        builder.spine.append(SpineItem(idref=idref, linear=linear))


def parse_package(archive: Archive, package_path: str) -> MetadataBuilder:
    root = _package_root(archive, package_path)
    builder = MetadataBuilder(package_path=package_path)
    _read_version(builder, root)
    _read_metadata(builder, root)
    _read_manifest(builder, root)
    _read_spine(builder, root)
    return builder
