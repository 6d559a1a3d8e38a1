from __future__ import annotations

import itertools
import logging
from typing import Callable, Iterator, Optional
from urllib.parse import urlsplit

from lxml import etree as LXML_ET

from .archive import Archive, resolve_relative
from .errors import NavigationUnresolvable
from .models import Navigation
from .package import MetadataBuilder
from .pages import RawNavigation, RawNavNode, normalize_pages
from .xmltools import (
    child_by_local_name,
    collapse_whitespace,
    iter_children_by_local_name,
    local_attributes,
    node_text,
    tag_local_name,
    xml_root_from_bytes,
)

logger = logging.getLogger("epubsnap.navigation")

NAV_POINT_RESERVED_ATTRS = {"id", "playorder"}

Strategy = Callable[[Archive, MetadataBuilder], RawNavigation]


def _split_href(href: str) -> tuple[str, Optional[str]]:
    path, sep, fragment = (href or "").strip().partition("#")
    return path, (fragment or None) if sep else None


def _load_document(archive: Archive, path: str, kind: str) -> tuple[str, LXML_ET._Element]:
    located = archive.locate(path)
    if located is None:
        raise NavigationUnresolvable(f"{kind} document {path} not found in archive")
    raw = archive[located]
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    try:
        return located, xml_root_from_bytes(raw, recover=True)
    except (LXML_ET.XMLSyntaxError, ValueError) as exc:
        raise NavigationUnresolvable(f"{kind} document {located} is not parseable: {exc}") from exc


def _locate_target(archive: Archive, document_path: str, href: str) -> Optional[tuple[str, Optional[str]]]:
    """Resolve a TOC link to ``(archive key, fragment)``; ``None`` when it leads outside the book."""
    path, fragment = _split_href(href)
    if not path:
        return None
    if urlsplit(path).scheme:
        return None
    located = archive.locate(resolve_relative(document_path, path))
    if located is None:
        return None
    return located, fragment


def _ncx_points(
    archive: Archive, ncx_path: str, parent: LXML_ET._Element, playorders: set[int]
) -> Iterator[RawNavNode]:
    for point in iter_children_by_local_name(parent, "navPoint"):
        attrs = local_attributes(point)
        node = _ncx_node(archive, ncx_path, point, attrs, playorders)
        children = list(_ncx_points(archive, ncx_path, point, playorders))
        if node is None:
            logger.debug("Dropping navPoint %r in %s", attrs.get("id"), ncx_path)
            yield from children
            continue
        node.children = children or None
        yield node


def _ncx_node(
    archive: Archive,
    ncx_path: str,
    point: LXML_ET._Element,
    attrs: dict[str, str],
    playorders: set[int],
) -> Optional[RawNavNode]:
    content = child_by_local_name(point, "content")
    target = _locate_target(archive, ncx_path, content.attrib.get("src", "") if content is not None else "")
    if target is None:
        return None
    try:
        playorder = int(attrs.get("playorder", "").strip())
    except ValueError:
        return None
    if playorder in playorders:
        return None
    playorders.add(playorder)

    label_node = child_by_local_name(point, "navLabel")
    text_node = child_by_local_name(label_node, "text") if label_node is not None else None
    src, fragment = target
    return RawNavNode(
        src=src,
        label=node_text(text_node) or "",
        playorder=playorder,
        id=attrs.get("id") or None,
        fragment=fragment,
        meta={key: value for key, value in attrs.items() if key not in NAV_POINT_RESERVED_ATTRS},
    )


def legacy_navigation(archive: Archive, builder: MetadataBuilder) -> RawNavigation:
    """Table of contents from the NCX document named by the spine ``toc`` attribute."""
    if not builder.spine_toc:
        raise NavigationUnresolvable("Spine declares no NCX reference")
    item = builder.manifest_item(builder.spine_toc)
    if item is None:
        raise NavigationUnresolvable(f"NCX item {builder.spine_toc!r} missing from manifest")
    ncx_path, root = _load_document(archive, item.href, "NCX")
    if tag_local_name(root.tag) != "ncx":
        raise NavigationUnresolvable(f"{ncx_path} has no ncx root element")

    playorders: set[int] = set()
    toc: list[RawNavNode] = []
    for nav_map in iter_children_by_local_name(root, "navMap"):
        toc.extend(_ncx_points(archive, ncx_path, nav_map, playorders))
    if not toc:
        raise NavigationUnresolvable(f"{ncx_path} has no usable navPoints")

    meta: dict[str, str] = {}
    head = child_by_local_name(root, "head")
    if head is not None:
        for node in iter_children_by_local_name(head, "meta"):
            name = node.attrib.get("name")
            if name:
                meta[name] = node.attrib.get("content", "")
    return RawNavigation(toc=toc, meta=meta)


def _is_toc_nav(nav: LXML_ET._Element) -> bool:
    for key, value in nav.attrib.items():
        if tag_local_name(key).rsplit(":", 1)[-1] == "type" and "toc" in str(value or "").lower().split():
            return True
    return False


def _entry_anchor(li: LXML_ET._Element) -> Optional[LXML_ET._Element]:
    """First linked ``a`` child of the entry, or of a ``span`` wrapping it."""
    for child in li:
        name = tag_local_name(child.tag)
        if name == "a" and child.attrib.get("href"):
            return child
        if name == "span":
            for inner in child:
                if tag_local_name(inner.tag) == "a" and inner.attrib.get("href"):
                    return inner
    return None


def _nav_entries(
    archive: Archive, nav_path: str, ol: LXML_ET._Element, counter: Iterator[int]
) -> Iterator[RawNavNode]:
    for li in iter_children_by_local_name(ol, "li"):
        anchor = _entry_anchor(li)
        target = _locate_target(archive, nav_path, anchor.attrib["href"]) if anchor is not None else None
        node: Optional[RawNavNode] = None
        if anchor is not None and target is not None:
            src, fragment = target
            node = RawNavNode(
                src=src,
                label=collapse_whitespace("".join(anchor.itertext())) or anchor.attrib.get("title", "").strip(),
                playorder=next(counter),
                id=li.attrib.get("id") or anchor.attrib.get("id") or None,
                fragment=fragment,
            )
        nested = child_by_local_name(li, "ol")
        children = list(_nav_entries(archive, nav_path, nested, counter)) if nested is not None else []
        if node is None:
            logger.debug("Skipping nav entry without a book link in %s", nav_path)
            yield from children
            continue
        node.children = children or None
        yield node


def html_navigation(archive: Archive, builder: MetadataBuilder) -> RawNavigation:
    """Table of contents from the EPUB 3 navigation document (``nav`` property)."""
    item = None
    for candidate in builder.manifest:
        properties = str((candidate.meta or {}).get("properties") or "").split()
        if "nav" in properties:
            item = candidate
            break
    if item is None:
        raise NavigationUnresolvable("Manifest declares no navigation document")
    nav_path, root = _load_document(archive, item.href, "Navigation")

    toc_nav = None
    for nav in root.iter():
        if tag_local_name(nav.tag) == "nav" and _is_toc_nav(nav):
            toc_nav = nav
            break
    if toc_nav is None:
        raise NavigationUnresolvable(f"{nav_path} has no toc nav element")
    ol = None
    for node in toc_nav.iter():
        if tag_local_name(node.tag) == "ol":
            ol = node
            break
    if ol is None:
        raise NavigationUnresolvable(f"{nav_path} toc nav has no list")

    # Nav documents carry no explicit order, so playorder follows document order.
    toc = list(_nav_entries(archive, nav_path, ol, itertools.count(1)))
    if not toc:
        raise NavigationUnresolvable(f"{nav_path} toc nav has no book links")
    return RawNavigation(toc=toc)


def fallback_navigation(archive: Archive, builder: MetadataBuilder) -> RawNavigation:
    return RawNavigation()


NAVIGATION_STRATEGIES: tuple[Strategy, ...] = (
    legacy_navigation,
    html_navigation,
    fallback_navigation,
)


def resolve_navigation(
    archive: Archive,
    builder: MetadataBuilder,
    strategies: tuple[Strategy, ...] = NAVIGATION_STRATEGIES,
) -> Navigation:
    """Run the strategies in order; the first one that does not give up wins."""
    for strategy in strategies:
        try:
            raw = strategy(archive, builder)
        except NavigationUnresolvable as exc:
            logger.debug("%s gave up on %s: %s", strategy.__name__, builder.package_path, exc)
            continue
        return normalize_pages(raw, archive)
    return Navigation()
