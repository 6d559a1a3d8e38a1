from __future__ import annotations

import logging
import posixpath
from typing import Optional

from .archive import Archive
from .errors import ResourceNotFound
from .models import ManifestItem, Metadata, Page, Resource

logger = logging.getLogger("epubsnap.resources")


def _cover_item_v2(metadata: Metadata) -> Optional[ManifestItem]:
    for value in metadata.meta:
        attrs = value.meta or {}
        if attrs.get("name") != "cover":
            continue
        item_id = attrs.get("content")
        if isinstance(item_id, str):
            return metadata.manifest.get(item_id)
    return None


def _cover_item_v3(metadata: Metadata) -> Optional[ManifestItem]:
    # Exact match: a "cover-image" token combined with other properties is not recognised.
    for item in metadata.manifest.items:
        if (item.meta or {}).get("properties") == "cover-image":
            return item
    return None


def resolve_cover(archive: Archive, metadata: Metadata) -> Optional[Resource]:
    """Locate the cover image; ``None`` whenever the book does not declare a readable one."""
    if metadata.version.startswith("2."):
        item = _cover_item_v2(metadata)
    elif metadata.version.startswith("3."):
        item = _cover_item_v3(metadata)
    else:
        logger.warning("Cover lookup for unsupported EPUB version %r", metadata.version)
        return None
    if item is None:
        return None
    located = archive.locate(item.href)
    if located is None:
        logger.debug("Cover %s declared but missing from archive", item.href)
        return None
    content = archive[located]
    if not isinstance(content, bytes):
        return None
    name = posixpath.basename(located)
    return Resource(
        path=located,
        name=name,
        extension=posixpath.splitext(name)[1],
        media=item.media,
        size=len(content),
        bytes=content,
    )


def read_page_content(archive: Archive, page: Page) -> str:
    if page.src not in archive:
        raise ResourceNotFound(f"File not found: {page.src}")
    content = archive[page.src]
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    if isinstance(content, str):
        return content
    raise TypeError(f"Unsupported content type: {type(content).__name__}")
