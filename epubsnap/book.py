from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .archive import Archive, content_hash
from .container import resolve_package_path
from .errors import ResourceNotFound
from .models import Metadata, Page, Resource
from .navigation import resolve_navigation
from .package import parse_package
from .resources import read_page_content, resolve_cover

logger = logging.getLogger("epubsnap.book")


class Book(ABC):
    """A decoded book snapshot. Equality follows the SHA-256 of the source bytes."""

    hash: str

    @classmethod
    def epub(cls, data: bytes) -> "Book":
        return decode_epub(data)

    @abstractmethod
    def get_metadata(self) -> Metadata:
        ...

    @abstractmethod
    def get_cover_image(self, metadata: Optional[Metadata] = None) -> Optional[Resource]:
        ...

    @abstractmethod
    def read_page(self, metadata: Optional[Metadata], page: Page) -> str:
        ...

    def get_page(self, metadata: Optional[Metadata], playorder: int) -> tuple[Page, str]:
        """Return the reading-order page numbered ``playorder`` (1-based) and its text."""
        metadata = metadata or self.get_metadata()
        page = metadata.navigation.find_page(playorder)
        if page is None:
            raise ResourceNotFound(f"No page with playorder {playorder}", code="epub_page_not_found")
        return page, self.read_page(metadata, page)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)


class EpubBook(Book):
    def __init__(self, hash: str, archive: Archive, root_file: str, metadata: Metadata) -> None:
        self.hash = hash
        self.archive = archive
        self.root_file = root_file
        self._metadata = metadata

    def __repr__(self) -> str:
        return f"EpubBook(hash={self.hash[:12]!r}, root_file={self.root_file!r})"

    def get_metadata(self) -> Metadata:
        return self._metadata

    def get_cover_image(self, metadata: Optional[Metadata] = None) -> Optional[Resource]:
        return resolve_cover(self.archive, metadata or self._metadata)

    def read_page(self, metadata: Optional[Metadata], page: Page) -> str:
        return read_page_content(self.archive, page)


def decode_epub(data: bytes) -> EpubBook:
    digest = content_hash(data)
    archive = Archive.from_bytes(data)
    root_file = resolve_package_path(archive)
    builder = parse_package(archive, root_file)
    builder.navigation = resolve_navigation(archive, builder)
    metadata = builder.freeze()
    logger.info(
        "Decoded EPUB %s (%s): %d manifest items, %d pages",
        digest[:12],
        metadata.version,
        len(metadata.manifest.items),
        metadata.page_count,
    )
    return EpubBook(hash=digest, archive=archive, root_file=root_file, metadata=metadata)
