from __future__ import annotations

from typing import Optional


class BookError(Exception):
    """Decode failure with a stable machine-readable code."""

    code = "epub_error"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code:
            self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


class ArchiveInvalid(BookError):
    code = "epub_invalid_archive"


class ContainerMissing(BookError):
    code = "epub_missing_container_file"


class ContainerInvalid(BookError):
    code = "epub_invalid_container_file"


class UnsupportedVersion(BookError):
    code = "epub_invalid_version"


class PackageInvalid(BookError):
    code = "epub_invalid_package_file"


class NavigationUnresolvable(BookError):
    code = "epub_navigation_unresolvable"


class ResourceNotFound(BookError, LookupError):
    code = "epub_resource_not_found"
