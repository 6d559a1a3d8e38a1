from __future__ import annotations

import hashlib
import io
import posixpath
import zipfile
import zlib
from collections.abc import Mapping
from typing import Iterator, Optional, Union
from urllib.parse import unquote

from .env import max_archive_bytes
from .errors import ArchiveInvalid

EntryContent = Union[bytes, str]


def canonical_member(name: str) -> str:
    normalized = posixpath.normpath((name or "").replace("\\", "/")).lstrip("/")
    while normalized.startswith("../"):
        normalized = normalized[3:]
    return "" if normalized in {"", ".", ".."} else normalized


def resolve_relative(from_member: str, href: str) -> str:
    """Resolve ``href`` (path part only) against the directory of ``from_member``."""
    raw = unquote((href or "").strip())
    if not raw:
        return ""
    from_dir = posixpath.dirname(from_member)
    return canonical_member(posixpath.join(from_dir, raw))


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class Archive(Mapping):
    """Read-only view of the archive entries keyed by canonical member path."""

    def __init__(self, entries: Mapping[str, EntryContent]) -> None:
        self._entries: dict[str, EntryContent] = {}
        for name, content in entries.items():
            canonical = canonical_member(name)
            if canonical and canonical not in self._entries:
                self._entries[canonical] = content
        self._folded: dict[str, str] = {}
        for name in self._entries:
            self._folded.setdefault(name.lower(), name)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Archive":
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
                infos = [info for info in zf.infolist() if not info.is_dir()]
                limit = max_archive_bytes()
                total = sum(info.file_size for info in infos)
                if limit and total > limit:
                    raise ArchiveInvalid(f"Archive expands to {total} bytes, limit is {limit}")
                entries: dict[str, bytes] = {}
                for info in infos:
                    canonical = canonical_member(info.filename)
                    if canonical and canonical not in entries:
                        entries[canonical] = zf.read(info.filename)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as exc:
            raise ArchiveInvalid(f"Parsing error: input is not a ZIP archive ({exc})") from exc
        except (zlib.error, ValueError) as exc:
            raise ArchiveInvalid(f"Parsing error: corrupt compressed entry ({exc})") from exc
        except (RuntimeError, NotImplementedError) as exc:
            # Encrypted or unsupported compression methods.
            raise ArchiveInvalid(f"Parsing error: unreadable archive entry ({exc})") from exc
        return cls(entries)

    def __getitem__(self, key: str) -> EntryContent:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Archive({len(self._entries)} entries)"

    def locate(self, path: str) -> Optional[str]:
        """Return the stored key for ``path``: exact match first, then case-insensitive."""
        canonical = canonical_member(path)
        if not canonical:
            return None
        if canonical in self._entries:
            return canonical
        return self._folded.get(canonical.lower())

    def size_of(self, key: str) -> int:
        content = self._entries.get(key)
        if isinstance(content, bytes):
            return len(content)
        if isinstance(content, str):
            return len(content.encode("utf-8"))
        return 0
