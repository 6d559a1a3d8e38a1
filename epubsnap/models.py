from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

DC_FIELDS = (
    "title",
    "creator",
    "contributor",
    "publisher",
    "relation",
    "subject",
    "language",
    "identifier",
    "description",
    "date",
    "type",
    "format",
    "source",
    "coverage",
    "rights",
)
VALUE_FIELDS = DC_FIELDS + ("meta",)


class FrozenMap(Mapping):
    """Read-only copy of an attribute map. Hashes by its keys, so records holding one stay hashable."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] = ()) -> None:
        self._data = dict(data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __hash__(self) -> int:
        return hash(frozenset(self._data))

    def __repr__(self) -> str:
        return f"FrozenMap({self._data!r})"


def freeze_map(data: Optional[Mapping[str, Any]]) -> Optional[FrozenMap]:
    if data is None or isinstance(data, FrozenMap):
        return data
    return FrozenMap(data)


@dataclass(frozen=True)
class MetadataValue:
    value: str
    meta: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", freeze_map(self.meta))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ManifestItem:
    id: str
    media: str
    href: str
    meta: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", freeze_map(self.meta))

    def __str__(self) -> str:
        return self.href


@dataclass(frozen=True)
class Manifest:
    items: tuple[ManifestItem, ...] = ()

    def get(self, item_id: str) -> Optional[ManifestItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


@dataclass(frozen=True)
class SpineItem:
    idref: str
    linear: bool = True


@dataclass(frozen=True)
class Spine:
    toc: Optional[str] = None
    ltr: Optional[bool] = None
    items: tuple[SpineItem, ...] = ()


@dataclass(frozen=True)
class Page:
    id: Optional[str]
    src: str
    label: str
    playorder: int
    length: int = 0
    fragment: Optional[str] = None
    children: Optional[tuple["Page", ...]] = None
    meta: Mapping[str, Any] = field(default_factory=FrozenMap)

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", freeze_map(self.meta) or FrozenMap())
        if self.children is not None:
            object.__setattr__(self, "children", tuple(self.children))

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    def walk(self) -> Iterator["Page"]:
        """Descendants in depth-first pre-order, excluding this page."""
        for child in self.children or ():
            yield child
            yield from child.walk()

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class ReadingOrderEntry:
    page: Page
    fragments: tuple[str, ...] = ()


def reading_order(toc: tuple[Page, ...]) -> list[ReadingOrderEntry]:
    """Deduplicated pages sorted by playorder, each with the fragments of its source file.

    The first page per source path in breadth-first order represents the file;
    fragments are gathered in the same order.
    """
    representatives: dict[str, Page] = {}
    fragments: dict[str, list[str]] = {}
    queue: deque[Page] = deque(toc)
    while queue:
        page = queue.popleft()
        representatives.setdefault(page.src, page)
        if page.fragment is not None:
            fragments.setdefault(page.src, []).append(page.fragment)
        queue.extend(page.children or ())
    ordered = sorted(representatives.values(), key=lambda page: page.playorder)
    return [ReadingOrderEntry(page=page, fragments=tuple(fragments.get(page.src, ()))) for page in ordered]


@dataclass(frozen=True)
class Navigation:
    toc: tuple[Page, ...] = ()
    meta: Mapping[str, Any] = field(default_factory=FrozenMap)

    def __post_init__(self) -> None:
        object.__setattr__(self, "toc", tuple(self.toc))
        object.__setattr__(self, "meta", freeze_map(self.meta) or FrozenMap())

    def walk(self) -> Iterator[Page]:
        for page in self.toc:
            yield page
            yield from page.walk()

    def reading_order(self) -> list[ReadingOrderEntry]:
        return reading_order(self.toc)

    @property
    def pages(self) -> int:
        return len({page.src for page in self.walk()})

    def find_page(self, playorder: int) -> Optional[Page]:
        for entry in self.reading_order():
            if entry.page.playorder == playorder:
                return entry.page
        return None


@dataclass(frozen=True)
class Metadata:
    version: str
    manifest: Manifest = field(default_factory=Manifest)
    spine: Spine = field(default_factory=Spine)
    navigation: Navigation = field(default_factory=Navigation)
    title: tuple[MetadataValue, ...] = ()
    creator: tuple[MetadataValue, ...] = ()
    contributor: tuple[MetadataValue, ...] = ()
    publisher: tuple[MetadataValue, ...] = ()
    relation: tuple[MetadataValue, ...] = ()
    subject: tuple[MetadataValue, ...] = ()
    language: tuple[MetadataValue, ...] = ()
    identifier: tuple[MetadataValue, ...] = ()
    description: tuple[MetadataValue, ...] = ()
    date: tuple[MetadataValue, ...] = ()
    type: tuple[MetadataValue, ...] = ()
    format: tuple[MetadataValue, ...] = ()
    source: tuple[MetadataValue, ...] = ()
    coverage: tuple[MetadataValue, ...] = ()
    rights: tuple[MetadataValue, ...] = ()
    meta: tuple[MetadataValue, ...] = ()

    @property
    def page_count(self) -> int:
        return self.navigation.pages


@dataclass(frozen=True)
class Resource:
    path: str
    name: str
    extension: str
    media: str
    size: int
    bytes: bytes = field(repr=False)


def _int_or(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _dict_or_none(value: object) -> Optional[dict[str, Any]]:
    return dict(value) if isinstance(value, dict) else None


def _str_or_none(value: object) -> Optional[str]:
    return None if value is None else str(value)


def value_to_dict(value: MetadataValue) -> dict:
    data: dict[str, Any] = {"value": value.value}
    if value.meta is not None:
        data["meta"] = dict(value.meta)
    return data


def value_from_dict(data: dict) -> MetadataValue:
    raw = data.get("value")
    return MetadataValue(value="" if raw is None else str(raw), meta=_dict_or_none(data.get("meta")))


def values_from_json(raw: object) -> tuple[MetadataValue, ...]:
    if isinstance(raw, str):
        return (MetadataValue(raw),)
    if not isinstance(raw, list):
        return ()
    values: list[MetadataValue] = []
    for item in raw:
        if isinstance(item, str):
            values.append(MetadataValue(item))
        elif isinstance(item, dict):
            values.append(value_from_dict(item))
    return tuple(values)


def manifest_item_to_dict(item: ManifestItem) -> dict:
    data: dict[str, Any] = {
        "@type": "epub-manifest-item",
        "id": item.id,
        "media": item.media,
        "href": item.href,
    }
    if item.meta:
        data["meta"] = dict(item.meta)
    return data


def manifest_item_from_dict(data: dict) -> ManifestItem:
    return ManifestItem(
        id=str(data.get("id") or ""),
        media=str(data.get("media") or ""),
        href=str(data.get("href") or ""),
        meta=_dict_or_none(data.get("meta")),
    )


def manifest_to_dict(manifest: Manifest) -> dict:
    return {
        "@type": "epub-manifest",
        "items": [manifest_item_to_dict(item) for item in manifest.items],
    }


def manifest_from_dict(data: dict) -> Manifest:
    items = data.get("items")
    if not isinstance(items, list):
        return Manifest()
    return Manifest(items=tuple(manifest_item_from_dict(item) for item in items if isinstance(item, dict)))


def spine_to_dict(spine: Spine) -> dict:
    data: dict[str, Any] = {"@type": "epub-spine"}
    if spine.toc is not None:
        data["toc"] = spine.toc
    if spine.ltr is not None:
        data["ltr"] = spine.ltr
    data["items"] = [
        {"@type": "epub-spine-item", "idref": item.idref, "linear": item.linear} for item in spine.items
    ]
    return data


def spine_from_dict(data: dict) -> Spine:
    ltr = data.get("ltr")
    items = data.get("items")
    return Spine(
        toc=_str_or_none(data.get("toc")),
        ltr=ltr if isinstance(ltr, bool) else None,
        items=tuple(
            SpineItem(idref=str(item.get("idref") or ""), linear=item.get("linear") is True)
            for item in (items if isinstance(items, list) else [])
            if isinstance(item, dict)
        ),
    )


def page_to_dict(page: Page) -> dict:
    data: dict[str, Any] = {"@type": "epub-page"}
    if page.id is not None:
        data["id"] = page.id
    data["label"] = page.label
    data["number"] = page.playorder
    data["src"] = page.src
    data["length"] = page.length
    if page.fragment is not None:
        data["fragment"] = page.fragment
    if page.children is not None:
        data["children"] = [page_to_dict(child) for child in page.children]
    if page.meta:
        data["meta"] = dict(page.meta)
    return data


def page_from_dict(data: dict) -> Page:
    children = data.get("children")
    return Page(
        id=_str_or_none(data.get("id")),
        src=str(data.get("src") or ""),
        label=str(data.get("label") or ""),
        playorder=_int_or(data.get("number"), -1),
        length=_int_or(data.get("length"), 0),
        fragment=_str_or_none(data.get("fragment")),
        children=(
            tuple(page_from_dict(child) for child in children if isinstance(child, dict))
            if isinstance(children, list)
            else None
        ),
        meta=_dict_or_none(data.get("meta")) or {},
    )


def navigation_to_dict(navigation: Navigation) -> dict:
    data: dict[str, Any] = {
        "@type": "epub-nav",
        "toc": [page_to_dict(page) for page in navigation.toc],
    }
    if navigation.meta:
        data["meta"] = dict(navigation.meta)
    return data


def navigation_from_dict(data: dict) -> Navigation:
    toc = data.get("toc")
    return Navigation(
        toc=tuple(page_from_dict(page) for page in toc if isinstance(page, dict)) if isinstance(toc, list) else (),
        meta=_dict_or_none(data.get("meta")) or {},
    )


def metadata_to_dict(meta: Metadata) -> dict:
    data: dict[str, Any] = {
        "@type": "epub",
        "@version": meta.version,
        "@manifest": manifest_to_dict(meta.manifest),
        "@spine": spine_to_dict(meta.spine),
        "navigation": navigation_to_dict(meta.navigation),
    }
    for name in VALUE_FIELDS:
        values = getattr(meta, name)
        if values:
            data[name] = [value_to_dict(value) for value in values]
    return data


def epub_metadata_from_dict(data: dict) -> Metadata:
    manifest = data.get("@manifest")
    spine = data.get("@spine")
    navigation = data.get("navigation", data.get("@navigation"))
    return Metadata(
        version=str(data.get("@version") or ""),
        manifest=manifest_from_dict(manifest) if isinstance(manifest, dict) else Manifest(),
        spine=spine_from_dict(spine) if isinstance(spine, dict) else Spine(),
        navigation=navigation_from_dict(navigation) if isinstance(navigation, dict) else Navigation(),
        **{name: values_from_json(data.get(name)) for name in VALUE_FIELDS},
    )


def metadata_from_dict(data: dict) -> Metadata:
    kind = data.get("@type")
    if kind == "epub":
        return epub_metadata_from_dict(data)
    raise ValueError(f"Unsupported book metadata type: {kind!r}")
