from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from .archive import Archive
from .models import Navigation, Page


@dataclass
class RawNavNode:
    """Navigation entry as read from a TOC document, before renumbering."""

    src: str
    label: str
    playorder: int
    id: Optional[str] = None
    fragment: Optional[str] = None
    children: Optional[list["RawNavNode"]] = None
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class RawNavigation:
    toc: list[RawNavNode] = field(default_factory=list)
    meta: dict[str, str] = field(default_factory=dict)


def _flatten_breadth_first(toc: list[RawNavNode]) -> list[RawNavNode]:
    flat: list[RawNavNode] = []
    seen_ids: set[str] = set()
    queue: deque[RawNavNode] = deque(toc)
    while queue:
        node = queue.popleft()
        if node.id is not None:
            if node.id in seen_ids:
                node.id = None
            else:
                seen_ids.add(node.id)
        flat.append(node)
        queue.extend(node.children or ())
    return flat


def assign_playorders(toc: list[RawNavNode]) -> dict[str, int]:
    """Map each source path to its dense 1-based playorder.

    Clears repeated ids on the raw nodes as a side effect.
    """
    representatives: dict[str, tuple[int, RawNavNode]] = {}
    for position, node in enumerate(_flatten_breadth_first(toc)):
        representatives.setdefault(node.src, (position, node))
    ranked = sorted(representatives.values(), key=lambda entry: (entry[1].playorder, entry[0]))
    return {node.src: rank for rank, (_, node) in enumerate(ranked, start=1)}


def _build_page(node: RawNavNode, playorders: dict[str, int], archive: Archive) -> Page:
    children = None
    if node.children is not None:
        children = tuple(_build_page(child, playorders, archive) for child in node.children)
    return Page(
        id=node.id,
        src=node.src,
        label=node.label,
        playorder=playorders[node.src],
        length=archive.size_of(node.src),
        fragment=node.fragment,
        children=children,
        meta=dict(node.meta),
    )


def normalize_pages(raw: RawNavigation, archive: Archive) -> Navigation:
    """Turn a raw TOC tree into the final page tree.

    Pages sharing a source file collapse into one reading-order page: every
    node keeps its label and fragment but carries the playorder of the first
    breadth-first node for that file. Playorders run 1..N over distinct files
    in raw playorder order, ties broken by traversal order.
    """
    playorders = assign_playorders(raw.toc)
    toc = tuple(_build_page(node, playorders, archive) for node in raw.toc)
    return Navigation(toc=toc, meta=dict(raw.meta))
