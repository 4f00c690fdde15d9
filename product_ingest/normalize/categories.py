"""Hierarchical category flattening.

Upstream ``categories`` arrives either as a flat list of category objects or
as a list of such lists, in which case the first group is the main one. Each
object carries a ``name`` and a ``level`` where 2 is the top of the tree and 0
the leaf. The three levels are flattened into lowercased ``" > "``-joined
prefixes::

    lvl0 = "electronica"
    lvl1 = "electronica > tv"
    lvl2 = "electronica > tv > pantallas"
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from product_ingest.normalize.coercion import as_int, as_str

SEPARATOR = " > "

TOP_LEVEL = 2
MID_LEVEL = 1
LEAF_LEVEL = 0


@dataclass(frozen=True)
class CategoryEntry:
    name: Optional[str]
    level: Optional[int]
    category_id: Optional[int] = None


@dataclass(frozen=True)
class FlatCategories:
    """``categories: object[]``"""

    entries: tuple[CategoryEntry, ...]


@dataclass(frozen=True)
class NestedCategories:
    """``categories: object[][]``"""

    groups: tuple[tuple[CategoryEntry, ...], ...]

    @property
    def main(self) -> tuple[CategoryEntry, ...]:
        return self.groups[0] if self.groups else ()


Categories = Union[FlatCategories, NestedCategories]


@dataclass(frozen=True)
class CategoryHierarchy:
    """Flattened category columns shared by the row and the document."""

    category_id: Optional[int] = None
    category_name: Optional[str] = None
    lvl0: Optional[str] = None
    lvl1: Optional[str] = None
    lvl2: Optional[str] = None
    path: str = ""


EMPTY_HIERARCHY = CategoryHierarchy()


def _entry(raw: Any) -> Optional[CategoryEntry]:
    if not isinstance(raw, dict):
        return None
    name = as_str(raw.get("name"))
    return CategoryEntry(
        name=name.strip().lower() if name and name.strip() else None,
        level=as_int(raw.get("level"), None),
        category_id=as_int(raw.get("id"), None),
    )


def _entries(items: list) -> tuple[CategoryEntry, ...]:
    return tuple(e for e in (_entry(item) for item in items) if e is not None)


def parse_categories(raw: Any) -> Optional[Categories]:
    """Classify the upstream shape by looking at element 0."""
    if not isinstance(raw, list) or not raw:
        return None
    if isinstance(raw[0], list):
        return NestedCategories(
            groups=tuple(_entries(group) for group in raw if isinstance(group, list))
        )
    return FlatCategories(entries=_entries(raw))


def _main_entries(categories: Optional[Categories]) -> tuple[CategoryEntry, ...]:
    if isinstance(categories, NestedCategories):
        return categories.main
    if isinstance(categories, FlatCategories):
        return categories.entries
    return ()


def _name_at(entries, level: int) -> Optional[str]:
    for entry in entries:
        if entry.level == level and entry.name:
            return entry.name
    return None


def _join(parent: Optional[str], child: str) -> str:
    return child if parent is None else f"{parent}{SEPARATOR}{child}"


def flatten_categories(raw: Any) -> CategoryHierarchy:
    """
    Flatten upstream categories into the three hierarchy levels.

    Empty or malformed input yields ``EMPTY_HIERARCHY``. When the top level is
    missing, the deeper names move up so that ``lvl0`` is never null while a
    deeper level is set.
    """
    entries = _main_entries(parse_categories(raw))
    if not entries:
        return EMPTY_HIERARCHY

    ordered = sorted(entries, key=lambda e: e.level or 0, reverse=True)

    top = _name_at(ordered, TOP_LEVEL)
    mid = _name_at(ordered, MID_LEVEL)
    leaf = _name_at(ordered, LEAF_LEVEL)

    while top is None and (mid or leaf):
        top, mid, leaf = mid, leaf, None

    if top is None:
        return EMPTY_HIERARCHY

    lvl0 = top
    lvl1 = lvl2 = lvl0
    path = [top]

    if mid and mid != top:
        lvl1 = _join(lvl0, mid)
        lvl2 = lvl1
        path.append(mid)

    if leaf and leaf != mid:
        lvl2 = _join(lvl1, leaf)
        path.append(leaf)

    return CategoryHierarchy(
        category_id=ordered[0].category_id,
        category_name=leaf or mid or top,
        lvl0=lvl0,
        lvl1=lvl1,
        lvl2=lvl2,
        path=SEPARATOR.join(path),
    )


def category_payload(hierarchy: CategoryHierarchy) -> dict:
    """Nested ``{lvl0, lvl1, lvl2}`` object used by the search document."""
    return {
        "lvl0": hierarchy.lvl0,
        "lvl1": hierarchy.lvl1,
        "lvl2": hierarchy.lvl2,
    }
