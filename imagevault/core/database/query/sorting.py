"""
Sorting specifications and their application to statements and sequences.

Unknown or non-sortable paths never fail a query: they are skipped, and when
no item of a specification resolves the statement falls back to ascending
primary key order so paging stays deterministic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.sql import Select

from ...guard import not_empty
from .mapping import primary_key_names
from .paths import OrderingOperation, PathResolver, bind_column, default_resolver

logger = logging.getLogger(__name__)


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class SortItem:
    """One sort key: a property path and a direction."""

    sort_by: str
    direction: SortDirection = SortDirection.ASCENDING

    def __post_init__(self) -> None:
        not_empty(self.sort_by, "sort_by")

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESCENDING


@dataclass(frozen=True)
class SortingDetails:
    """Ordered list of sort items, first item being the primary key of the sort."""

    items: Tuple[SortItem, ...]

    def __post_init__(self) -> None:
        items = tuple(self.items)
        not_empty(items, "items")
        object.__setattr__(self, "items", items)

    @classmethod
    def of(cls, sort_by: str, direction: SortDirection = SortDirection.ASCENDING) -> "SortingDetails":
        return cls((SortItem(sort_by, direction),))

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["SortingDetails"]:
        """Build sorting details from a compact string.

        Items are comma separated; a leading ``-`` sorts descending and an
        optional leading ``+`` ascending, e.g. ``"-size,name"``.

        Args:
            text: Compact sort string

        Returns:
            Parsed sorting details, or None when the string holds no item
        """
        if not text:
            return None
        items = []
        for part in text.split(","):
            part = part.strip()
            if not part:
                continue
            if part[0] == "-":
                items.append(SortItem(part[1:].strip(), SortDirection.DESCENDING))
            else:
                items.append(SortItem(part.lstrip("+").strip()))
        return cls(tuple(items)) if items else None

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def apply_default_sorting(statement: Select, entity_type: type) -> Select:
    """Order a statement by the entity's primary key, ascending."""
    statement = statement.order_by(None)
    return statement.order_by(*(getattr(entity_type, name).asc() for name in primary_key_names(entity_type)))


def apply_sorting(
    statement: Select,
    entity_type: type,
    sorting: Optional[SortingDetails],
    resolver: PathResolver = default_resolver,
    joins: Optional[Dict[Tuple[str, ...], Any]] = None,
) -> Select:
    """Apply a sorting specification to a select statement.

    The first usable item replaces any existing ordering, the following
    items are appended as tie-breakers. Paths over scalar navigations are
    joined; collection paths, navigation leaves and unknown paths are skipped.

    Args:
        statement: Statement selecting from ``entity_type``
        entity_type: Root entity class of the paths
        sorting: Sorting details, None for the primary key order
        resolver: Path resolver to use
        joins: Navigation aliases already joined into the statement

    Returns:
        The ordered statement
    """
    if not sorting:
        return apply_default_sorting(statement, entity_type)

    joins = {} if joins is None else joins
    applied = False
    for item in sorting:
        resolved = resolver.try_resolve(entity_type, item.sort_by)
        if resolved is None or resolved.is_navigation or resolved.through_collection:
            logger.debug(f"Skipping sort on '{item.sort_by}' for {entity_type.__name__}")
            continue
        statement, expression = bind_column(statement, resolved, joins)
        if applied:
            operation = OrderingOperation.THEN_BY_DESCENDING if item.descending else OrderingOperation.THEN_BY
        else:
            operation = OrderingOperation.ORDER_BY_DESCENDING if item.descending else OrderingOperation.ORDER_BY
        operator = resolver.get_ordering_operator(entity_type, resolved.leaf_type, operation)
        statement = operator(statement, expression)
        applied = True

    if not applied:
        return apply_default_sorting(statement, entity_type)
    return statement


def order_objects(
    items: Iterable[Any],
    sorting: Optional[SortingDetails],
    entity_type: Optional[type] = None,
    resolver: PathResolver = default_resolver,
) -> List[Any]:
    """Sort already materialised entities with the same path rules.

    The sort is stable; None values come first in ascending order.

    Args:
        items: Entities to sort
        sorting: Sorting details, None keeps the input order
        entity_type: Root class of the paths, taken from the first item if omitted
        resolver: Path resolver to use

    Returns:
        A new sorted list
    """
    result = list(items)
    if not sorting or not result:
        return result
    root = entity_type or type(result[0])
    keys: List[Tuple[Any, bool]] = []
    for item in sorting:
        resolved = resolver.try_resolve(root, item.sort_by)
        if resolved is None or resolved.is_navigation or resolved.through_collection:
            continue
        keys.append((resolved, item.descending))
    # Least significant key first, stability keeps earlier keys in charge.
    for resolved, descending in reversed(keys):
        result.sort(key=resolved.sort_key, reverse=descending)
    return result
