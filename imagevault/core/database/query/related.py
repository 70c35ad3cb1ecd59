"""
Loadable related properties.

Entities declare which of their navigations may be eager-loaded in a
``__related_properties__`` table mapping the relationship name to a
:class:`RelatedProperty`::

    class Album(Base, table=True):
        __related_properties__ = {
            "owner": RelatedProperty(),
            "images": RelatedProperty(split_query=True),
        }

The registry walks these declarations depth-first into the reachable
navigation paths (``"album"``, ``"album.owner"``, ...) and turns requested
include names into SQLAlchemy loader options.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy.orm.interfaces import LoaderOption
from sqlalchemy.sql import Select

from ..exceptions import RepositoryError
from .mapping import entity_mapper

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3

RequestedPaths = Union[str, Sequence[str], None]


class LoadRelatedProperties:
    """Well-known include requests."""

    ALL = "*"


@dataclass(frozen=True)
class RelatedProperty:
    """Declares a navigation as loadable.

    Attributes:
        ignore_circular_check: Follow the navigation even when it leads back
            to the type it was reached from
        only_for_querying: Load it for reads only, never for loads meant for update
        split_query: Load it with a separate query per navigation
    """

    ignore_circular_check: bool = False
    only_for_querying: bool = False
    split_query: bool = False


@dataclass(frozen=True)
class RelatedPathInfo:
    split_query: bool
    only_for_querying: bool


def flatten_related_properties(paths: Iterable[str]) -> List[str]:
    """Drop paths that are a prefix of another path in the list.

    Loading ``"album.owner"`` loads ``"album"`` too, so the shorter path
    adds nothing. Order of the remaining paths is kept.
    """
    unique = list(dict.fromkeys(paths))
    return [path for path in unique if not any(other.startswith(path + ".") for other in unique)]


def _prefixes(path: str) -> List[str]:
    parts = path.split(".")
    return [".".join(parts[: index + 1]) for index in range(len(parts))]


@dataclass(frozen=True)
class IncludePlan:
    """Resolved include paths for one load operation."""

    entity_type: type
    paths: Tuple[str, ...] = ()
    split_query: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.paths

    def loader_options(self) -> List[LoaderOption]:
        """Build the loader options for every path of the plan.

        All paths use ``selectinload`` when the plan is split, ``joinedload``
        otherwise.
        """
        loader = selectinload if self.split_query else joinedload
        options = []
        for path in self.paths:
            current = self.entity_type
            option = None
            for name in path.split("."):
                relationship = entity_mapper(current).relationships[name]
                attribute = getattr(current, name)
                option = loader(attribute) if option is None else getattr(option, loader.__name__)(attribute)
                current = relationship.mapper.class_
            options.append(option)
        return options


class RelatedPropertyRegistry:
    """Collects and caches the loadable navigation paths of entity types."""

    def __init__(self) -> None:
        self._cache: Dict[Tuple[type, int], Mapping[str, RelatedPathInfo]] = {}

    @staticmethod
    def declared(entity_type: type) -> Mapping[str, RelatedProperty]:
        """Return the related properties an entity declares, keyed by relationship name.

        Raises:
            RepositoryError: If a declared name is not a relationship of the entity
        """
        declared = getattr(entity_type, "__related_properties__", None) or {}
        relationships = entity_mapper(entity_type).relationships
        for name in declared:
            if name not in relationships:
                raise RepositoryError(f"{entity_type.__name__}.{name} is declared loadable but is not a relationship")
        return declared

    def get_related_paths(self, entity_type: type, max_depth: int = DEFAULT_MAX_DEPTH) -> Mapping[str, RelatedPathInfo]:
        """Return every loadable navigation path of an entity type.

        Args:
            entity_type: Root entity class
            max_depth: Depth of the deepest walked level, counted from 0 at
                the root, so paths hold at most ``max_depth + 1`` navigations

        Returns:
            Mapping of dot-separated path to its flags, in walk order
        """
        cache_key = (entity_type, max_depth)
        paths = self._cache.get(cache_key)
        if paths is None:
            collected: Dict[str, RelatedPathInfo] = {}
            self._walk(entity_type, None, "", 0, max_depth, False, False, collected)
            paths = collected
            self._cache[cache_key] = paths
            logger.debug(f"Related paths of {entity_type.__name__} (depth {max_depth}): {list(paths)}")
        return paths

    def _walk(
        self,
        entity_type: type,
        parent_type: Optional[type],
        prefix: str,
        depth: int,
        max_depth: int,
        split_inherited: bool,
        ignore_circular_inherited: bool,
        collected: Dict[str, RelatedPathInfo],
    ) -> None:
        if depth > max_depth:
            return
        relationships = entity_mapper(entity_type).relationships
        for name, descriptor in self.declared(entity_type).items():
            target = relationships[name].mapper.class_
            ignore_circular = descriptor.ignore_circular_check or ignore_circular_inherited
            if target is parent_type and not ignore_circular:
                continue
            split_query = split_inherited or descriptor.split_query
            path = f"{prefix}{name}"
            collected[path] = RelatedPathInfo(split_query=split_query, only_for_querying=descriptor.only_for_querying)
            self._walk(
                target, entity_type, f"{path}.", depth + 1, max_depth, split_query, descriptor.ignore_circular_check, collected
            )

    def resolve_includes(
        self,
        entity_type: type,
        requested: RequestedPaths,
        max_depth: int = DEFAULT_MAX_DEPTH,
        for_querying: bool = True,
    ) -> IncludePlan:
        """Intersect requested include paths with the declared ones.

        Args:
            entity_type: Root entity class
            requested: Path names, ``LoadRelatedProperties.ALL`` or None
            max_depth: Maximum navigation depth
            for_querying: False for loads meant for update, which drops
                query-only paths and everything below them

        Returns:
            The include plan; split when any kept path requires it
        """
        if not requested:
            return IncludePlan(entity_type)
        names = [requested] if isinstance(requested, str) else list(requested)
        declared = self.get_related_paths(entity_type, max_depth)

        if any(name.strip() == LoadRelatedProperties.ALL for name in names):
            candidates = list(declared)
        else:
            lookup = {path.lower(): path for path in declared}
            candidates = []
            for name in names:
                path = lookup.get(name.strip().lower())
                if path is None:
                    logger.debug(f"Dropping unknown include '{name}' for {entity_type.__name__}")
                    continue
                candidates.append(path)

        if not for_querying:
            candidates = [
                path for path in candidates if not any(declared[prefix].only_for_querying for prefix in _prefixes(path))
            ]

        split_query = any(declared[path].split_query for path in candidates)
        return IncludePlan(entity_type, tuple(flatten_related_properties(candidates)), split_query)

    def clear(self) -> None:
        self._cache.clear()


default_registry = RelatedPropertyRegistry()


def apply_includes(
    statement: Select,
    entity_type: type,
    requested: RequestedPaths,
    max_depth: int = DEFAULT_MAX_DEPTH,
    for_querying: bool = True,
    registry: RelatedPropertyRegistry = default_registry,
) -> Select:
    """Add eager-load options for the requested related properties to a statement."""
    plan = registry.resolve_includes(entity_type, requested, max_depth, for_querying)
    if plan.is_empty:
        return statement
    return statement.options(*plan.loader_options())
