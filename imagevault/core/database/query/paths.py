"""
Property path resolution.

Resolves dot-separated property paths such as ``"album.owner.email"``
against mapped entity classes. Every segment is looked up
case-insensitively among the mapped columns and relationships of the
current class; relationships move the walk to their target class.

Resolved paths and the ordering operators built on top of them are cached
for the lifetime of the process. The caches are plain dicts: computing the
same entry twice is harmless, so writes are not synchronised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import ColumnProperty, RelationshipProperty, aliased
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from ..exceptions import PathNotFoundError, RepositoryError
from .mapping import find_mapper

logger = logging.getLogger(__name__)

OrderingOperator = Callable[[Select, ColumnElement], Select]


class OrderingOperation(str, Enum):
    """Ordering operations applicable to a statement."""

    ORDER_BY = "order_by"
    ORDER_BY_DESCENDING = "order_by_descending"
    THEN_BY = "then_by"
    THEN_BY_DESCENDING = "then_by_descending"

    @property
    def descending(self) -> bool:
        return self in (OrderingOperation.ORDER_BY_DESCENDING, OrderingOperation.THEN_BY_DESCENDING)

    @property
    def resets_ordering(self) -> bool:
        return self in (OrderingOperation.ORDER_BY, OrderingOperation.ORDER_BY_DESCENDING)


@dataclass(frozen=True)
class PathSegment:
    """One resolved step of a property path."""

    name: str
    owner: type
    target: type
    is_navigation: bool = False
    is_collection: bool = False


@dataclass(frozen=True)
class ResolvedPath:
    """A property path resolved against a root entity class."""

    root_type: type
    segments: Tuple[PathSegment, ...]

    @property
    def path(self) -> str:
        """Canonical spelling of the path, using the mapped attribute names."""
        return ".".join(segment.name for segment in self.segments)

    @property
    def leaf(self) -> PathSegment:
        return self.segments[-1]

    @property
    def leaf_type(self) -> type:
        return self.leaf.target

    @property
    def is_navigation(self) -> bool:
        return self.leaf.is_navigation

    @property
    def column_key(self) -> Optional[str]:
        return None if self.is_navigation else self.leaf.name

    @property
    def navigations(self) -> Tuple[PathSegment, ...]:
        return tuple(segment for segment in self.segments if segment.is_navigation)

    @property
    def through_collection(self) -> bool:
        return any(segment.is_collection for segment in self.segments)

    def accessor(self, obj: Any) -> Any:
        """Read the value at the end of the path from an instance.

        A None anywhere along the path yields None. Collection navigations
        yield a list with one value per element.
        """
        return _walk(obj, self.segments)

    def sort_key(self, obj: Any) -> Tuple[bool, Any]:
        """Comparable key placing None before any value."""
        value = self.accessor(obj)
        return (value is not None, value)

    def compare(self, left: Any, right: Any) -> int:
        left_key, right_key = self.sort_key(left), self.sort_key(right)
        if left_key < right_key:
            return -1
        if left_key > right_key:
            return 1
        return 0


def _walk(obj: Any, segments: Tuple[PathSegment, ...]) -> Any:
    value = obj
    for index, segment in enumerate(segments):
        if value is None:
            return None
        value = getattr(value, segment.name)
        if segment.is_collection and index < len(segments) - 1:
            return [_walk(item, segments[index + 1 :]) for item in value]
    return value


def _column_python_type(prop: ColumnProperty) -> type:
    column_type = prop.columns[0].type
    # Decorated types such as AutoString report the type of their implementation.
    for candidate in (column_type, getattr(column_type, "impl_instance", None)):
        if candidate is None:
            continue
        try:
            return candidate.python_type
        except NotImplementedError:
            continue
    return object


class PathResolver:
    """Resolves and caches property paths per entity class."""

    def __init__(self) -> None:
        self._paths: Dict[Tuple[type, str], ResolvedPath] = {}
        self._operators: Dict[Tuple[type, type, OrderingOperation], OrderingOperator] = {}
        self._members: Dict[type, Dict[str, Any]] = {}

    def _members_of(self, entity_type: type) -> Dict[str, Any]:
        members = self._members.get(entity_type)
        if members is None:
            mapper = find_mapper(entity_type)
            members = {} if mapper is None else {prop.key.lower(): prop for prop in mapper.attrs}
            self._members[entity_type] = members
        return members

    def resolve(self, root_type: type, path: str) -> ResolvedPath:
        """Resolve a property path against an entity class.

        Args:
            root_type: Entity class the path starts from
            path: Dot-separated property path, matched case-insensitively

        Returns:
            The resolved path

        Raises:
            PathNotFoundError: If a segment is not a mapped attribute of the
                class reached so far
        """
        cache_key = (root_type, path)
        resolved = self._paths.get(cache_key)
        if resolved is not None:
            return resolved

        names = [name.strip() for name in path.split(".")]
        segments = []
        current: Optional[type] = root_type
        for name in names:
            if current is None or not name:
                raise PathNotFoundError(root_type, path, name)
            prop = self._members_of(current).get(name.lower())
            if isinstance(prop, RelationshipProperty):
                target = prop.mapper.class_
                segments.append(PathSegment(prop.key, current, target, True, bool(prop.uselist)))
                current = target
            elif isinstance(prop, ColumnProperty):
                segments.append(PathSegment(prop.key, current, _column_python_type(prop)))
                current = None
            else:
                raise PathNotFoundError(root_type, path, name)

        resolved = ResolvedPath(root_type, tuple(segments))
        self._paths[cache_key] = resolved
        return resolved

    def try_resolve(self, root_type: type, path: str) -> Optional[ResolvedPath]:
        """Resolve a property path, returning None instead of raising."""
        try:
            return self.resolve(root_type, path)
        except PathNotFoundError as e:
            logger.debug(f"Unresolvable path: {e}")
            return None

    def get_ordering_operator(
        self, root_type: type, leaf_type: type, operation: OrderingOperation
    ) -> OrderingOperator:
        """Return the cached ordering operator for a type and operation."""
        cache_key = (root_type, leaf_type, operation)
        operator = self._operators.get(cache_key)
        if operator is None:
            operator = _build_ordering_operator(operation)
            self._operators[cache_key] = operator
        return operator

    def clear(self) -> None:
        self._paths.clear()
        self._operators.clear()
        self._members.clear()


def _build_ordering_operator(operation: OrderingOperation) -> OrderingOperator:
    def apply(statement: Select, expression: ColumnElement) -> Select:
        if operation.resets_ordering:
            statement = statement.order_by(None)
        return statement.order_by(expression.desc() if operation.descending else expression.asc())

    return apply


def bind_column(
    statement: Select, resolved: ResolvedPath, joins: Optional[Dict[Tuple[str, ...], Any]] = None
) -> Tuple[Select, ColumnElement]:
    """Make the column at the end of a resolved path usable in a statement.

    Scalar navigations are joined with ``LEFT OUTER JOIN`` against an alias
    per navigation chain; aliases are shared through ``joins`` so several
    paths over the same chain join it once.

    Returns:
        The possibly joined statement and the column expression

    Raises:
        RepositoryError: If the path ends on a navigation or crosses a collection
    """
    if resolved.is_navigation or resolved.through_collection:
        raise RepositoryError(f"Path '{resolved.path}' of {resolved.root_type.__name__} is not a scalar column path")
    joins = {} if joins is None else joins
    current: Any = resolved.root_type
    chain: Tuple[str, ...] = ()
    for segment in resolved.navigations:
        chain = chain + (segment.name,)
        alias = joins.get(chain)
        if alias is None:
            alias = aliased(segment.target)
            statement = statement.outerjoin(getattr(current, segment.name).of_type(alias))
            joins[chain] = alias
        current = alias
    return statement, getattr(current, resolved.leaf.name)


default_resolver = PathResolver()
