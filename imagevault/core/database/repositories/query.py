"""
Generic read-only repository.

A :class:`QueryRepository` serves one entity class out of one persistence
context. Statements are composed at call time from the predicate, the
requested related properties and the sorting details, then executed on the
context's async session.

Reads do not track: entities a read brings into the session are expunged
before they are returned, so changes made to them are never saved. Entities
the session already tracked stay tracked. Loads meant for modification live
on :class:`Repository` and keep their results attached.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Generic, List, Optional, Sequence, Set, Tuple, Type, TypeVar, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import QueryableAttribute
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import SQLModel

from ...guard import in_range
from ..contexts import DbContext, RepositoryOptions
from ..query.filters import Predicate, apply_predicate
from ..query.mapping import key_criteria, primary_key_names
from ..query.paging import PagedList
from ..query.paths import bind_column, default_resolver
from ..query.related import RequestedPaths, apply_includes
from ..query.sorting import SortingDetails, apply_sorting

logger = logging.getLogger(__name__)

EntityType = TypeVar("EntityType", bound=SQLModel)

Projection = Union[str, ColumnElement, QueryableAttribute, Sequence[Union[str, ColumnElement, QueryableAttribute]]]
Sorting = Union[SortingDetails, str, None]


def _coerce_sorting(sorting: Sorting) -> Optional[SortingDetails]:
    if isinstance(sorting, str):
        return SortingDetails.parse(sorting)
    return sorting


def apply_skip_take(statement: Select, skip: Optional[int], take: Optional[int]) -> Select:
    """Apply offset and limit; values below 1 are ignored."""
    if skip is not None and skip >= 1:
        statement = statement.offset(skip)
    if take is not None and take >= 1:
        statement = statement.limit(take)
    return statement


class QueryRepository(Generic[EntityType]):
    """Read-only repository for one entity class."""

    def __init__(self, context: DbContext, entity_type: Type[EntityType]) -> None:
        """Initialize the repository.

        Args:
            context: Persistence context the repository reads from
            entity_type: SQLModel entity class served by this repository

        Raises:
            RepositoryError: If the entity is not mapped or has no primary key
        """
        self.context = context
        self.entity_type = entity_type
        self.key_names: Tuple[str, ...] = primary_key_names(entity_type)

    @property
    def session(self) -> AsyncSession:
        return self.context.session

    @property
    def options(self) -> RepositoryOptions:
        return self.context.options

    # ------------------------------------------------------------------
    # statement building
    # ------------------------------------------------------------------

    def _select(self, related_properties: RequestedPaths = None, for_querying: bool = True) -> Select:
        statement = select(self.entity_type)
        return apply_includes(
            statement,
            self.entity_type,
            related_properties,
            max_depth=self.options.related_properties_max_depth,
            for_querying=for_querying,
        )

    def _list_statement(
        self,
        predicate: Optional[Predicate],
        related_properties: RequestedPaths,
        skip: Optional[int],
        take: Optional[int],
        sorting: Sorting,
        for_querying: bool = True,
    ) -> Select:
        statement = self._select(related_properties, for_querying)
        statement = apply_predicate(statement, self.entity_type, predicate)
        statement = apply_sorting(statement, self.entity_type, _coerce_sorting(sorting))
        return apply_skip_take(statement, skip, take)

    def _projection_statement(self, projection: Projection) -> Tuple[Select, Dict[Tuple[str, ...], Any], bool]:
        items = [projection] if isinstance(projection, (str, ColumnElement, QueryableAttribute)) else list(projection)
        if not items:
            raise ValueError("projection must name at least one column")
        joins: Dict[Tuple[str, ...], Any] = {}
        statement = select().select_from(self.entity_type)
        columns = []
        for item in items:
            if isinstance(item, str):
                statement, column = bind_column(statement, default_resolver.resolve(self.entity_type, item), joins)
                columns.append(column)
            else:
                columns.append(item)
        statement = statement.add_columns(*columns)
        return statement, joins, len(columns) == 1

    def _snapshot_tracked(self) -> Tuple[Set[Any], Set[int]]:
        # Pending entities join the identity map when a read autoflushes them.
        return set(self.session.identity_map.keys()), {id(entity) for entity in self.session.new}

    def _detach_loaded(self, snapshot: Tuple[Set[Any], Set[int]]) -> None:
        """Expunge every entity the last read brought into the session."""
        known_keys, pending = snapshot
        loaded = [
            entity
            for identity, entity in list(self.session.identity_map.items())
            if identity not in known_keys and id(entity) not in pending
        ]
        for entity in loaded:
            if entity in self.session:
                self.session.expunge(entity)
        if loaded:
            logger.debug(f"{self!r}: detached {len(loaded)} entities loaded by a read")

    async def _fetch_entities(self, statement: Select, track: bool = False) -> List[EntityType]:
        snapshot = None if track else self._snapshot_tracked()
        result = await self.session.execute(statement)
        entities = list(result.unique().scalars().all())
        if snapshot is not None:
            self._detach_loaded(snapshot)
        return entities

    async def _fetch_first(self, statement: Select, track: bool = False) -> Optional[EntityType]:
        snapshot = None if track else self._snapshot_tracked()
        result = await self.session.execute(statement.limit(1))
        entity = result.unique().scalars().first()
        if snapshot is not None:
            self._detach_loaded(snapshot)
        return entity

    async def _fetch_projection(self, statement: Select, scalar: bool) -> List[Any]:
        result = await self.session.execute(statement)
        return list(result.scalars().all()) if scalar else list(result.all())

    # ------------------------------------------------------------------
    # single entities
    # ------------------------------------------------------------------

    async def get(self, key: Any, related_properties: RequestedPaths = None) -> Optional[EntityType]:
        """Get an entity by primary key.

        Args:
            key: Primary key value, a tuple for composite keys
            related_properties: Navigation paths to eager-load

        Returns:
            The entity, or None if not found
        """
        statement = self._select(related_properties).where(key_criteria(self.entity_type, key))
        return await self._fetch_first(statement)

    async def get_by(
        self, predicate: Predicate, related_properties: RequestedPaths = None, sorting: Sorting = None
    ) -> Optional[EntityType]:
        """Get the first entity matching a predicate, in sort order."""
        statement = self._list_statement(predicate, related_properties, None, None, sorting)
        return await self._fetch_first(statement)

    async def get_projection(self, projection: Projection, key: Any) -> Any:
        """Get selected columns of one entity by primary key.

        Returns:
            A scalar for a single column, a row for several, or None
        """
        statement, _, scalar = self._projection_statement(projection)
        statement = statement.where(key_criteria(self.entity_type, key)).limit(1)
        values = await self._fetch_projection(statement, scalar)
        return values[0] if values else None

    async def get_projection_by(self, projection: Projection, predicate: Predicate, sorting: Sorting = None) -> Any:
        """Get selected columns of the first entity matching a predicate."""
        statement, joins, scalar = self._projection_statement(projection)
        statement = apply_predicate(statement, self.entity_type, predicate)
        statement = apply_sorting(statement, self.entity_type, _coerce_sorting(sorting), joins=joins).limit(1)
        values = await self._fetch_projection(statement, scalar)
        return values[0] if values else None

    # ------------------------------------------------------------------
    # lists
    # ------------------------------------------------------------------

    async def get_list(
        self,
        predicate: Optional[Predicate] = None,
        related_properties: RequestedPaths = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        sorting: Sorting = None,
    ) -> List[EntityType]:
        """List entities.

        The predicate is applied first, then the sorting (primary key order
        when none is given), then skip and take.

        Args:
            predicate: Filter, see :mod:`imagevault.core.database.query.filters`
            related_properties: Navigation paths to eager-load
            skip: Number of entities to skip, ignored below 1
            take: Maximum number of entities, ignored below 1
            sorting: Sorting details or a compact sort string like ``"-size,name"``

        Returns:
            Matching entities
        """
        statement = self._list_statement(predicate, related_properties, skip, take, sorting)
        return await self._fetch_entities(statement)

    async def get_list_projection(
        self,
        projection: Projection,
        predicate: Optional[Predicate] = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        sorting: Sorting = None,
    ) -> List[Any]:
        """List selected columns only.

        Returns:
            Scalars for a single column, rows for several
        """
        statement, joins, scalar = self._projection_statement(projection)
        statement = apply_predicate(statement, self.entity_type, predicate)
        statement = apply_sorting(statement, self.entity_type, _coerce_sorting(sorting), joins=joins)
        statement = apply_skip_take(statement, skip, take)
        return await self._fetch_projection(statement, scalar)

    async def get_paged_list(
        self,
        page_index: int,
        page_size: int,
        predicate: Optional[Predicate] = None,
        related_properties: RequestedPaths = None,
        sorting: Sorting = None,
    ) -> PagedList[EntityType]:
        """Get one page of entities.

        Args:
            page_index: Zero-based page index
            page_size: Number of entities per page
            predicate: Filter applied before counting and paging
            related_properties: Navigation paths to eager-load
            sorting: Sorting details, primary key order when omitted

        Returns:
            The page, with the total count of the filtered set
        """
        in_range(page_index, "page_index", minimum=0)
        in_range(page_size, "page_size", minimum=1)
        total_count = await self.count(predicate)
        statement = self._list_statement(predicate, related_properties, page_index * page_size, page_size, sorting)
        items = await self._fetch_entities(statement)
        return PagedList(items, total_count, page_index, page_size)

    async def get_paged_list_projection(
        self,
        projection: Projection,
        page_index: int,
        page_size: int,
        predicate: Optional[Predicate] = None,
        sorting: Sorting = None,
    ) -> PagedList[Any]:
        """Get one page of selected columns."""
        in_range(page_index, "page_index", minimum=0)
        in_range(page_size, "page_size", minimum=1)
        total_count = await self.count(predicate)
        items = await self.get_list_projection(projection, predicate, page_index * page_size, page_size, sorting)
        return PagedList(items, total_count, page_index, page_size)

    # ------------------------------------------------------------------
    # aggregates
    # ------------------------------------------------------------------

    async def count(self, predicate: Optional[Predicate] = None) -> int:
        statement = apply_predicate(select(func.count()).select_from(self.entity_type), self.entity_type, predicate)
        result = await self.session.execute(statement)
        return int(result.scalar_one())

    async def exists(self, predicate: Optional[Predicate] = None) -> bool:
        key_column = getattr(self.entity_type, self.key_names[0])
        statement = apply_predicate(select(key_column), self.entity_type, predicate).limit(1)
        result = await self.session.execute(statement)
        return result.first() is not None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.entity_type.__name__})"
