"""
Bulk repository.

Writes many entities with one executemany statement per operation instead of
tracking every instance in the session:

- ``bulk_insert`` runs an ORM bulk ``INSERT``.
- ``bulk_update`` runs ``UPDATE ... WHERE`` matched by primary key or by
  ``merge_by`` columns.
- ``bulk_delete`` runs ``DELETE ... WHERE`` matched the same way.

The written columns are chosen per call with ``properties_to_include`` or
``properties_to_exclude``; setting both is a configuration error. Bulk
statements bypass the identity map: entities passed in are not attached, and
instances the session already tracks are not refreshed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlalchemy import and_, bindparam, delete, insert, update
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.schema import Column

from ...guard import not_none
from ..contexts import DbContext
from ..exceptions import RepositoryError
from ..query.mapping import entity_mapper
from .query import EntityType
from .repository import Repository

logger = logging.getLogger(__name__)

MATCH_PREFIX = "match_"
SET_PREFIX = "set_"


class EntityColumns:
    """Column selection for the bulk operations of one entity class."""

    def __init__(self, entity_type: type, key_names: Tuple[str, ...]) -> None:
        self.entity_type = entity_type
        self.key_names = key_names
        mapper = entity_mapper(entity_type)
        self.table = mapper.local_table
        self.columns: Dict[str, Column] = {prop.key: prop.columns[0] for prop in mapper.column_attrs}

    def _check_names(self, names: Sequence[str], option: str) -> None:
        unknown = [name for name in names if name not in self.columns]
        if unknown:
            raise RepositoryError(f"{option} names unknown columns of {self.entity_type.__name__}: {unknown}")

    def _selected(
        self, properties_to_include: Optional[Sequence[str]], properties_to_exclude: Optional[Sequence[str]]
    ) -> List[str]:
        if properties_to_include is not None and properties_to_exclude is not None:
            raise RepositoryError("Setting both properties_to_include and properties_to_exclude is not allowed")
        if properties_to_include is not None:
            self._check_names(properties_to_include, "properties_to_include")
            return [name for name in self.columns if name in properties_to_include]
        if properties_to_exclude is not None:
            self._check_names(properties_to_exclude, "properties_to_exclude")
            return [name for name in self.columns if name not in properties_to_exclude]
        return list(self.columns)

    def merge_by(self, merge_by: Optional[Sequence[str]]) -> List[str]:
        """Return the columns rows are matched by, the primary key by default.

        Raises:
            RepositoryError: If the merge-by list is empty, repeats a name or
                names an unknown column
        """
        if merge_by is None:
            return list(self.key_names)
        names = [merge_by] if isinstance(merge_by, str) else list(merge_by)
        if not names or len(set(names)) != len(names):
            raise RepositoryError(f"Ambiguous merge_by properties for {self.entity_type.__name__}: {names}")
        self._check_names(names, "merge_by")
        return names

    def for_insert(
        self, properties_to_include: Optional[Sequence[str]], properties_to_exclude: Optional[Sequence[str]]
    ) -> List[str]:
        """Return the inserted columns; key columns are always part of them."""
        selected = self._selected(properties_to_include, properties_to_exclude)
        return [name for name in self.columns if name in self.key_names or name in selected]

    def for_update(
        self,
        properties_to_include: Optional[Sequence[str]],
        properties_to_exclude: Optional[Sequence[str]],
        match_by: Sequence[str],
    ) -> List[str]:
        """Return the updated columns; key and merge-by columns are never set."""
        selected = self._selected(properties_to_include, properties_to_exclude)
        names = [name for name in selected if name not in match_by and name not in self.key_names]
        if not names:
            raise RepositoryError(f"Bulk update of {self.entity_type.__name__} has no column to set")
        return names

    def match_criteria(self, match_by: Sequence[str]) -> ColumnElement[bool]:
        criteria = []
        for name in match_by:
            column = self.columns[name]
            criteria.append(column == bindparam(f"{MATCH_PREFIX}{name}", type_=column.type))
        return and_(*criteria)


class BulkRepository(Repository[EntityType]):
    """Repository adding executemany inserts, updates and deletes."""

    def __init__(self, context: DbContext, entity_type: Type[EntityType]) -> None:
        super().__init__(context, entity_type)
        self.entity_columns = EntityColumns(entity_type, self.key_names)

    def _materialize(self, entities: Iterable[EntityType]) -> List[EntityType]:
        items = list(not_none(entities, "entities"))
        for entity in items:
            if not isinstance(entity, self.entity_type):
                raise TypeError(f"Expected {self.entity_type.__name__} entities, got {type(entity).__name__}")
        return items

    async def _execute_many(self, statement: Any, rows: List[Dict[str, Any]]) -> None:
        # Pending session changes go first so the bulk statement sees them.
        if self.context.has_pending_changes:
            await self.session.flush()
        await self.session.execute(statement, rows)
        await self._save_per_policy()

    async def bulk_insert(
        self,
        entities: Iterable[EntityType],
        properties_to_include: Optional[Sequence[str]] = None,
        properties_to_exclude: Optional[Sequence[str]] = None,
    ) -> int:
        """Insert entities with one executemany statement.

        Key columns holding None are left out so the database generates
        them; generated keys are not copied back to the entities.

        Args:
            entities: Entities to insert
            properties_to_include: Only insert these columns
            properties_to_exclude: Insert every column except these

        Returns:
            Number of entities submitted

        Raises:
            RepositoryError: If both property lists are set or one names an unknown column
        """
        items = self._materialize(entities)
        names = self.entity_columns.for_insert(properties_to_include, properties_to_exclude)
        if not items:
            return 0
        rows = []
        for entity in items:
            row = {name: getattr(entity, name) for name in names}
            for name in self.key_names:
                if row.get(name) is None:
                    row.pop(name, None)
            rows.append(row)
        await self._execute_many(insert(self.entity_type), rows)
        logger.debug(f"Bulk inserted {len(rows)} {self.entity_type.__name__} rows: columns={names}")
        return len(rows)

    async def bulk_update(
        self,
        entities: Iterable[EntityType],
        properties_to_include: Optional[Sequence[str]] = None,
        properties_to_exclude: Optional[Sequence[str]] = None,
        merge_by: Optional[Sequence[str]] = None,
    ) -> int:
        """Update the rows matching the entities with one executemany statement.

        Args:
            entities: Entities holding the new values
            properties_to_include: Only update these columns
            properties_to_exclude: Update every column except these
            merge_by: Columns rows are matched by, the primary key by default

        Returns:
            Number of entities submitted

        Raises:
            RepositoryError: If both property lists are set, the merge-by list
                is ambiguous or no column is left to set
        """
        items = self._materialize(entities)
        match_by = self.entity_columns.merge_by(merge_by)
        names = self.entity_columns.for_update(properties_to_include, properties_to_exclude, match_by)
        if not items:
            return 0
        columns = self.entity_columns.columns
        statement = (
            update(self.entity_columns.table)
            .where(self.entity_columns.match_criteria(match_by))
            .values({columns[name]: bindparam(f"{SET_PREFIX}{name}", type_=columns[name].type) for name in names})
        )
        rows = [
            {
                **{f"{MATCH_PREFIX}{name}": getattr(entity, name) for name in match_by},
                **{f"{SET_PREFIX}{name}": getattr(entity, name) for name in names},
            }
            for entity in items
        ]
        await self._execute_many(statement, rows)
        logger.debug(f"Bulk updated {len(rows)} {self.entity_type.__name__} rows by {match_by}: columns={names}")
        return len(rows)

    async def bulk_delete(self, entities: Iterable[EntityType], merge_by: Optional[Sequence[str]] = None) -> int:
        """Delete the rows matching the entities with one executemany statement.

        Args:
            entities: Entities identifying the rows
            merge_by: Columns rows are matched by, the primary key by default

        Returns:
            Number of entities submitted

        Raises:
            RepositoryError: If the merge-by list is ambiguous
        """
        items = self._materialize(entities)
        match_by = self.entity_columns.merge_by(merge_by)
        if not items:
            return 0
        statement = delete(self.entity_columns.table).where(self.entity_columns.match_criteria(match_by))
        rows = [{f"{MATCH_PREFIX}{name}": getattr(entity, name) for name in match_by} for entity in items]
        await self._execute_many(statement, rows)
        logger.debug(f"Bulk deleted {len(rows)} {self.entity_type.__name__} rows by {match_by}")
        return len(rows)
