"""
Generic mutating repository.

Extends :class:`QueryRepository` with inserts, updates and deletes. When
changes reach the store is decided by the context's
:class:`SaveChangesStrategy`:

- ``PER_OPERATION`` saves after every mutating call.
- ``PER_UNIT_OF_WORK`` leaves saving to the owning unit-of-work scope, but
  saves right away when the context has no scope transaction open, so the
  repository stays usable outside a scope.

Inside a scope transaction "save" means flush; the scope commits.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Union

from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import make_transient_to_detached

from ...guard import not_none
from ..contexts import SaveChangesStrategy
from ..query.filters import Predicate
from ..query.mapping import entity_mapper, key_criteria, normalize_key
from ..query.related import RequestedPaths
from .query import EntityType, QueryRepository, Sorting

logger = logging.getLogger(__name__)

UpdateAction = Callable[[Any], Union[None, Awaitable[None]]]


class Repository(QueryRepository[EntityType]):
    """Read-write repository for one entity class."""

    # ------------------------------------------------------------------
    # loads for update
    # ------------------------------------------------------------------

    async def get_for_update(self, key: Any, related_properties: RequestedPaths = None) -> Optional[EntityType]:
        """Get an entity by key for modification.

        Query-only related properties are not loaded.
        """
        statement = self._select(related_properties, for_querying=False).where(key_criteria(self.entity_type, key))
        return await self._fetch_first(statement, track=True)

    async def get_for_update_by(
        self, predicate: Predicate, related_properties: RequestedPaths = None, sorting: Sorting = None
    ) -> Optional[EntityType]:
        statement = self._list_statement(predicate, related_properties, None, None, sorting, for_querying=False)
        return await self._fetch_first(statement, track=True)

    async def get_list_for_update(
        self,
        predicate: Optional[Predicate] = None,
        related_properties: RequestedPaths = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        sorting: Sorting = None,
    ) -> List[EntityType]:
        statement = self._list_statement(predicate, related_properties, skip, take, sorting, for_querying=False)
        return await self._fetch_entities(statement, track=True)

    # ------------------------------------------------------------------
    # save policy
    # ------------------------------------------------------------------

    @property
    def saves_immediately(self) -> bool:
        """Whether mutations are saved by the repository call itself."""
        return (
            self.options.save_changes_strategy == SaveChangesStrategy.PER_OPERATION
            or not self.context.has_open_transaction
        )

    async def _save_per_policy(self) -> bool:
        """Save pending changes if the strategy asks for it now.

        Returns:
            True if the changes were saved
        """
        if self.saves_immediately:
            await self.context.save_changes()
            return True
        return False

    def _has_unassigned_key(self, entity: Any) -> bool:
        return any(getattr(entity, name, None) is None for name in self.key_names)

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------

    async def insert(self, entity: EntityType) -> EntityType:
        """Add a new entity.

        When the key is generated by the database the pending insert is
        flushed immediately so the caller sees the generated key.

        Args:
            entity: New entity instance

        Returns:
            The same instance, now tracked by the session
        """
        not_none(entity, "entity")
        self.session.add(entity)
        if self._has_unassigned_key(entity):
            await self.session.flush()
        await self._save_per_policy()
        logger.debug(f"Inserted {entity!r}")
        return entity

    async def update(self, entity: EntityType) -> EntityType:
        """Attach an entity and mark it for update.

        Args:
            entity: Entity instance, tracked or detached

        Returns:
            The tracked instance holding the entity's state
        """
        not_none(entity, "entity")
        tracked = await self.session.merge(entity)
        await self._save_per_policy()
        return tracked

    async def update_fields(self, key: Any, patch: Mapping[str, Any]) -> EntityType:
        """Update only the given fields of an entity, without loading it.

        A stub holding only the key is attached to the session and every
        patch entry naming a column of the entity, key columns excluded, is
        marked modified. Other columns are never written. Unknown names are
        ignored; an empty effective patch still goes through the save policy.

        When the save is deferred to the scope, the columns outside the patch
        are loaded before the patch is applied, so the returned entity is
        fully readable and only the patched columns are dirty.

        Args:
            key: Primary key value, a tuple for composite keys
            patch: Mapping of field name to new value

        Returns:
            The tracked entity

        Raises:
            RepositoryError: If the key does not match the primary key
            InvalidRequestError: If the save is deferred and no row has the key
        """
        not_none(patch, "patch")
        values = normalize_key(self.entity_type, key)
        mapper = entity_mapper(self.entity_type)
        columns = [prop.key for prop in mapper.column_attrs if prop.key not in self.key_names]
        changes = {name: value for name, value in patch.items() if name in columns}

        identity = mapper.identity_key_from_primary_key(list(values))
        entity = self.session.identity_map.get(identity)
        if entity is None:
            entity = self.entity_type(**dict(zip(self.key_names, values)))
            make_transient_to_detached(entity)
            self.session.add(entity)
            # Stub attributes are placeholders, never read or written back.
            unloaded = [prop.key for prop in mapper.attrs if prop.key not in self.key_names]
            self.session.expire(entity, unloaded)
            if not self.saves_immediately:
                await self._load_unpatched(entity, [name for name in columns if name not in changes])

        for name, value in changes.items():
            setattr(entity, name, value)
        logger.debug(f"Sparse update of {self.entity_type.__name__}{values}: {sorted(changes)}")

        if await self._save_per_policy():
            await self.session.refresh(entity)
        return entity

    async def _load_unpatched(self, stub: Any, names: List[str]) -> None:
        if not names:
            return
        try:
            await self.session.refresh(stub, attribute_names=names)
        except InvalidRequestError:
            self.session.expunge(stub)
            raise

    async def update_with(
        self, key: Any, action: UpdateAction, related_properties: RequestedPaths = None
    ) -> Optional[EntityType]:
        """Load an entity for update and apply a mutator to it.

        Args:
            key: Primary key value
            action: Sync or async callable receiving the entity
            related_properties: Navigation paths to load before mutating

        Returns:
            The updated entity, or None if it does not exist
        """
        not_none(action, "action")
        entity = await self.get_for_update(key, related_properties)
        if entity is None:
            return None
        outcome = action(entity)
        if inspect.isawaitable(outcome):
            await outcome
        await self._save_per_policy()
        return entity

    async def delete(self, entity: EntityType) -> None:
        """Delete an entity instance, attaching it first if detached."""
        not_none(entity, "entity")
        if entity not in self.session:
            entity = await self.session.merge(entity)
        await self.session.delete(entity)
        await self._save_per_policy()

    async def delete_by_key(self, key: Any) -> None:
        """Delete the entity with the given key; absent entities are ignored."""
        entity = await self.get_for_update(key)
        if entity is None:
            logger.debug(f"{self.entity_type.__name__}{normalize_key(self.entity_type, key)} not found, nothing to delete")
            return
        await self.session.delete(entity)
        await self._save_per_policy()

    async def delete_where(self, predicate: Predicate) -> int:
        """Delete every entity matching a predicate.

        Returns:
            Number of deleted entities, zero when nothing matched
        """
        not_none(predicate, "predicate")
        entities = await self.get_list_for_update(predicate)
        if not entities:
            return 0
        for entity in entities:
            await self.session.delete(entity)
        await self._save_per_policy()
        return len(entities)
