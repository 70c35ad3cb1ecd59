"""
Persistence contexts.

A persistence context wraps one ``AsyncSession`` together with the options
that drive the generic repositories bound to it. Units of work open at most
one physical transaction per context and decide when pending changes are
flushed and committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Tuple, Type

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from .entities import Album, Image, ImageTagLink, Tag, User

logger = logging.getLogger(__name__)


class SaveChangesStrategy(str, Enum):
    """When repositories write pending changes to the store."""

    PER_OPERATION = "per_operation"
    PER_UNIT_OF_WORK = "per_unit_of_work"


@dataclass
class RepositoryOptions:
    """Per-context repository behaviour."""

    related_properties_max_depth: int = 3
    save_changes_strategy: SaveChangesStrategy = SaveChangesStrategy.PER_UNIT_OF_WORK


class DbContext:
    """One persistence context bound to a single async session.

    Subclasses declare which entity classes they serve. Entities listed in
    ``__entities__`` get full repositories, entities listed in
    ``__read_only_entities__`` only get query repositories.
    """

    __entities__: ClassVar[Tuple[type, ...]] = ()
    __read_only_entities__: ClassVar[Tuple[type, ...]] = ()
    supports_transactions: ClassVar[bool] = True

    def __init__(self, session: AsyncSession, options: Optional[RepositoryOptions] = None) -> None:
        """Initialize the context.

        Args:
            session: Async session owned by this context
            options: Repository options, defaults when omitted
        """
        self.session = session
        self.options = options or RepositoryOptions()
        self.current_transaction: Optional[AsyncSessionTransaction] = None

    @classmethod
    def serves(cls, entity_type: type, read_only: bool = False) -> bool:
        """Check whether this context type serves the given entity.

        Args:
            entity_type: Entity class to look up
            read_only: Also accept entities registered as read-only

        Returns:
            True if a repository for the entity can be bound to this context
        """
        if entity_type in cls.__entities__:
            return True
        return read_only and entity_type in cls.__read_only_entities__

    @property
    def has_pending_changes(self) -> bool:
        return bool(self.session.new or self.session.dirty or self.session.deleted)

    @property
    def has_open_transaction(self) -> bool:
        return self.current_transaction is not None and self.current_transaction.is_active

    async def begin_transaction(self) -> Optional[AsyncSessionTransaction]:
        """Open the physical transaction used by a unit-of-work scope.

        A transaction the session already began implicitly is adopted rather
        than nested. Contexts without transaction support return None.

        Returns:
            The open transaction, or None when transactions are not supported
        """
        if not self.supports_transactions:
            return None
        if self.has_open_transaction:
            return self.current_transaction
        if self.session.in_transaction():
            self.current_transaction = self.session.get_transaction()
        else:
            self.current_transaction = await self.session.begin()
        logger.debug(f"{type(self).__name__}: transaction opened")
        return self.current_transaction

    async def commit_transaction(self) -> None:
        """Commit the scope transaction, if one is open."""
        transaction, self.current_transaction = self.current_transaction, None
        if transaction is not None and transaction.is_active:
            await transaction.commit()
            logger.debug(f"{type(self).__name__}: transaction committed")

    async def rollback_transaction(self) -> None:
        """Roll back the scope transaction, if one is open."""
        transaction, self.current_transaction = self.current_transaction, None
        if transaction is not None and transaction.is_active:
            await transaction.rollback()
            logger.debug(f"{type(self).__name__}: transaction rolled back")

    async def save_changes(self) -> None:
        """Write pending changes.

        Inside an open scope transaction the changes are flushed only, the
        scope commits them. Without one they are committed right away.
        """
        if self.has_open_transaction:
            await self.session.flush()
        else:
            await self.session.commit()

    def detach_pending(self) -> int:
        """Detach every added, modified or deleted entity from the session.

        Returns:
            Number of detached entities
        """
        pending = [*self.session.new, *self.session.dirty, *self.session.deleted]
        detached = 0
        for entity in pending:
            if entity in self.session:
                self.session.expunge(entity)
                detached += 1
        if detached:
            logger.debug(f"{type(self).__name__}: detached {detached} pending entities")
        return detached

    async def close(self) -> None:
        self.current_transaction = None
        await self.session.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(transaction_open={self.has_open_transaction})"


class AppDbContext(DbContext):
    """Application context serving the image catalogue entities."""

    __entities__ = (User, Album, Image, Tag)
    __read_only_entities__ = (ImageTagLink,)


def context_type_for(entity_type: type, context_types: Tuple[Type[DbContext], ...], read_only: bool = False):
    """Find the first context type serving an entity, or None."""
    for context_type in context_types:
        if context_type.serves(entity_type, read_only=read_only):
            return context_type
    return None
