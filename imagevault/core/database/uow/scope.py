"""
Unit-of-work scope.

A scope spans every persistence context registered in its service scope and
holds one physical transaction per context that supports transactions.

Scopes are reentrant. Nested ``begin`` calls only raise the depth, so the
outermost ``begin``/``complete`` pair alone opens and commits the
transactions. A scope that drops back to depth zero without having been
completed is rolled back: pending entity states are detached from every
context and all open transactions are rolled back.

State machine::

    IDLE -> ACTIVE(depth) -> COMPLETING -> COMMITTED
                          \\-------------> ROLLED_BACK
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Type

from sqlalchemy.ext.asyncio import AsyncSessionTransaction

from ..contexts import DbContext
from ..exceptions import UnitOfWorkError
from ..repositories import BulkRepository, QueryRepository, Repository

if TYPE_CHECKING:
    from ..services import ServiceScope

logger = logging.getLogger(__name__)


class UnitOfWorkState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETING = "completing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class UnitOfWorkScope:
    """One logical transaction across the contexts of a service scope."""

    def __init__(self, service_scope: "ServiceScope") -> None:
        self._service_scope = service_scope
        self.depth = 0
        self.contexts: List[DbContext] = []
        self.transactions: List[AsyncSessionTransaction] = []
        self.is_completed = False
        self.is_rolled_back = False
        self._state = UnitOfWorkState.IDLE

    @property
    def state(self) -> UnitOfWorkState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self.depth > 0 and not self.is_completed

    async def begin(self) -> "UnitOfWorkScope":
        """Enter the scope.

        The first call opens one transaction per participating context;
        nested calls only increase the depth.

        Raises:
            UnitOfWorkError: If the scope already completed or rolled back
        """
        if self.is_completed:
            raise UnitOfWorkError(f"Cannot begin a scope that is {self._state.value}", state=self._state)
        if self.depth > 0:
            self.depth += 1
            logger.debug(f"Nested unit of work scope entered, depth={self.depth}")
            return self

        contexts = self._service_scope.resolve_contexts()
        try:
            for context in contexts:
                transaction = await context.begin_transaction()
                self.contexts.append(context)
                if transaction is not None:
                    self.transactions.append(transaction)
        except BaseException:
            await self._rollback_contexts()
            self.contexts.clear()
            self.transactions.clear()
            raise

        self.depth = 1
        self._state = UnitOfWorkState.ACTIVE
        logger.debug(
            f"Unit of work scope started: {len(self.contexts)} context(s), {len(self.transactions)} transaction(s)"
        )
        return self

    async def complete(self) -> None:
        """Mark the work done.

        Only takes effect at depth 1: every context saves its pending
        changes, then every open transaction is committed. Completing twice
        is a no-op.

        Raises:
            UnitOfWorkError: If the scope was rolled back or never begun
        """
        if self.is_rolled_back:
            raise UnitOfWorkError("Cannot complete: scope is rolled back", state=self._state)
        if self.is_completed:
            return
        if self.depth == 0:
            raise UnitOfWorkError("Cannot complete a scope that has not begun", state=self._state)
        if self.depth > 1:
            logger.debug(f"Inner complete ignored, depth={self.depth}")
            return

        self._state = UnitOfWorkState.COMPLETING
        try:
            for context in self.contexts:
                await context.save_changes()
            for context in self.contexts:
                await context.commit_transaction()
        except BaseException:
            # Left to dispose, which rolls back whatever is still open.
            self._state = UnitOfWorkState.ACTIVE
            raise
        self.transactions.clear()
        self.is_completed = True
        self._state = UnitOfWorkState.COMMITTED
        logger.info(f"Unit of work committed across {len(self.contexts)} context(s)")

    async def dispose(self) -> None:
        """Leave the scope.

        Decrements the depth. At depth zero an uncompleted scope is rolled
        back and marked completed.
        """
        if self.depth == 0:
            return
        self.depth -= 1
        if self.depth > 0:
            return

        if not self.is_completed:
            logger.warning("Unit of work scope disposed without completion, rolling back")
            try:
                await self._rollback_contexts()
            finally:
                self.is_rolled_back = True
                self.is_completed = True
                self._state = UnitOfWorkState.ROLLED_BACK
        self.contexts.clear()
        self.transactions.clear()

    async def _rollback_contexts(self) -> None:
        errors: List[BaseException] = []
        for context in self.contexts:
            context.detach_pending()
            try:
                await context.rollback_transaction()
            except Exception as e:
                logger.error(f"Rollback failed for {context!r}: {e}")
                errors.append(e)
        if errors:
            raise errors[0]

    def _require_active(self) -> None:
        if not self.is_active:
            raise UnitOfWorkError(f"No active unit of work scope (state={self._state.value})", state=self._state)

    def get_context(self, context_type: Type[DbContext]) -> DbContext:
        self._require_active()
        return self._service_scope.get_context(context_type)

    def get_repository(self, entity_type: type) -> Repository:
        """Return the repository for an entity, bound to this scope's context.

        Raises:
            UnitOfWorkError: If the scope is not active
            RepositoryError: If no context serves the entity
        """
        self._require_active()
        return self._service_scope.get_repository(entity_type)

    def get_query_repository(self, entity_type: type) -> QueryRepository:
        self._require_active()
        return self._service_scope.get_query_repository(entity_type)

    def get_bulk_repository(self, entity_type: type) -> BulkRepository:
        self._require_active()
        return self._service_scope.get_bulk_repository(entity_type)

    async def __aenter__(self) -> "UnitOfWorkScope":
        return await self.begin()

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        await self.dispose()
        return None

    def __repr__(self) -> str:
        return f"UnitOfWorkScope(state={self._state.value}, depth={self.depth})"
