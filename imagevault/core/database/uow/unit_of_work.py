"""
Unit of work.

Owns the current :class:`UnitOfWorkScope` of one service scope. Callers get
the scope handle from here and pass it along; there is no ambient global
scope.
"""

from __future__ import annotations

import inspect
import logging
import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, Optional, TypeVar, Union

from .scope import UnitOfWorkScope

if TYPE_CHECKING:
    from ..services import ServiceScope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnitOfWork:
    """Hands out the current scope, replacing it once it has completed."""

    def __init__(self, service_scope: "ServiceScope") -> None:
        self._service_scope = service_scope
        self._lock = threading.Lock()
        self._current: Optional[UnitOfWorkScope] = None

    @property
    def current_scope(self) -> Optional[UnitOfWorkScope]:
        return self._current

    def create_scope(self) -> UnitOfWorkScope:
        """Return the current scope, creating a new one if there is none or it completed.

        The returned scope still has to be entered, either with ``begin()``
        or with ``async with``. Entering a scope that is already active nests
        into it.
        """
        with self._lock:
            if self._current is None or self._current.is_completed:
                self._current = UnitOfWorkScope(self._service_scope)
                logger.debug("New unit of work scope created")
            return self._current

    @asynccontextmanager
    async def scope(self) -> AsyncIterator[UnitOfWorkScope]:
        """Enter the current scope for the duration of the block.

        The scope is disposed on exit; call ``complete()`` inside the block to
        commit, otherwise the work is rolled back at the outermost exit.
        """
        scope = self.create_scope()
        await scope.begin()
        try:
            yield scope
        finally:
            await scope.dispose()

    async def execute(self, action: Callable[[UnitOfWorkScope], Union[T, Awaitable[T]]]) -> T:
        """Run an action inside a scope and complete it.

        Args:
            action: Sync or async callable receiving the scope

        Returns:
            Whatever the action returns
        """
        async with self.scope() as scope:
            result = action(scope)
            if inspect.isawaitable(result):
                result = await result
            await scope.complete()
            return result

    async def dispose(self) -> None:
        """Leave every open level of the current scope, rolling back uncompleted work."""
        with self._lock:
            scope, self._current = self._current, None
        if scope is None:
            return
        while scope.depth > 0:
            await scope.dispose()

    def __repr__(self) -> str:
        return f"UnitOfWork(current={self._current!r})"
