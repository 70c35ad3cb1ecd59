"""
Explicit service registration and per-operation resolution scopes.

Persistence contexts are registered once at start-up on a
:class:`ServiceRegistry`. Each logical operation (a request, a job) then
opens a :class:`ServiceScope`, which lazily creates one context instance per
registered type and hands out repositories bound to those contexts::

    registry = ServiceRegistry(settings.repository.to_options())
    registry.add_db_context(AppDbContext, create_sessionmaker(engine))

    async with registry.create_scope() as services:
        async with services.unit_of_work.scope() as scope:
            images = scope.get_repository(Image)
            ...
            await scope.complete()
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy.ext.asyncio import AsyncSession

from .contexts import DbContext, RepositoryOptions, context_type_for
from .exceptions import RepositoryError
from .repositories import BulkRepository, QueryRepository, Repository
from .uow import UnitOfWork

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


@dataclass
class ContextRegistration:
    context_type: Type[DbContext]
    session_factory: SessionFactory
    options: RepositoryOptions


class ServiceRegistry:
    """Start-up registry of persistence context types."""

    def __init__(self, default_options: Optional[RepositoryOptions] = None) -> None:
        """Initialize the registry.

        Args:
            default_options: Options every registration starts from
        """
        self.default_options = default_options or RepositoryOptions()
        self._registrations: Dict[Type[DbContext], ContextRegistration] = {}

    def add_db_context(
        self,
        context_type: Type[DbContext],
        session_factory: SessionFactory,
        configure: Optional[Callable[[RepositoryOptions], None]] = None,
    ) -> "ServiceRegistry":
        """Register a persistence context type.

        Registering the same type again keeps the first registration.

        Args:
            context_type: DbContext subclass to register
            session_factory: Callable returning a new AsyncSession
            configure: Optional callback adjusting the context's options

        Returns:
            The registry, for chaining
        """
        if context_type in self._registrations:
            logger.debug(f"{context_type.__name__} already registered, keeping the first registration")
            return self
        options = dataclasses.replace(self.default_options)
        if configure is not None:
            configure(options)
        self._registrations[context_type] = ContextRegistration(context_type, session_factory, options)
        logger.info(
            f"Registered {context_type.__name__}: entities="
            f"{[entity.__name__ for entity in context_type.__entities__]}, options={options}"
        )
        return self

    @property
    def context_types(self) -> Tuple[Type[DbContext], ...]:
        return tuple(self._registrations)

    def get_registration(self, context_type: Type[DbContext]) -> ContextRegistration:
        registration = self._registrations.get(context_type)
        if registration is None:
            raise RepositoryError(f"{context_type.__name__} is not registered")
        return registration

    def create_scope(self) -> "ServiceScope":
        return ServiceScope(self)


class ServiceScope:
    """Resolution scope owning the context instances of one logical operation."""

    def __init__(self, registry: ServiceRegistry) -> None:
        self.registry = registry
        self._contexts: Dict[Type[DbContext], DbContext] = {}
        self._repositories: Dict[Tuple[type, str], QueryRepository] = {}
        self._unit_of_work: Optional[UnitOfWork] = None

    def get_context(self, context_type: Type[DbContext]) -> DbContext:
        """Return this scope's instance of a context type, creating it on first use."""
        context = self._contexts.get(context_type)
        if context is None:
            registration = self.registry.get_registration(context_type)
            context = context_type(registration.session_factory(), dataclasses.replace(registration.options))
            self._contexts[context_type] = context
        return context

    def resolve_contexts(self) -> List[DbContext]:
        """Return an instance of every registered context type."""
        return [self.get_context(context_type) for context_type in self.registry.context_types]

    def _context_for(self, entity_type: type, read_only: bool) -> DbContext:
        context_type = context_type_for(entity_type, self.registry.context_types, read_only=read_only)
        if context_type is None:
            kind = "query repository" if read_only else "repository"
            raise RepositoryError(f"No registered context provides a {kind} for {entity_type.__name__}")
        return self.get_context(context_type)

    def get_repository(self, entity_type: type) -> Repository:
        """Return the mutating repository of an entity.

        Raises:
            RepositoryError: If no registered context serves the entity
        """
        cache_key = (entity_type, "write")
        repository = self._repositories.get(cache_key)
        if repository is None:
            repository = Repository(self._context_for(entity_type, read_only=False), entity_type)
            self._repositories[cache_key] = repository
        return repository

    def get_query_repository(self, entity_type: type) -> QueryRepository:
        """Return the read-only repository of an entity, read-only entities included.

        Raises:
            RepositoryError: If no registered context serves the entity
        """
        cache_key = (entity_type, "read")
        repository = self._repositories.get(cache_key)
        if repository is None:
            repository = QueryRepository(self._context_for(entity_type, read_only=True), entity_type)
            self._repositories[cache_key] = repository
        return repository

    def get_bulk_repository(self, entity_type: type) -> BulkRepository:
        """Return the bulk repository of an entity.

        Raises:
            RepositoryError: If no registered context serves the entity
        """
        cache_key = (entity_type, "bulk")
        repository = self._repositories.get(cache_key)
        if repository is None:
            repository = BulkRepository(self._context_for(entity_type, read_only=False), entity_type)
            self._repositories[cache_key] = repository
        return repository

    @property
    def unit_of_work(self) -> UnitOfWork:
        if self._unit_of_work is None:
            self._unit_of_work = UnitOfWork(self)
        return self._unit_of_work

    async def close(self) -> None:
        """Roll back any open unit of work and close every context."""
        try:
            if self._unit_of_work is not None:
                await self._unit_of_work.dispose()
        finally:
            for context in self._contexts.values():
                await context.close()
            self._contexts.clear()
            self._repositories.clear()

    async def __aenter__(self) -> "ServiceScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
