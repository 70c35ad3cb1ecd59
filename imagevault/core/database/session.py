"""
Process-wide engine and service registry.

The engine, session factory and service registry are created on first use
from the application settings, so importing this module never connects.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from imagevault.core.config import Settings, get_settings

from .contexts import AppDbContext
from .services import ServiceRegistry, ServiceScope
from .utils import create_all, create_engine, create_sessionmaker

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_registry: Optional[ServiceRegistry] = None


def build_registry(engine: AsyncEngine, settings: Optional[Settings] = None) -> ServiceRegistry:
    """Create a registry serving the application context on the given engine.

    Args:
        engine: Async engine the application context connects through
        settings: Settings providing the repository options, global settings if omitted

    Returns:
        Registry with ``AppDbContext`` registered
    """
    settings = settings or get_settings()
    registry = ServiceRegistry(settings.repository.to_options())
    registry.add_db_context(AppDbContext, create_sessionmaker(engine))
    return registry


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        database = get_settings().database
        _engine = create_engine(database.url, echo=database.echo)
    return _engine


def get_registry() -> ServiceRegistry:
    global _registry
    if _registry is None:
        _registry = build_registry(get_engine())
    return _registry


@asynccontextmanager
async def service_scope() -> AsyncIterator[ServiceScope]:
    """Open a service scope on the global registry, closing it on exit."""
    async with get_registry().create_scope() as scope:
        yield scope


async def init_db() -> None:
    """Create the tables of all entities.

    Intended for development and tests; deployed databases are expected to
    be provisioned ahead of time.
    """
    await create_all(get_engine())
    logger.info("Database tables created")


async def shutdown() -> None:
    """Dispose the global engine and forget the registry."""
    global _engine, _registry
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _registry = None
