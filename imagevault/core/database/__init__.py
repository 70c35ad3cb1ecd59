"""
Persistence layer for imagevault.

Generic repositories, a reentrant unit of work and the dynamic query
building blocks they share, on top of async SQLAlchemy and SQLModel.

Structure:
- entities/: SQLModel table classes
- query/: Property paths, sorting, related-property includes, predicates, paging
- repositories/: Generic query, mutating and bulk repositories
- uow/: Unit of work and its scopes
- contexts.py: Persistence contexts and repository options
- services.py: Context registration and per-operation resolution scopes
- session.py: Global engine and registry management
- utils.py: Engine and session factory helpers
"""

from .base import Base
from .contexts import AppDbContext, DbContext, RepositoryOptions, SaveChangesStrategy
from .exceptions import PathNotFoundError, PersistenceError, RepositoryError, UnitOfWorkError
from .repositories import BulkRepository, QueryRepository, Repository
from .services import ServiceRegistry, ServiceScope
from .uow import UnitOfWork, UnitOfWorkScope, UnitOfWorkState
from .utils import create_all, create_engine, create_sessionmaker, drop_all

__all__ = [
    "AppDbContext",
    "Base",
    "BulkRepository",
    "DbContext",
    "PathNotFoundError",
    "PersistenceError",
    "QueryRepository",
    "Repository",
    "RepositoryError",
    "RepositoryOptions",
    "SaveChangesStrategy",
    "ServiceRegistry",
    "ServiceScope",
    "UnitOfWork",
    "UnitOfWorkError",
    "UnitOfWorkScope",
    "UnitOfWorkState",
    "create_all",
    "create_engine",
    "create_sessionmaker",
    "drop_all",
]
