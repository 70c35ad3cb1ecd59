"""Unit of work and its reentrant scopes."""

from .scope import UnitOfWorkScope, UnitOfWorkState
from .unit_of_work import UnitOfWork

__all__ = ["UnitOfWork", "UnitOfWorkScope", "UnitOfWorkState"]
