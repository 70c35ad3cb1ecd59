"""Error types for the persistence layer.

Defines a small hierarchy of exceptions raised by repositories, the path
resolver and the unit of work. Storage driver errors are never wrapped; they
propagate to the caller unchanged.
"""

from __future__ import annotations

from typing import Any, Optional


class PersistenceError(Exception):
    """Base error for all persistence layer exceptions."""


class RepositoryError(PersistenceError):
    """Raised for repository misconfiguration such as a missing primary key."""


class PathNotFoundError(RepositoryError):
    """Raised when a property path cannot be resolved against an entity type.

    Args:
        entity_type: Root type the path was resolved against.
        path: The full dot-separated path.
        segment: The first segment that could not be found.
    """

    def __init__(self, entity_type: type, path: str, segment: str) -> None:
        super().__init__(f"Property '{segment}' of path '{path}' not found on {entity_type.__name__}")
        self.entity_type = entity_type
        self.path = path
        self.segment = segment


class UnitOfWorkError(PersistenceError):
    """Raised when a unit of work scope is used in a state that forbids it.

    Args:
        message: Human-readable error description.
        state: Optional scope state at the time of the failure.
    """

    def __init__(self, message: str, *, state: Optional[Any] = None) -> None:
        super().__init__(message)
        self.state = state
