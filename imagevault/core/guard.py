"""Argument guards used at public entry points."""

from __future__ import annotations

from typing import Any, Optional, Sized, TypeVar

T = TypeVar("T")


def not_none(value: Optional[T], name: str) -> T:
    """Return ``value`` or raise ``TypeError`` when it is None."""
    if value is None:
        raise TypeError(f"{name} must not be None")
    return value


def not_empty(value: Any, name: str) -> Any:
    """Return ``value`` or raise ``ValueError`` when it is None, blank or empty."""
    not_none(value, name)
    if isinstance(value, str):
        if not value.strip():
            raise ValueError(f"{name} must not be empty")
    elif isinstance(value, Sized) and len(value) == 0:
        raise ValueError(f"{name} must not be empty")
    return value


def in_range(value: int, name: str, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """Return ``value`` or raise ``ValueError`` when it falls outside the bounds."""
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got {value}")
    return value
