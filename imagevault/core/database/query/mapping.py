"""
Mapper metadata helpers.

Small helpers over ``sqlalchemy.inspect`` used by the repositories to find
primary keys and to turn caller supplied keys into SQL criteria.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper
from sqlalchemy.sql.elements import ColumnElement

from ..exceptions import RepositoryError


def find_mapper(entity_type: type) -> Optional[Mapper]:
    """Return the mapper of an entity class, or None when it is not mapped."""
    mapper = sa_inspect(entity_type, raiseerr=False)
    return mapper if isinstance(mapper, Mapper) else None


def entity_mapper(entity_type: type) -> Mapper:
    """Return the mapper of an entity class.

    Raises:
        RepositoryError: If the class is not a mapped entity
    """
    mapper = find_mapper(entity_type)
    if mapper is None:
        raise RepositoryError(f"{getattr(entity_type, '__name__', entity_type)!s} is not a mapped entity")
    return mapper


def primary_key_names(entity_type: type) -> Tuple[str, ...]:
    """Return the attribute names of the entity's primary key, in declaration order.

    Raises:
        RepositoryError: If the entity is unmapped or declares no primary key
    """
    mapper = entity_mapper(entity_type)
    names = tuple(mapper.get_property_by_column(column).key for column in mapper.primary_key)
    if not names:
        raise RepositoryError(f"{entity_type.__name__} has no primary key")
    return names


def normalize_key(entity_type: type, key: Any) -> Tuple[Any, ...]:
    """Turn a scalar or tuple key into a tuple matching the primary key arity.

    Raises:
        RepositoryError: If the number of key values does not match
    """
    names = primary_key_names(entity_type)
    values = tuple(key) if isinstance(key, tuple) else (key,)
    if len(values) != len(names):
        raise RepositoryError(
            f"{entity_type.__name__} key expects {len(names)} value(s) ({', '.join(names)}), got {len(values)}"
        )
    return values


def key_criteria(entity_type: type, key: Any) -> ColumnElement[bool]:
    """Build the ``WHERE`` criteria selecting one entity by key."""
    names = primary_key_names(entity_type)
    values = normalize_key(entity_type, key)
    return and_(*(getattr(entity_type, name) == value for name, value in zip(names, values)))


def key_of(entity: Any) -> Tuple[Any, ...]:
    """Read the primary key values of an entity instance."""
    return tuple(getattr(entity, name) for name in primary_key_names(type(entity)))


def column_names(entity_type: type) -> Tuple[str, ...]:
    """Return the names of all column attributes of an entity."""
    return tuple(prop.key for prop in entity_mapper(entity_type).column_attrs)
