"""
Predicate handling.

Repositories accept predicates in three shapes:

- a SQLAlchemy boolean expression, e.g. ``Image.size > 100``
- a sequence of expressions, combined with ``AND``
- a mapping of column name to value, compared for equality; None values and
  names that are not columns of the entity are skipped
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence, Union

from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from .mapping import column_names

Predicate = Union[ColumnElement[bool], Sequence[ColumnElement[bool]], Mapping[str, Any]]


def build_criteria(entity_type: type, predicate: Optional[Predicate]) -> List[ColumnElement[bool]]:
    """Translate a predicate into a list of ``WHERE`` criteria."""
    if predicate is None:
        return []
    if isinstance(predicate, Mapping):
        columns = set(column_names(entity_type))
        return [getattr(entity_type, key) == value for key, value in predicate.items() if value is not None and key in columns]
    if isinstance(predicate, ColumnElement):
        return [predicate]
    return list(predicate)


def apply_predicate(statement: Select, entity_type: type, predicate: Optional[Predicate]) -> Select:
    """Apply a predicate to a select statement."""
    criteria = build_criteria(entity_type, predicate)
    return statement.where(*criteria) if criteria else statement
