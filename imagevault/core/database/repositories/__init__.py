"""
Generic repositories.

Repositories are not written per entity: one :class:`QueryRepository`,
:class:`Repository` or :class:`BulkRepository` instance is created per entity
class and bound to the persistence context serving it, see
:class:`ServiceScope`.
"""

from .bulk import BulkRepository, EntityColumns
from .query import EntityType, QueryRepository, apply_skip_take
from .repository import Repository

__all__ = [
    "BulkRepository",
    "EntityColumns",
    "EntityType",
    "QueryRepository",
    "Repository",
    "apply_skip_take",
]
