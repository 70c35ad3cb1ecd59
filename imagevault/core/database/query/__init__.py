"""
Dynamic query building blocks.

Property path resolution, sorting, related-property includes, predicates
and paging shared by the generic repositories.
"""

from .filters import Predicate, apply_predicate, build_criteria
from .paging import PagedList, PagingRequest
from .paths import OrderingOperation, PathResolver, ResolvedPath, default_resolver
from .related import (
    IncludePlan,
    LoadRelatedProperties,
    RelatedPathInfo,
    RelatedProperty,
    RelatedPropertyRegistry,
    apply_includes,
    default_registry,
    flatten_related_properties,
)
from .sorting import SortDirection, SortingDetails, SortItem, apply_sorting, order_objects

__all__ = [
    "IncludePlan",
    "LoadRelatedProperties",
    "OrderingOperation",
    "PagedList",
    "PagingRequest",
    "PathResolver",
    "Predicate",
    "RelatedPathInfo",
    "RelatedProperty",
    "RelatedPropertyRegistry",
    "ResolvedPath",
    "SortDirection",
    "SortItem",
    "SortingDetails",
    "apply_includes",
    "apply_predicate",
    "apply_sorting",
    "build_criteria",
    "default_registry",
    "default_resolver",
    "flatten_related_properties",
    "order_objects",
]
