"""
Paged results and paging requests.

Repositories page with a zero-based ``page_index``. The outward-facing
:class:`PagingRequest` uses one-based page numbers and converts them;
the two must not be mixed up.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")
R = TypeVar("R")

MAX_PAGE_SIZE = 100


@dataclass
class PagedList(Generic[T]):
    """One page of a filtered result set.

    Attributes:
        items: Entities on this page
        total_count: Size of the whole filtered set, before paging
        page_index: Zero-based index of this page
        page_size: Requested page size
    """

    items: List[T] = field(default_factory=list)
    total_count: int = 0
    page_index: int = 0
    page_size: int = 0

    @property
    def page_number(self) -> int:
        return self.page_index + 1

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_previous_page(self) -> bool:
        return self.page_index > 0

    @property
    def has_next_page(self) -> bool:
        return self.page_index + 1 < self.total_pages

    @property
    def is_first_page(self) -> bool:
        return self.page_index == 0

    @property
    def is_last_page(self) -> bool:
        return self.page_index + 1 >= self.total_pages

    @property
    def is_empty(self) -> bool:
        return not self.items

    def map(self, converter: Callable[[T], R]) -> "PagedList[R]":
        """Return a page with converted items and the same paging numbers."""
        return PagedList([converter(item) for item in self.items], self.total_count, self.page_index, self.page_size)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


class PagingRequest(BaseModel):
    """Paging parameters as received from callers, one-based."""

    page_number: int = Field(default=1, ge=1, alias="pageNumber")
    page_size: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE, alias="pageSize")
    min_size: Optional[int] = Field(default=None, ge=0, alias="minSize")
    max_size: Optional[int] = Field(default=None, ge=0, alias="maxSize")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_size_bounds(self) -> "PagingRequest":
        if self.min_size is not None and self.max_size is not None and self.min_size > self.max_size:
            raise ValueError("minSize must not be greater than maxSize")
        return self

    @property
    def page_index(self) -> int:
        """Zero-based page index for the repositories."""
        return self.page_number - 1
