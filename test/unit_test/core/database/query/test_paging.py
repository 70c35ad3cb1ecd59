"""Unit tests for paged lists and paging requests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from imagevault.core.database.query.paging import MAX_PAGE_SIZE, PagedList, PagingRequest


class TestPagedList:
    """Tests for PagedList navigation properties."""

    @pytest.mark.parametrize(
        "total_count,page_index,page_size,total_pages,has_previous,has_next",
        [
            (23, 0, 10, 3, False, True),
            (23, 1, 10, 3, True, True),
            (23, 2, 10, 3, True, False),
            (20, 1, 10, 2, True, False),
            (0, 0, 10, 0, False, False),
        ],
    )
    def test_page_numbers(self, total_count, page_index, page_size, total_pages, has_previous, has_next):
        page = PagedList(["x"], total_count, page_index, page_size)

        assert page.total_pages == total_pages
        assert page.has_previous_page is has_previous
        assert page.has_next_page is has_next
        assert page.page_number == page_index + 1

    def test_page_past_the_end(self):
        page = PagedList([], 23, 5, 10)

        assert page.is_empty
        assert page.is_last_page
        assert not page.has_next_page
        assert page.has_previous_page

    def test_zero_page_size_has_no_pages(self):
        page = PagedList([], 5, 0, 0)

        assert page.total_pages == 0
        assert page.is_first_page
        assert page.is_last_page

    def test_map_keeps_paging_numbers(self):
        page = PagedList([1, 2], 12, 1, 2)

        mapped = page.map(str)

        assert mapped.items == ["1", "2"]
        assert (mapped.total_count, mapped.page_index, mapped.page_size) == (12, 1, 2)

    def test_sequence_behaviour(self):
        page = PagedList(["a", "b"], 2, 0, 10)

        assert len(page) == 2
        assert list(page) == ["a", "b"]


class TestPagingRequest:
    """Tests for validation of caller supplied paging parameters."""

    def test_defaults(self):
        request = PagingRequest()

        assert request.page_number == 1
        assert request.page_index == 0
        assert request.page_size == 10

    def test_aliases_and_field_names(self):
        assert PagingRequest.model_validate({"pageNumber": 3, "pageSize": 25}).page_index == 2
        assert PagingRequest(page_number=2, page_size=5).page_size == 5

    @pytest.mark.parametrize(
        "payload",
        [
            {"pageNumber": 0},
            {"pageSize": 0},
            {"pageSize": MAX_PAGE_SIZE + 1},
            {"minSize": -1},
            {"minSize": 10, "maxSize": 5},
        ],
    )
    def test_invalid_values(self, payload):
        with pytest.raises(ValidationError):
            PagingRequest.model_validate(payload)

    def test_equal_size_bounds_accepted(self):
        request = PagingRequest(min_size=5, max_size=5)

        assert (request.min_size, request.max_size) == (5, 5)
