"""Tests for the page group cache."""

import pytest

from app.pagegroup.services.cache import PageGroupCache, content_key
from app.pagegroup.services.grouping import GroupIndexOutOfRange


class TestPageGroupCache:
    """Tests for PageGroupCache."""

    def test_same_bytes_loaded_once(self, make_pdf):
        """Test that byte-identical input is parsed only once."""
        cache = PageGroupCache()
        pdf = make_pdf(5)

        first = cache.get_document(pdf)
        second = cache.get_document(bytes(pdf))

        assert first is second
        assert cache.load_count == 1

    def test_distinct_documents_have_distinct_keys(self, make_pdf):
        cache = PageGroupCache()
        cache.get_document(make_pdf(2))
        cache.get_document(make_pdf(3))
        assert cache.load_count == 2
        assert content_key(make_pdf(2)) != content_key(make_pdf(3))

    def test_get_group_slices_pages(self, make_pdf, page_widths):
        """Test that group 2 of a 25-page document holds pages 11-20."""
        cache = PageGroupCache(group_size=10)
        result = cache.get_group(make_pdf(25), 1)

        assert result.group.start_page == 11
        assert result.group.end_page == 20
        assert page_widths(result.content) == list(range(110, 120))

    def test_group_slice_is_reused(self, make_pdf):
        cache = PageGroupCache()
        pdf = make_pdf(12)
        assert cache.get_group(pdf, 1) is cache.get_group(pdf, 1)

    def test_group_out_of_range(self, make_pdf):
        with pytest.raises(GroupIndexOutOfRange):
            PageGroupCache().get_group(make_pdf(10), 1)

    def test_get_page_cuts_from_group(self, make_pdf, page_widths):
        """Test that single pages come out of the right group slice."""
        cache = PageGroupCache(group_size=10)
        pdf = make_pdf(25)

        assert page_widths(cache.get_page(pdf, 1)) == [100]
        assert page_widths(cache.get_page(pdf, 14)) == [113]
        assert page_widths(cache.get_page(pdf, 25)) == [124]
        assert page_widths(cache.get_first_page(pdf)) == [100]

    def test_clear_drops_entries(self, make_pdf):
        """Test that clear() empties every map and forces a re-parse."""
        cache = PageGroupCache()
        pdf = make_pdf(3)
        cache.get_group(pdf, 0)

        cleared = cache.clear()

        assert cleared["groups"] == 1
        assert cleared["documents"] >= 1
        assert cache.stats()["groups"] == 0
        loads = cache.load_count
        cache.get_document(pdf)
        assert cache.load_count == loads + 1

    def test_lru_bound_evicts_oldest(self, make_pdf):
        """Test that the oldest document is dropped past max_entries."""
        cache = PageGroupCache(max_entries=2)
        first, second, third = make_pdf(1), make_pdf(2), make_pdf(3)

        cache.get_document(first)
        cache.get_document(second)
        cache.get_document(third)
        assert cache.stats()["documents"] == 2

        cache.get_document(third)
        assert cache.load_count == 3
        cache.get_document(first)
        assert cache.load_count == 4
