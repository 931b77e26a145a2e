"""Tests for page grouping."""

import pytest

from app.pagegroup.services.grouping import (
    GroupIndexOutOfRange,
    InvalidArgument,
    PageGrouper,
    group_at,
    group_for_page,
    plan,
    total_groups,
)


class TestPlan:
    """Tests for plan()."""

    def test_twenty_five_pages_make_three_groups(self):
        """Test the standard 25-page example."""
        groups = plan(25, 10)
        assert [(g.start_page, g.end_page, g.is_last_group) for g in groups] == [
            (1, 10, False),
            (11, 20, False),
            (21, 25, True),
        ]
        assert [g.group_index for g in groups] == [0, 1, 2]
        assert all(g.total_pages == 25 for g in groups)

    def test_exact_multiple(self):
        """Test that an exact multiple has no short last group."""
        groups = plan(20, 10)
        assert len(groups) == 2
        assert groups[-1].start_page == 11
        assert groups[-1].end_page == 20
        assert groups[-1].is_last_group

    def test_single_page(self):
        """Test a one-page document."""
        groups = plan(1, 10)
        assert len(groups) == 1
        assert groups[0].start_page == 1
        assert groups[0].end_page == 1
        assert groups[0].is_last_group

    @pytest.mark.parametrize("total_pages", [1, 2, 9, 10, 11, 37, 100])
    @pytest.mark.parametrize("group_size", [1, 3, 10])
    def test_groups_partition_the_document(self, total_pages: int, group_size: int):
        """Test that groups cover every page exactly once, in order."""
        groups = plan(total_pages, group_size)
        covered = [p for g in groups for p in g.page_numbers]
        assert covered == list(range(1, total_pages + 1))
        assert [g.is_last_group for g in groups] == [False] * (len(groups) - 1) + [True]
        assert len(groups) == total_groups(total_pages, group_size)

    def test_invalid_sizes_rejected(self):
        """Test that zero pages or a zero group size raise InvalidArgument."""
        with pytest.raises(InvalidArgument):
            plan(0, 10)
        with pytest.raises(InvalidArgument):
            plan(10, 0)


class TestGroupAt:
    """Tests for group_at() and group_for_page()."""

    def test_group_past_end_raises(self):
        """Test that a group starting past the last page is out of range."""
        with pytest.raises(GroupIndexOutOfRange):
            group_at(3, 25, 10)

    def test_negative_index_rejected(self):
        with pytest.raises(InvalidArgument):
            group_at(-1, 25, 10)

    @pytest.mark.parametrize("total_pages", [1, 10, 25, 31])
    def test_group_for_page_agrees_with_plan(self, total_pages: int):
        """Test that every page maps to the planned group containing it."""
        groups = plan(total_pages, 10)
        for page in range(1, total_pages + 1):
            group = group_for_page(page, total_pages, 10)
            assert group in groups
            assert group.start_page <= page <= group.end_page

    def test_group_for_page_out_of_range(self):
        with pytest.raises(InvalidArgument):
            group_for_page(26, 25, 10)
        with pytest.raises(InvalidArgument):
            group_for_page(0, 25, 10)

    def test_label_is_one_based(self):
        """Test the human-readable label used in error messages."""
        assert group_at(1, 25, 10).label == "group 2 (pages 11-20)"


class TestPageGrouper:
    """Tests for the PageGrouper wrapper."""

    def test_uses_bound_group_size(self):
        grouper = PageGrouper(4)
        assert grouper.total_groups(10) == 3
        assert grouper.plan(10)[-1].start_page == 9
        assert grouper.group_for_page(5, 10).group_index == 1

    def test_rejects_zero_group_size(self):
        with pytest.raises(InvalidArgument):
            PageGrouper(0)
