"""
Page grouping.

Partitions a document of ``total_pages`` pages into fixed-size, contiguous,
1-based page ranges. Pure functions only; the same inputs always produce
the same plan.

Example (25 pages, group size 10)::

    (1, 10, False), (11, 20, False), (21, 25, True)
"""

import math

from ..models import PageGroup

DEFAULT_GROUP_SIZE = 10


class InvalidArgument(ValueError):
    """Raised when a page count, page number or group size is out of range."""

    pass


class GroupIndexOutOfRange(IndexError):
    """Raised when a group index starts beyond the last page of a document."""

    pass


def _check_sizes(total_pages: int, group_size: int) -> None:
    if total_pages < 1:
        raise InvalidArgument(f"total_pages must be >= 1, got {total_pages}")
    if group_size < 1:
        raise InvalidArgument(f"group_size must be >= 1, got {group_size}")


def total_groups(total_pages: int, group_size: int = DEFAULT_GROUP_SIZE) -> int:
    """Number of groups needed to cover ``total_pages``."""
    _check_sizes(total_pages, group_size)
    return math.ceil(total_pages / group_size)


def group_at(
    group_index: int, total_pages: int, group_size: int = DEFAULT_GROUP_SIZE
) -> PageGroup:
    """
    Build the group at ``group_index``.

    Raises:
        InvalidArgument: If the sizes are out of range or the index is negative.
        GroupIndexOutOfRange: If the group would start past the last page.
    """
    _check_sizes(total_pages, group_size)
    if group_index < 0:
        raise InvalidArgument(f"group_index must be >= 0, got {group_index}")

    start = group_index * group_size  # 0-based
    if start >= total_pages:
        raise GroupIndexOutOfRange(
            f"Group index {group_index} exceeds total pages ({total_pages})"
        )
    end = min(start + group_size, total_pages)

    return PageGroup(
        group_index=group_index,
        start_page=start + 1,
        end_page=end,
        total_pages=total_pages,
        is_last_group=end == total_pages,
    )


def plan(total_pages: int, group_size: int = DEFAULT_GROUP_SIZE) -> list[PageGroup]:
    """
    Compute the ordered group plan for a document.

    Args:
        total_pages: Page count of the document (>= 1).
        group_size: Pages per group (>= 1); only the last group may be shorter.

    Returns:
        ``ceil(total_pages / group_size)`` groups ordered by group index,
        covering pages 1..total_pages without gaps or overlaps.

    Raises:
        InvalidArgument: If either argument is below 1.
    """
    return [
        group_at(index, total_pages, group_size)
        for index in range(total_groups(total_pages, group_size))
    ]


def group_for_page(
    page_number: int, total_pages: int, group_size: int = DEFAULT_GROUP_SIZE
) -> PageGroup:
    """
    Return the group containing ``page_number`` (1-based).

    Agrees with ``plan`` for every page of the document.
    """
    _check_sizes(total_pages, group_size)
    if not 1 <= page_number <= total_pages:
        raise InvalidArgument(
            f"page_number must be within 1..{total_pages}, got {page_number}"
        )
    return group_at((page_number - 1) // group_size, total_pages, group_size)


class PageGrouper:
    """Group planner bound to a fixed group size."""

    def __init__(self, group_size: int = DEFAULT_GROUP_SIZE):
        if group_size < 1:
            raise InvalidArgument(f"group_size must be >= 1, got {group_size}")
        self.group_size = group_size

    def plan(self, total_pages: int) -> list[PageGroup]:
        return plan(total_pages, self.group_size)

    def group_at(self, group_index: int, total_pages: int) -> PageGroup:
        return group_at(group_index, total_pages, self.group_size)

    def group_for_page(self, page_number: int, total_pages: int) -> PageGroup:
        return group_for_page(page_number, total_pages, self.group_size)

    def total_groups(self, total_pages: int) -> int:
        return total_groups(total_pages, self.group_size)
