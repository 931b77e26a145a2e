"""
Accumulation of per-group and per-page results.
"""

import logging
from collections.abc import Iterable

from ..models import AccumulatedResult, ExtractedPage, ExtractedTablePage

logger = logging.getLogger(__name__)

PageResult = ExtractedPage | ExtractedTablePage


class ResultAccumulator:
    """
    Running, page-number-sorted result set for one processing run.

    ``ingest`` appends pages and re-sorts the whole set. A page number that
    was already ingested is replaced by the newer entry, so a unit delivered
    twice (or out of order) never produces duplicate pages. The set never
    shrinks.
    """

    def __init__(self):
        self._pages: dict[int, PageResult] = {}

    def ingest(self, new_pages: Iterable[PageResult]) -> AccumulatedResult:
        """Merge ``new_pages`` into the running set and return the sorted snapshot."""
        for page in new_pages:
            if page.page_number in self._pages:
                logger.warning(
                    "Page %d delivered more than once; keeping the latest result",
                    page.page_number,
                )
            self._pages[page.page_number] = page
        return self.result

    @property
    def result(self) -> AccumulatedResult:
        return AccumulatedResult(pages=self.pages)

    @property
    def pages(self) -> list[PageResult]:
        return [self._pages[number] for number in sorted(self._pages)]

    @property
    def page_numbers(self) -> list[int]:
        return sorted(self._pages)

    def __len__(self) -> int:
        return len(self._pages)
