"""
Content-keyed cache for loaded documents and page-group slices.

Repeated requests for the same PDF bytes reuse the parsed document and the
already sliced group PDFs instead of re-parsing and re-slicing. Entries are
keyed by a BLAKE2b digest of the document bytes; each map is bounded by an
LRU policy and can be dropped with ``clear()``.
"""

import hashlib
import logging
from collections import OrderedDict
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import TypeVar

from ..models import PageGroup
from .grouping import DEFAULT_GROUP_SIZE, PageGrouper
from .pdf_service import Document, PDFService, get_pdf_service

logger = logging.getLogger(__name__)

V = TypeVar("V")


def content_key(pdf_bytes: bytes) -> str:
    """128-bit hex digest of the document bytes."""
    return hashlib.blake2b(pdf_bytes, digest_size=16).hexdigest()


@dataclass(frozen=True)
class PageGroupResult:
    """A page group together with the PDF holding only its pages."""

    group: PageGroup
    content: bytes = field(repr=False)


class _LRUMap:
    """Small ordered map evicting the least recently used entry past ``max_entries``."""

    def __init__(self, max_entries: int | None):
        self.max_entries = max_entries or None
        self._entries: OrderedDict[Hashable, object] = OrderedDict()

    def get(self, key: Hashable):
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    def put(self, key: Hashable, value: V) -> V:
        self._entries[key] = value
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted)
        return value

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)


class PageGroupCache:
    """
    Memoizes document loads and group/page slices by content key.

    Single-flow use only: inserts are not guarded against concurrent runs.

    Attributes:
        load_count: Number of times a document was actually parsed.
    """

    def __init__(
        self,
        pdf_service: PDFService | None = None,
        group_size: int = DEFAULT_GROUP_SIZE,
        max_entries: int | None = 128,
    ):
        """
        Initialize the cache.

        Args:
            pdf_service: PDF engine used for loading and slicing.
            group_size: Pages per group for ``get_group``.
            max_entries: LRU bound for each internal map; 0 or None disables eviction.
        """
        self.pdf_service = pdf_service or get_pdf_service()
        self.grouper = PageGrouper(group_size)
        self.load_count = 0
        self._documents = _LRUMap(max_entries)
        self._groups = _LRUMap(max_entries)
        self._pages = _LRUMap(max_entries)

    @property
    def group_size(self) -> int:
        return self.grouper.group_size

    def get_document(self, pdf_bytes: bytes) -> Document:
        """Load a document once per distinct content key."""
        key = content_key(pdf_bytes)
        document = self._documents.get(key)
        if document is not None:
            logger.debug("Document cache hit for %s", key)
            return document

        document = self.pdf_service.load(pdf_bytes)
        self.load_count += 1
        logger.info("Cached document %s (%d pages)", key, document.page_count)
        return self._documents.put(key, document)

    def get_group(self, pdf_bytes: bytes, group_index: int) -> PageGroupResult:
        """
        Return the slice for ``group_index`` of the document.

        Raises:
            GroupIndexOutOfRange: If the group starts past the last page.
        """
        key = (content_key(pdf_bytes), group_index)
        cached = self._groups.get(key)
        if cached is not None:
            logger.debug("Group cache hit for group %d", group_index)
            return cached

        document = self.get_document(pdf_bytes)
        group = self.grouper.group_at(group_index, document.page_count)
        content = self.pdf_service.extract_pages(document, group.start_page, group.end_page)
        logger.info(
            "Cached group %d (pages %d-%d)", group_index, group.start_page, group.end_page
        )
        return self._groups.put(key, PageGroupResult(group=group, content=content))

    def get_page(self, pdf_bytes: bytes, page_number: int) -> bytes:
        """
        Return a one-page PDF for ``page_number`` (1-based).

        The page is cut from its cached group slice, so consecutive pages of
        one group share a single slicing of the source document.
        """
        key = (content_key(pdf_bytes), "page", page_number)
        cached = self._pages.get(key)
        if cached is not None:
            return cached

        document = self.get_document(pdf_bytes)
        group = self.grouper.group_for_page(page_number, document.page_count)
        group_slice = self.get_group(pdf_bytes, group.group_index)
        group_document = self.get_document(group_slice.content)
        offset = page_number - group.start_page + 1
        content = self.pdf_service.extract_pages(group_document, offset, offset)
        return self._pages.put(key, content)

    def get_first_page(self, pdf_bytes: bytes) -> bytes:
        return self.get_page(pdf_bytes, 1)

    def clear(self) -> dict[str, int]:
        """Drop every cached entry; references already handed out stay valid."""
        cleared = {
            "documents": self._documents.clear(),
            "groups": self._groups.clear(),
            "pages": self._pages.clear(),
        }
        logger.info("Cleared page group cache: %s", cleared)
        return cleared

    def stats(self) -> dict[str, int]:
        return {
            "documents": len(self._documents),
            "groups": len(self._groups),
            "pages": len(self._pages),
            "loads": self.load_count,
        }


# Singleton instance for convenience
_page_group_cache: PageGroupCache | None = None


def get_page_group_cache() -> PageGroupCache:
    """Get or create the process-wide cache."""
    global _page_group_cache
    if _page_group_cache is None:
        from ..config import get_settings

        settings = get_settings()
        _page_group_cache = PageGroupCache(
            group_size=settings.group_size,
            max_entries=settings.cache_max_entries,
        )
    return _page_group_cache
