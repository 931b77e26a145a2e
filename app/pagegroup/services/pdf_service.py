"""
PDF processing service using pypdf.

Handles loading, merging and page-range slicing of PDF documents. Pages
are copied byte-for-byte into new documents; nothing is re-rendered.
"""

import io
import logging
from dataclasses import dataclass, field

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

logger = logging.getLogger(__name__)


class PDFDocumentError(Exception):
    """Raised when a PDF cannot be loaded, sliced or merged."""

    pass


@dataclass(frozen=True)
class Document:
    """
    A loaded, immutable PDF.

    Attributes:
        content: The raw PDF bytes the document was loaded from.
        page_count: Number of pages (non-negative).
        reader: The parsed pypdf reader over ``content``.
    """

    content: bytes = field(repr=False)
    page_count: int
    reader: PdfReader = field(repr=False, compare=False)


@dataclass(frozen=True)
class MergeResult:
    """Outcome of a best-effort merge."""

    content: bytes = field(repr=False)
    page_count: int
    skipped: list[int] = field(default_factory=list)


class PDFService:
    """
    Service for PDF byte operations.

    All page indices taken by this class are 1-based and inclusive, matching
    the page numbers surfaced to callers.
    """

    def load(self, pdf_bytes: bytes) -> Document:
        """
        Parse PDF bytes into a Document.

        Raises:
            PDFDocumentError: If the bytes are empty, lack a PDF header or
                cannot be parsed.
        """
        if not pdf_bytes:
            raise PDFDocumentError("Empty PDF file provided")

        # Validate PDF magic bytes
        if not pdf_bytes[:4] == b"%PDF":
            raise PDFDocumentError("Invalid PDF file: does not start with PDF header")

        try:
            reader = PdfReader(io.BytesIO(pdf_bytes))
            page_count = len(reader.pages)
        except PyPdfError as e:
            logger.error("PDF syntax error: %s", e)
            raise PDFDocumentError(f"Invalid or corrupted PDF file: {e}") from e
        except Exception as e:
            logger.exception("Unexpected error while loading PDF")
            raise PDFDocumentError(f"Failed to load PDF: {e}") from e

        logger.debug("Loaded PDF with %d page(s) (%d bytes)", page_count, len(pdf_bytes))
        return Document(content=pdf_bytes, page_count=page_count, reader=reader)

    def get_page_count(self, pdf_bytes: bytes) -> int:
        """Number of pages in a PDF."""
        return self.load(pdf_bytes).page_count

    def extract_pages(self, document: Document, start_page: int, end_page: int) -> bytes:
        """
        Copy a page range into a new PDF.

        Args:
            document: Source document.
            start_page: First page to copy (1-based, inclusive).
            end_page: Last page to copy (1-based, inclusive).

        Returns:
            Bytes of a new PDF holding exactly those pages, in order.

        Raises:
            PDFDocumentError: If the range is outside the document.
        """
        if not 1 <= start_page <= end_page <= document.page_count:
            raise PDFDocumentError(
                f"Page range {start_page}-{end_page} is outside the document "
                f"(1-{document.page_count})"
            )

        writer = PdfWriter()
        try:
            for index in range(start_page - 1, end_page):
                writer.add_page(document.reader.pages[index])
            buffer = io.BytesIO()
            writer.write(buffer)
        except PyPdfError as e:
            raise PDFDocumentError(
                f"Failed to extract pages {start_page}-{end_page}: {e}"
            ) from e

        logger.debug("Extracted pages %d to %d", start_page, end_page)
        return buffer.getvalue()

    def extract_first_page(self, document: Document) -> bytes:
        """Convenience method to copy only the first page."""
        if document.page_count < 1:
            raise PDFDocumentError("No pages found in PDF")
        return self.extract_pages(document, 1, 1)

    def merge(self, inputs: list[bytes]) -> MergeResult:
        """
        Concatenate all pages of all inputs, in input order.

        A single input is returned unchanged. Unparsable inputs are skipped
        and reported through ``MergeResult.skipped`` (0-based input indices).

        Raises:
            PDFDocumentError: If no input is given or none can be parsed.
        """
        if not inputs:
            raise PDFDocumentError("No PDF documents provided")

        if len(inputs) == 1:
            document = self.load(inputs[0])
            return MergeResult(content=document.content, page_count=document.page_count)

        logger.info("Starting PDF merge of %d documents", len(inputs))
        writer = PdfWriter()
        skipped: list[int] = []
        page_count = 0

        for index, pdf_bytes in enumerate(inputs):
            try:
                document = self.load(pdf_bytes)
            except PDFDocumentError as e:
                logger.warning("Skipping input %d during merge: %s", index, e)
                skipped.append(index)
                continue
            for page in document.reader.pages:
                writer.add_page(page)
            page_count += document.page_count

        if len(skipped) == len(inputs):
            raise PDFDocumentError("Failed to merge PDF files: no input could be parsed")

        buffer = io.BytesIO()
        try:
            writer.write(buffer)
        except PyPdfError as e:
            raise PDFDocumentError(f"Failed to merge PDF files: {e}") from e

        logger.info(
            "PDFs merged successfully: %d page(s), %d input(s) skipped",
            page_count,
            len(skipped),
        )
        return MergeResult(content=buffer.getvalue(), page_count=page_count, skipped=skipped)


# Singleton instance for convenience
_pdf_service: PDFService | None = None


def get_pdf_service() -> PDFService:
    """Get or create the PDF service singleton."""
    global _pdf_service
    if _pdf_service is None:
        _pdf_service = PDFService()
    return _pdf_service
