"""
Sequential extraction workflow.

Drives a run end to end: merge inputs, count pages, then either the field
flow (one inference call per page group, abort on the first group that
exhausts its retries) or the table flow (one call per page, throttled, with
exhausted pages degraded to empty rows). Units are processed strictly one
after another; results are emitted as ``ProgressEvent`` records through
async generators.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum

from ..config import Settings, get_settings
from ..models import (
    DEFAULT_TABLE_HEADERS,
    AccumulatedResult,
    ExtractedPage,
    ExtractedTablePage,
    ExtractionData,
    ExtractionMode,
    FieldSpec,
    PageGroup,
    ProgressEvent,
    TableData,
)
from .accumulator import ResultAccumulator
from .ai import AIService, get_ai_service
from .cache import PageGroupCache, get_page_group_cache
from .grouping import GroupIndexOutOfRange, InvalidArgument
from .pdf_service import PDFDocumentError
from .retry import RetriesExhausted, RetryingTransport, RetryPolicy, SleepFunc, pause

logger = logging.getLogger(__name__)

# Never retried: these signal bad input or a programming error
FATAL_ERRORS: tuple[type[BaseException], ...] = (
    InvalidArgument,
    GroupIndexOutOfRange,
    PDFDocumentError,
)


class FlowState(str, Enum):
    """Workflow states of one run."""

    IDLE = "idle"
    MERGING = "merging"
    COUNTING = "counting"
    MODE_SELECT = "mode_select"
    FIELD_FLOW = "field_flow"
    TABLE_FLOW = "table_flow"
    DONE = "done"
    ERROR = "error"


class GroupExtractionFailed(Exception):
    """
    Raised when a field-mode group exhausted its retries and the run aborted.

    Attributes:
        group: The group that failed.
        partial: Pages accumulated before the failure.
    """

    def __init__(self, message: str, group: PageGroup, partial: AccumulatedResult | None = None):
        super().__init__(message)
        self.group = group
        self.partial = partial or AccumulatedResult()


@dataclass(frozen=True)
class PreparedDocument:
    """Merged document bytes ready for extraction."""

    content: bytes = field(repr=False)
    page_count: int
    skipped_inputs: list[int] = field(default_factory=list)


class ExtractionOrchestrator:
    """
    Runs the merge, count and extraction phases for one caller.

    Collaborators are injected so tests can substitute a fake AI service,
    a private cache and a recording ``sleep``.
    """

    def __init__(
        self,
        ai_service: AIService | None = None,
        cache: PageGroupCache | None = None,
        settings: Settings | None = None,
        sleep: SleepFunc = asyncio.sleep,
        cancel_event: asyncio.Event | None = None,
    ):
        settings = settings or get_settings()
        self.ai_service = ai_service or get_ai_service()
        self.cache = cache or get_page_group_cache()
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.unit_policy = RetryPolicy.fixed(settings.max_retries, settings.retry_delay_seconds)
        self.header_policy = RetryPolicy.linear_backoff(
            settings.header_max_retries, settings.header_backoff_seconds
        )
        self.page_delay_seconds = settings.table_page_delay_seconds
        self.state = FlowState.IDLE

    def _transport(self, policy: RetryPolicy) -> RetryingTransport:
        return RetryingTransport(
            policy, sleep=self.sleep, fatal=FATAL_ERRORS, cancel_event=self.cancel_event
        )

    # -------------------------------------------------------------------------
    # Merge and count
    # -------------------------------------------------------------------------

    def prepare_document(self, inputs: list[bytes]) -> PreparedDocument:
        """
        Merge the inputs in order and count the pages of the result.

        Raises:
            PDFDocumentError: If no input could be parsed.
        """
        self.state = FlowState.MERGING
        try:
            merged = self.cache.pdf_service.merge(inputs)
            if merged.skipped:
                logger.warning(
                    "Merged %d of %d inputs; skipped inputs %s",
                    len(inputs) - len(merged.skipped),
                    len(inputs),
                    merged.skipped,
                )
            self.state = FlowState.COUNTING
            page_count = self.cache.get_document(merged.content).page_count
        except Exception:
            self.state = FlowState.ERROR
            raise
        logger.info("Prepared document with %d page(s)", page_count)
        return PreparedDocument(
            content=merged.content, page_count=page_count, skipped_inputs=merged.skipped
        )

    # -------------------------------------------------------------------------
    # Field flow
    # -------------------------------------------------------------------------

    async def suggest_fields(self, pdf_bytes: bytes) -> list[FieldSpec]:
        """Suggest fields from page 1, retried under the flat policy."""
        first_page = self.cache.get_first_page(pdf_bytes)
        return await self._transport(self.unit_policy).run(
            lambda: self.ai_service.suggest_fields(first_page), label="field suggestion"
        )

    async def extract_group(
        self, pdf_bytes: bytes, field_names: list[str], group_index: int
    ) -> list[ExtractedPage]:
        """
        Extract one group with retries.

        Raises:
            RetriesExhausted: If every attempt failed.
            GroupIndexOutOfRange: If the group lies past the last page.
        """
        group_slice = self.cache.get_group(pdf_bytes, group_index)
        group = group_slice.group
        return await self._transport(self.unit_policy).run(
            lambda: self.ai_service.extract_group(group_slice.content, field_names, group),
            label=group.label,
        )

    async def iter_field_groups(
        self, pdf_bytes: bytes, field_names: list[str]
    ) -> AsyncIterator[ProgressEvent]:
        """
        Yield one event per completed group, then a terminal event.

        Stops at the first group that exhausts its retries; the terminal
        event then has ``success=False`` and names the group and its pages.
        """
        if not field_names:
            raise InvalidArgument("At least one field must be selected")

        self.state = FlowState.FIELD_FLOW
        mode = ExtractionMode.FIELD
        try:
            total_pages = self.cache.get_document(pdf_bytes).page_count
            groups = self.cache.grouper.plan(total_pages)
            accumulator = ResultAccumulator()
            logger.info(
                "Field flow: %d page(s) in %d group(s), fields %s",
                total_pages,
                len(groups),
                field_names,
            )

            for group in groups:
                try:
                    pages = await self.extract_group(pdf_bytes, field_names, group.group_index)
                except RetriesExhausted as e:
                    self.state = FlowState.ERROR
                    message = f"Failed to extract {group.label}: {e}"
                    logger.error("Aborting field flow: %s", message)
                    yield ProgressEvent(
                        success=False,
                        mode=mode,
                        data=accumulator.result,
                        group_info=group,
                        error=message,
                        completed_pages=len(accumulator),
                        total_pages=total_pages,
                        done=True,
                    )
                    return

                snapshot = accumulator.ingest(pages)
                logger.info(
                    "Completed %s (%d/%d pages)", group.label, len(accumulator), total_pages
                )
                yield ProgressEvent(
                    success=True,
                    mode=mode,
                    data=ExtractionData(pages=pages),
                    accumulated=snapshot,
                    group_info=group,
                    completed_pages=len(accumulator),
                    total_pages=total_pages,
                )
        except Exception:
            self.state = FlowState.ERROR
            raise

        self.state = FlowState.DONE
        yield ProgressEvent(
            success=True,
            mode=mode,
            data=accumulator.result,
            completed_pages=len(accumulator),
            total_pages=total_pages,
            done=True,
        )

    async def run_field_flow(self, pdf_bytes: bytes, field_names: list[str]) -> AccumulatedResult:
        """
        Run the field flow to completion.

        Raises:
            GroupExtractionFailed: If a group exhausted its retries.
        """
        return await _collect(self.iter_field_groups(pdf_bytes, field_names))

    # -------------------------------------------------------------------------
    # Table flow
    # -------------------------------------------------------------------------

    async def detect_table_headers(self, pdf_bytes: bytes) -> list[str]:
        """Detect headers with linear backoff, falling back to the default headers."""
        first_page = self.cache.get_first_page(pdf_bytes)
        try:
            return await self._transport(self.header_policy).run(
                lambda: self.ai_service.detect_table_headers(first_page),
                label="table header detection",
            )
        except RetriesExhausted as e:
            logger.warning(
                "Header detection failed after %d attempts, using default headers %s: %s",
                e.attempts,
                DEFAULT_TABLE_HEADERS,
                e.last_error,
            )
            return list(DEFAULT_TABLE_HEADERS)

    async def extract_table_page(
        self, pdf_bytes: bytes, headers: list[str], page_number: int
    ) -> ExtractedTablePage:
        """
        Extract one page with retries.

        Raises:
            RetriesExhausted: If every attempt failed.
        """
        page_pdf = self.cache.get_page(pdf_bytes, page_number)
        return await self._transport(self.unit_policy).run(
            lambda: self.ai_service.extract_table_page(page_pdf, headers, page_number),
            label=f"page {page_number}",
        )

    async def iter_table_pages(
        self, pdf_bytes: bytes, headers: list[str] | None = None
    ) -> AsyncIterator[ProgressEvent]:
        """
        Yield one event per page, then a terminal event.

        A page that exhausts its retries contributes empty rows and is
        flagged ``degraded``; the flow continues with the next page.
        """
        self.state = FlowState.TABLE_FLOW
        mode = ExtractionMode.TABLE
        try:
            total_pages = self.cache.get_document(pdf_bytes).page_count
            if headers is None:
                headers = await self.detect_table_headers(pdf_bytes)
            accumulator = ResultAccumulator()
            logger.info("Table flow: %d page(s), headers %s", total_pages, headers)

            for page_number in range(1, total_pages + 1):
                if page_number > 1:
                    await pause(
                        self.page_delay_seconds,
                        self.cancel_event,
                        self.sleep,
                        label=f"page {page_number}",
                    )

                degraded = False
                error = None
                try:
                    page = await self.extract_table_page(pdf_bytes, headers, page_number)
                except RetriesExhausted as e:
                    logger.warning(
                        "Page %d failed after %d attempts; continuing with empty rows: %s",
                        page_number,
                        e.attempts,
                        e,
                    )
                    page = ExtractedTablePage(
                        page_number=page_number,
                        table_data=TableData(headers=list(headers), rows=[]),
                    )
                    degraded = True
                    error = str(e)

                snapshot = accumulator.ingest([page])
                yield ProgressEvent(
                    success=True,
                    mode=mode,
                    data=ExtractionData(pages=[page]),
                    accumulated=snapshot,
                    page_number=page_number,
                    error=error,
                    degraded=degraded,
                    completed_pages=len(accumulator),
                    total_pages=total_pages,
                )
        except Exception:
            self.state = FlowState.ERROR
            raise

        self.state = FlowState.DONE
        yield ProgressEvent(
            success=True,
            mode=mode,
            data=accumulator.result,
            completed_pages=len(accumulator),
            total_pages=total_pages,
            done=True,
        )

    async def run_table_flow(self, pdf_bytes: bytes) -> AccumulatedResult:
        """Run the table flow to completion."""
        return await _collect(self.iter_table_pages(pdf_bytes))

    # -------------------------------------------------------------------------
    # Whole run
    # -------------------------------------------------------------------------

    async def iter_run(
        self,
        inputs: list[bytes],
        mode: ExtractionMode,
        selected_fields: list[str] | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Merge, count and stream the chosen flow."""
        document = self.prepare_document(inputs)
        async for event in self.iter_document(document, mode, selected_fields):
            yield event

    async def iter_document(
        self,
        document: PreparedDocument,
        mode: ExtractionMode,
        selected_fields: list[str] | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Stream the chosen flow over an already prepared document.

        In field mode without ``selected_fields`` every suggested field is used.
        """
        self.state = FlowState.MODE_SELECT

        if mode == ExtractionMode.FIELD:
            if not selected_fields:
                suggested = await self.suggest_fields(document.content)
                selected_fields = [spec.field_name for spec in suggested]
            events = self.iter_field_groups(document.content, selected_fields)
        else:
            events = self.iter_table_pages(document.content)

        async for event in events:
            yield event

    async def run_document(
        self,
        document: PreparedDocument,
        mode: ExtractionMode,
        selected_fields: list[str] | None = None,
    ) -> AccumulatedResult:
        """Run the chosen flow over a prepared document to completion."""
        return await _collect(self.iter_document(document, mode, selected_fields))

    async def run(
        self,
        inputs: list[bytes],
        mode: ExtractionMode,
        selected_fields: list[str] | None = None,
    ) -> AccumulatedResult:
        """Run a whole extraction and return the final accumulated result."""
        return await _collect(self.iter_run(inputs, mode, selected_fields))


async def _collect(events: AsyncIterator[ProgressEvent]) -> AccumulatedResult:
    """Drain an event stream, returning the terminal result or raising on failure."""
    async for event in events:
        if not event.done:
            continue
        if not event.success:
            raise GroupExtractionFailed(
                event.error or "Group extraction failed",
                group=event.group_info,
                partial=AccumulatedResult(pages=event.data.pages),
            )
        return AccumulatedResult(pages=event.data.pages)
    raise RuntimeError("Extraction stream ended without a terminal event")
