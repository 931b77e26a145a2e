"""Tests for the sequential extraction workflow."""

import asyncio

import pytest

from app.pagegroup.config import Settings
from app.pagegroup.models import (
    DEFAULT_TABLE_HEADERS,
    ExtractedPage,
    ExtractedTablePage,
    ExtractionMode,
    FieldSpec,
    FieldValue,
    TableData,
)
from app.pagegroup.services.ai.exceptions import MalformedResponse, TransientTransportError
from app.pagegroup.services.cache import PageGroupCache
from app.pagegroup.services.grouping import GroupIndexOutOfRange, InvalidArgument
from app.pagegroup.services.orchestrator import (
    ExtractionOrchestrator,
    FlowState,
    GroupExtractionFailed,
)
from app.pagegroup.services.retry import OperationCancelled


class FakeAIService:
    """Scripted AI service recording every call."""

    def __init__(
        self,
        failing_groups: set[int] = frozenset(),
        failing_pages: set[int] = frozenset(),
        header_failures: int = 0,
        suggestion_failures: int = 0,
    ):
        self.failing_groups = failing_groups
        self.failing_pages = failing_pages
        self.header_failures = header_failures
        self.suggestion_failures = suggestion_failures
        self.calls: list[tuple] = []

    async def suggest_fields(self, first_page_pdf: bytes) -> list[FieldSpec]:
        self.calls.append(("suggest",))
        if self.suggestion_failures:
            self.suggestion_failures -= 1
            raise MalformedResponse("not json")
        return [FieldSpec(field_name="accountNumber"), FieldSpec(field_name="statementDate")]

    async def extract_group(self, group_pdf, field_names, group) -> list[ExtractedPage]:
        self.calls.append(("group", group.group_index))
        if group.group_index in self.failing_groups:
            raise TransientTransportError("Inference backend returned 500", status_code=500)
        return [
            ExtractedPage(
                page_number=number,
                fields={name: FieldValue(value=f"{name}-{number}") for name in field_names},
            )
            for number in group.page_numbers
        ]

    async def detect_table_headers(self, first_page_pdf: bytes) -> list[str]:
        self.calls.append(("headers",))
        if self.header_failures:
            self.header_failures -= 1
            raise MalformedResponse("no headers")
        return ["Date", "Details", "Amount"]

    async def extract_table_page(self, page_pdf, headers, page_number) -> ExtractedTablePage:
        self.calls.append(("page", page_number))
        if page_number in self.failing_pages:
            raise TransientTransportError("Inference backend returned 503", status_code=503)
        return ExtractedTablePage(
            page_number=page_number,
            table_data=TableData(headers=list(headers), rows=[[f"row-{page_number}"] * len(headers)]),
        )


def make_orchestrator(ai_service, recording_sleep, cancel_event=None) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(
        ai_service=ai_service,
        cache=PageGroupCache(group_size=10),
        settings=Settings(openai_api_key=None),
        sleep=recording_sleep,
        cancel_event=cancel_event,
    )


async def collect(events):
    return [event async for event in events]


class TestPrepareDocument:
    """Tests for the merge and count phases."""

    def test_merge_then_count(self, make_pdf, page_widths, recording_sleep):
        orchestrator = make_orchestrator(FakeAIService(), recording_sleep)
        document = orchestrator.prepare_document([make_pdf(3), make_pdf(2, first_width=300)])

        assert document.page_count == 5
        assert page_widths(document.content) == [100, 101, 102, 300, 301]
        assert orchestrator.state == FlowState.COUNTING

    def test_skipped_inputs_reported(self, make_pdf, recording_sleep, invalid_file_bytes):
        orchestrator = make_orchestrator(FakeAIService(), recording_sleep)
        document = orchestrator.prepare_document([invalid_file_bytes, make_pdf(2)])
        assert document.skipped_inputs == [0]
        assert document.page_count == 2


class TestFieldFlow:
    """Tests for field-mode group processing."""

    @pytest.mark.asyncio
    async def test_twenty_five_pages_in_three_groups(self, make_pdf, recording_sleep):
        """Test one event per group plus a terminal event with every page."""
        ai_service = FakeAIService()
        orchestrator = make_orchestrator(ai_service, recording_sleep)

        events = await collect(orchestrator.iter_field_groups(make_pdf(25), ["total"]))

        assert len(events) == 4
        assert [(e.group_info.start_page, e.group_info.end_page) for e in events[:3]] == [
            (1, 10),
            (11, 20),
            (21, 25),
        ]
        assert [e.completed_pages for e in events[:3]] == [10, 20, 25]
        assert [len(e.data.pages) for e in events[:3]] == [10, 10, 5]
        assert [p.page_number for p in events[1].accumulated.pages] == list(range(1, 21))
        final = events[-1]
        assert final.done and final.success
        assert [p.page_number for p in final.data.pages] == list(range(1, 26))
        assert ai_service.calls == [("group", 0), ("group", 1), ("group", 2)]
        assert recording_sleep.delays == []
        assert orchestrator.state == FlowState.DONE

    @pytest.mark.asyncio
    async def test_failing_group_aborts_the_run(self, make_pdf, recording_sleep):
        """Test that group 2 exhausting retries stops before group 3."""
        ai_service = FakeAIService(failing_groups={1})
        orchestrator = make_orchestrator(ai_service, recording_sleep)

        events = await collect(orchestrator.iter_field_groups(make_pdf(25), ["total"]))

        assert [e.success for e in events] == [True, False]
        failure = events[-1]
        assert failure.done
        assert failure.group_info.group_index == 1
        assert "group 2 (pages 11-20)" in failure.error
        assert [p.page_number for p in failure.data.pages] == list(range(1, 11))
        assert ai_service.calls == [("group", 0)] + [("group", 1)] * 5
        assert recording_sleep.delays == [15.0] * 4
        assert orchestrator.state == FlowState.ERROR

    @pytest.mark.asyncio
    async def test_run_field_flow_raises_with_partial_result(self, make_pdf, recording_sleep):
        orchestrator = make_orchestrator(FakeAIService(failing_groups={1}), recording_sleep)

        with pytest.raises(GroupExtractionFailed) as exc_info:
            await orchestrator.run_field_flow(make_pdf(25), ["total"])

        assert exc_info.value.group.start_page == 11
        assert exc_info.value.group.end_page == 20
        assert len(exc_info.value.partial.pages) == 10

    @pytest.mark.asyncio
    async def test_empty_field_list_rejected(self, make_pdf, recording_sleep):
        orchestrator = make_orchestrator(FakeAIService(), recording_sleep)
        with pytest.raises(InvalidArgument):
            await orchestrator.run_field_flow(make_pdf(3), [])

    @pytest.mark.asyncio
    async def test_group_out_of_range_not_retried(self, make_pdf, recording_sleep):
        ai_service = FakeAIService()
        orchestrator = make_orchestrator(ai_service, recording_sleep)
        with pytest.raises(GroupIndexOutOfRange):
            await orchestrator.extract_group(make_pdf(5), ["total"], 1)
        assert ai_service.calls == []

    @pytest.mark.asyncio
    async def test_suggest_fields_retried(self, make_pdf, recording_sleep):
        ai_service = FakeAIService(suggestion_failures=2)
        orchestrator = make_orchestrator(ai_service, recording_sleep)

        fields = await orchestrator.suggest_fields(make_pdf(2))

        assert [f.field_name for f in fields] == ["accountNumber", "statementDate"]
        assert len(ai_service.calls) == 3
        assert recording_sleep.delays == [15.0, 15.0]


class TestTableFlow:
    """Tests for table-mode page processing."""

    @pytest.mark.asyncio
    async def test_failing_page_degrades_to_empty_rows(self, make_pdf, recording_sleep):
        """Test that page 7 of 10 failing still yields all ten pages."""
        ai_service = FakeAIService(failing_pages={7})
        orchestrator = make_orchestrator(ai_service, recording_sleep)

        events = await collect(orchestrator.iter_table_pages(make_pdf(10)))

        page_events = events[:-1]
        assert [e.page_number for e in page_events] == list(range(1, 11))
        degraded = [e for e in page_events if e.degraded]
        assert [e.page_number for e in degraded] == [7]
        assert "page 7" in degraded[0].error
        assert [p.page_number for p in degraded[0].accumulated.pages] == list(range(1, 8))

        final = events[-1]
        assert final.done and final.success
        pages = final.data.pages
        assert [p.page_number for p in pages] == list(range(1, 11))
        assert pages[6].table_data.rows == []
        assert pages[6].table_data.headers == ["Date", "Details", "Amount"]
        assert all(p.table_data.rows for p in pages if p.page_number != 7)
        # nine inter-page throttles plus four retry waits on page 7
        assert recording_sleep.delays == [15.0] * 13
        assert ai_service.calls.count(("page", 7)) == 5

    @pytest.mark.asyncio
    async def test_header_fallback_after_three_attempts(self, make_pdf, recording_sleep):
        """Test that header detection failing three times uses the defaults."""
        ai_service = FakeAIService(header_failures=3)
        orchestrator = make_orchestrator(ai_service, recording_sleep)

        result = await orchestrator.run_table_flow(make_pdf(1))

        assert ai_service.calls.count(("headers",)) == 3
        assert recording_sleep.delays == [3.0, 6.0]
        assert result.pages[0].table_data.headers == DEFAULT_TABLE_HEADERS

    @pytest.mark.asyncio
    async def test_headers_detected_once(self, make_pdf, recording_sleep):
        ai_service = FakeAIService()
        orchestrator = make_orchestrator(ai_service, recording_sleep)

        result = await orchestrator.run_table_flow(make_pdf(3))

        assert ai_service.calls == [("headers",), ("page", 1), ("page", 2), ("page", 3)]
        assert all(p.table_data.headers == ["Date", "Details", "Amount"] for p in result.pages)


class TestWholeRun:
    """Tests for merge-through-done runs and cancellation."""

    @pytest.mark.asyncio
    async def test_field_run_uses_suggestions_when_no_selection(self, make_pdf, recording_sleep):
        ai_service = FakeAIService()
        orchestrator = make_orchestrator(ai_service, recording_sleep)

        result = await orchestrator.run([make_pdf(3), make_pdf(9)], ExtractionMode.FIELD)

        assert [p.page_number for p in result.pages] == list(range(1, 13))
        assert set(result.pages[0].fields) == {"accountNumber", "statementDate"}
        assert ai_service.calls == [("suggest",), ("group", 0), ("group", 1)]

    @pytest.mark.asyncio
    async def test_table_run(self, make_pdf, recording_sleep):
        orchestrator = make_orchestrator(FakeAIService(), recording_sleep)
        result = await orchestrator.run([make_pdf(2)], ExtractionMode.TABLE)
        assert [p.page_number for p in result.pages] == [1, 2]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, make_pdf, recording_sleep):
        """Test that a set cancel event stops the run before any inference."""
        cancel_event = asyncio.Event()
        cancel_event.set()
        ai_service = FakeAIService()
        orchestrator = make_orchestrator(ai_service, recording_sleep, cancel_event)

        with pytest.raises(OperationCancelled):
            await orchestrator.run_field_flow(make_pdf(5), ["total"])
        assert ai_service.calls == []
        assert orchestrator.state == FlowState.ERROR

    @pytest.mark.asyncio
    async def test_cancel_during_table_throttle(self, make_pdf):
        """Test that cancelling during the inter-page wait stops the flow."""
        cancel_event = asyncio.Event()

        async def cancelling_sleep(seconds: float):
            cancel_event.set()

        ai_service = FakeAIService()
        orchestrator = make_orchestrator(ai_service, cancelling_sleep, cancel_event)

        with pytest.raises(OperationCancelled):
            await orchestrator.run_table_flow(make_pdf(4))
        assert ("page", 2) not in ai_service.calls
