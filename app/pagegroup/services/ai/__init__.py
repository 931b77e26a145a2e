"""
AI service package for page-grouped PDF extraction.

This package provides modular AI functionality split into:
- inference: OpenAI binding for prompt + PDF requests
- discovery: Field suggestion from the first page
- extraction: Field extraction over one page group
- tables: Table header detection and per-page row extraction
- repair: Recovery of JSON from free-form model output
- validation: Value normalization and date detection

The AIService class bundles the client, model and generation settings and
delegates to these modules. Retries are not done here; see the orchestrator.
"""

import logging
from typing import Any

from ...config import Settings, get_settings
from ...models import (
    DEFAULT_TABLE_HEADERS,
    ExtractedPage,
    ExtractedTablePage,
    FieldSpec,
    FieldValue,
    PageGroup,
    TableData,
)
from .discovery import suggest_fields as _suggest_fields
from .exceptions import AIServiceError, MalformedResponse, TransientTransportError
from .extraction import extract_group as _extract_group
from .tables import (
    detect_table_headers as _detect_table_headers,
    extract_table_page as _extract_table_page,
)
from .validation import field_type_for

logger = logging.getLogger(__name__)

__all__ = [
    "AIService",
    "AIServiceError",
    "MalformedResponse",
    "TransientTransportError",
    "get_ai_service",
]


# =============================================================================
# AIService Class
# =============================================================================


class AIService:
    """
    Service for AI-powered extraction from PDF slices.

    Each method performs exactly one inference call and raises
    ``TransientTransportError`` or ``MalformedResponse`` on failure.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        use_mock: bool = False,
        settings: Settings | None = None,
    ):
        """
        Initialize the AI service.

        Args:
            api_key: OpenAI API key. If None, read from settings.
            model: OpenAI model to use (must accept PDF input).
            use_mock: If True, return mock data instead of calling OpenAI.
            settings: Settings to read defaults from.
        """
        settings = settings or get_settings()
        if api_key is None:
            api_key = settings.openai_api_key

        self.api_key = api_key
        self.model = model or settings.openai_model
        self.generation: dict[str, Any] = {
            "max_output_tokens": settings.max_output_tokens,
            "temperature": settings.temperature,
            "top_p": settings.top_p,
        }
        self.use_mock = use_mock or not self.api_key
        self._client = None

        if self.use_mock:
            logger.warning(
                "AI Service running in MOCK MODE. Set OPENAI_API_KEY in .env for real extraction."
            )

    @property
    def client(self):
        """Lazy-load the async OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise AIServiceError(
                    "OpenAI API key not provided. Set OPENAI_API_KEY environment variable."
                )
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def suggest_fields(self, first_page_pdf: bytes) -> list[FieldSpec]:
        """
        Suggest extractable fields from the document's first page.

        Args:
            first_page_pdf: One-page PDF holding page 1.

        Returns:
            Suggested fields; never empty.
        """
        if self.use_mock:
            return self._get_mock_fields()
        return await _suggest_fields(
            first_page_pdf, client=self.client, model=self.model, **self.generation
        )

    async def extract_group(
        self, group_pdf: bytes, field_names: list[str], group: PageGroup
    ) -> list[ExtractedPage]:
        """
        Extract ``field_names`` from each page of ``group``.

        Returns:
            One ExtractedPage per page of the group, in page order.
        """
        if self.use_mock:
            return self._get_mock_group(field_names, group)
        return await _extract_group(
            group_pdf,
            field_names,
            group,
            client=self.client,
            model=self.model,
            **self.generation,
        )

    async def detect_table_headers(self, first_page_pdf: bytes) -> list[str]:
        """Detect the document-wide table headers from page 1."""
        if self.use_mock:
            return list(DEFAULT_TABLE_HEADERS)
        return await _detect_table_headers(
            first_page_pdf, client=self.client, model=self.model, **self.generation
        )

    async def extract_table_page(
        self, page_pdf: bytes, headers: list[str], page_number: int
    ) -> ExtractedTablePage:
        """Extract the table rows of a single page."""
        if self.use_mock:
            return self._get_mock_table_page(headers, page_number)
        return await _extract_table_page(
            page_pdf,
            headers,
            page_number,
            client=self.client,
            model=self.model,
            **self.generation,
        )

    def _get_mock_fields(self) -> list[FieldSpec]:
        """Return mock statement fields for development."""
        return [
            FieldSpec(field_name="accountNumber", description="Account number printed in the page header"),
            FieldSpec(field_name="statementDate", description="Date the statement was issued"),
            FieldSpec(field_name="closingBalance", description="Balance at the end of the page"),
        ]

    def _get_mock_group(self, field_names: list[str], group: PageGroup) -> list[ExtractedPage]:
        """Return mock pages for every page of the group."""
        pages = []
        for number in group.page_numbers:
            values = {}
            for name in field_names:
                value = "2024-01-15" if "date" in name.lower() else f"MOCK-{name.upper()}-{number:03d}"
                values[name] = FieldValue(value=value, type=field_type_for(value))
            pages.append(ExtractedPage(page_number=number, fields=values))
        return pages

    def _get_mock_table_page(self, headers: list[str], page_number: int) -> ExtractedTablePage:
        """Return one mock row per page."""
        row = [f"MOCK-{header.upper()}-{page_number:03d}" for header in headers]
        return ExtractedTablePage(
            page_number=page_number,
            table_data=TableData(headers=list(headers), rows=[row]),
        )


# =============================================================================
# Singleton Factory
# =============================================================================

_ai_service: AIService | None = None


def get_ai_service() -> AIService:
    """Get or create the AI service singleton."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
