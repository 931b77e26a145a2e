"""Pytest configuration and fixtures."""

import base64
import io
from collections.abc import Callable
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader, PdfWriter

from app.pagegroup.config import Settings, get_settings
from app.pagegroup.main import app
from app.pagegroup.services.ai import AIService, get_ai_service
from app.pagegroup.services.cache import PageGroupCache, get_page_group_cache


def build_pdf(page_count: int, first_width: int = 100) -> bytes:
    """
    Build an in-memory PDF of blank pages.

    Page ``n`` is ``first_width + n - 1`` points wide, so page order
    survives slicing and merging in an observable way.
    """
    writer = PdfWriter()
    for offset in range(page_count):
        writer.add_blank_page(width=first_width + offset, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def widths_of(pdf_bytes: bytes) -> list[int]:
    """Page widths of a PDF, in page order."""
    reader = PdfReader(io.BytesIO(pdf_bytes))
    return [int(float(page.mediabox.width)) for page in reader.pages]


class RecordingSleep:
    """Async ``sleep`` replacement that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    """Factory for blank-page PDFs of distinct widths."""
    return build_pdf


@pytest.fixture
def page_widths() -> Callable[[bytes], list[int]]:
    return widths_of


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with mock inference and no real waiting."""
    return Settings(
        openai_api_key=None,
        retry_delay_seconds=0,
        header_backoff_seconds=0,
        table_page_delay_seconds=0,
    )


@pytest.fixture
def cache() -> PageGroupCache:
    """A private cache so tests never share slices."""
    return PageGroupCache(group_size=10, max_entries=16)


@pytest.fixture
def client(test_settings: Settings, cache: PageGroupCache) -> Generator[TestClient, None, None]:
    """Create a test client with mock inference and a private cache."""
    ai_service = AIService(use_mock=True, settings=test_settings)
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    app.dependency_overrides[get_page_group_cache] = lambda: cache
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def encode() -> Callable[[bytes], str]:
    """Base64 encode PDF bytes for request bodies."""
    return lambda pdf_bytes: base64.b64encode(pdf_bytes).decode("ascii")


@pytest.fixture
def invalid_file_bytes() -> bytes:
    """Create invalid (non-PDF) file bytes for testing."""
    return b"This is not a PDF file"
