"""
Shared request helpers and FastAPI dependencies.
"""

import asyncio
import base64
import binascii
import logging
from typing import Annotated

from fastapi import Depends

from ..config import Settings, get_settings
from ..services.ai import AIService, get_ai_service
from ..services.cache import PageGroupCache, get_page_group_cache
from ..services.orchestrator import ExtractionOrchestrator

logger = logging.getLogger(__name__)


class InvalidInput(ValueError):
    """Raised for malformed or missing request content."""

    pass


def decode_pdf(content: str, name: str = "base64Content") -> bytes:
    """
    Decode a base64 PDF, accepting an optional ``data:...;base64,`` prefix.

    Raises:
        InvalidInput: If the content is empty or not valid base64.
    """
    if content.startswith("data:"):
        _, _, content = content.partition(",")
    content = "".join(content.split())
    if not content:
        raise InvalidInput(f"{name} is empty")
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput(f"{name} is not valid base64: {e}") from e


def encode_pdf(pdf_bytes: bytes) -> str:
    return base64.b64encode(pdf_bytes).decode("ascii")


def get_orchestrator(
    ai_service: Annotated[AIService, Depends(get_ai_service)],
    cache: Annotated[PageGroupCache, Depends(get_page_group_cache)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ExtractionOrchestrator:
    """New orchestrator per request, with its own cancellation signal."""
    return ExtractionOrchestrator(
        ai_service=ai_service,
        cache=cache,
        settings=settings,
        cancel_event=asyncio.Event(),
    )


AIServiceDep = Annotated[AIService, Depends(get_ai_service)]
CacheDep = Annotated[PageGroupCache, Depends(get_page_group_cache)]
OrchestratorDep = Annotated[ExtractionOrchestrator, Depends(get_orchestrator)]
