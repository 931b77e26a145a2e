"""
Services package for page-grouped PDF extraction.

Contains:
- grouping: Page group planning
- pdf_service: PDF loading, slicing and merging (pypdf)
- cache: Content-keyed cache of documents and group slices
- retry: Bounded retry with fixed or linear backoff
- accumulator: Page-sorted result accumulation
- orchestrator: The sequential field/table workflow
- export: Consolidation of results for spreadsheet export
- ai: OpenAI integration for field suggestion and extraction
"""

from .ai import AIService
from .pdf_service import PDFService

__all__ = ["PDFService", "AIService"]
