"""
Routers package for FastAPI endpoints.

Organized by domain:
- pdfs: Merging and page counting
- extraction: Field suggestion, group/table extraction, streamed runs
- export: CSV export of results
"""

from . import export, extraction, pdfs

__all__ = ["export", "extraction", "pdfs"]
