"""
Router for PDF byte operations.

Handles:
- Merging several PDFs into one
- Page counting
"""

import logging

from fastapi import APIRouter

from ..models import DocumentRequest, MergePDFsRequest, MergePDFsResponse, PageCountResponse
from .dependencies import CacheDep, decode_pdf, encode_pdf

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["pdfs"])


@router.post("/merge-pdfs", response_model=MergePDFsResponse)
async def merge_pdfs(request: MergePDFsRequest, cache: CacheDep) -> MergePDFsResponse:
    """
    Merge base64 encoded PDFs in the given order.

    Inputs that are valid base64 but not parsable PDFs are skipped and
    listed in ``skippedInputs``.
    """
    inputs = [decode_pdf(pdf, name=f"pdfs[{i}]") for i, pdf in enumerate(request.pdfs)]
    logger.info("Merging %d PDF input(s)", len(inputs))

    result = cache.pdf_service.merge(inputs)
    return MergePDFsResponse(
        merged_pdf=encode_pdf(result.content),
        page_count=result.page_count,
        skipped_inputs=result.skipped,
    )


@router.post("/get-page-count", response_model=PageCountResponse)
async def get_page_count(request: DocumentRequest, cache: CacheDep) -> PageCountResponse:
    """Return the page count of a base64 encoded PDF."""
    pdf_bytes = decode_pdf(request.base64_content)
    document = cache.get_document(pdf_bytes)
    return PageCountResponse(page_count=document.page_count)
