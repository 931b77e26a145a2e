"""
Router for extraction endpoints.

Handles:
- Field suggestion from page 1
- Field extraction for a single page group
- Table extraction over a whole document
- Streamed extraction runs (NDJSON progress events)
- Cache maintenance
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse

from ..models import (
    CacheClearResponse,
    DocumentRequest,
    ExtractDocumentRequest,
    ExtractDocumentResponse,
    ExtractGroupRequest,
    ExtractGroupResponse,
    ExtractionData,
    ExtractTableResponse,
    ProgressEvent,
    SuggestFieldsResponse,
)
from ..services.grouping import InvalidArgument
from ..services.retry import OperationCancelled
from .dependencies import AIServiceDep, CacheDep, InvalidInput, OrchestratorDep, decode_pdf

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["extraction"])


@router.post("/suggest-fields", response_model=SuggestFieldsResponse)
async def suggest_fields(
    request: DocumentRequest, ai_service: AIServiceDep, cache: CacheDep
) -> SuggestFieldsResponse:
    """
    Suggest extractable fields from the first page of the document.

    Makes a single inference attempt; callers retry.
    """
    pdf_bytes = decode_pdf(request.base64_content)
    first_page = cache.get_first_page(pdf_bytes)
    fields = await ai_service.suggest_fields(first_page)
    return SuggestFieldsResponse(fields=fields)


@router.post("/extract-data-group", response_model=ExtractGroupResponse)
async def extract_data_group(
    request: ExtractGroupRequest, ai_service: AIServiceDep, cache: CacheDep
) -> ExtractGroupResponse:
    """
    Extract the selected fields from one page group.

    ``groupInfo`` must match the group computed for the document. Makes a
    single inference attempt; callers retry.
    """
    pdf_bytes = decode_pdf(request.base64_content)
    group_slice = cache.get_group(pdf_bytes, request.group_info.group_index)
    group = group_slice.group
    if group != request.group_info:
        raise InvalidArgument(
            f"groupInfo does not match the document: expected pages "
            f"{group.start_page}-{group.end_page} of {group.total_pages}"
        )

    logger.info("Extracting %s for fields %s", group.label, request.selected_fields)
    pages = await ai_service.extract_group(group_slice.content, request.selected_fields, group)
    return ExtractGroupResponse(data=ExtractionData(pages=pages), group_info=group)


@router.post("/extract-table-data", response_model=ExtractTableResponse)
async def extract_table_data(
    request: DocumentRequest, orchestrator: OrchestratorDep
) -> ExtractTableResponse:
    """
    Extract the transaction table from every page.

    Pages whose extraction keeps failing come back with empty rows.
    """
    pdf_bytes = decode_pdf(request.base64_content)
    result = await orchestrator.run_table_flow(pdf_bytes)
    return ExtractTableResponse(data=ExtractionData(pages=result.pages))


@router.post("/extract-document", response_model=None)
async def extract_document(
    request: ExtractDocumentRequest, orchestrator: OrchestratorDep
) -> StreamingResponse | JSONResponse:
    """
    Merge the inputs and run the extraction.

    By default the run is streamed as NDJSON progress events. Input errors
    are reported with a normal error response before streaming starts;
    failures after that arrive as a final ``success: false`` event. With
    ``stream: false`` the final result is returned as one JSON body.
    """
    inputs = [decode_pdf(pdf, name=f"pdfs[{i}]") for i, pdf in enumerate(request.pdfs)]
    if request.selected_fields is not None and not any(f.strip() for f in request.selected_fields):
        raise InvalidInput("selectedFields must name at least one field")
    selected_fields = (
        [f.strip() for f in request.selected_fields if f.strip()] if request.selected_fields else None
    )
    document = orchestrator.prepare_document(inputs)

    if not request.stream:
        result = await orchestrator.run_document(document, request.mode, selected_fields)
        response = ExtractDocumentResponse(
            mode=request.mode,
            data=ExtractionData(pages=result.pages),
            skipped_inputs=document.skipped_inputs,
        )
        return JSONResponse(content=response.model_dump(mode="json", by_alias=True))

    async def stream():
        try:
            async for event in orchestrator.iter_document(document, request.mode, selected_fields):
                yield event.model_dump_json(by_alias=True) + "\n"
        except OperationCancelled:
            logger.info("Extraction stream cancelled")
        except Exception as e:
            logger.exception("Extraction stream failed")
            failure = ProgressEvent(
                success=False,
                mode=request.mode,
                error=str(e),
                total_pages=document.page_count,
                done=True,
            )
            yield failure.model_dump_json(by_alias=True) + "\n"
        finally:
            orchestrator.cancel_event.set()

    return StreamingResponse(stream(), media_type="application/x-ndjson")


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_cache(cache: CacheDep) -> CacheClearResponse:
    """Drop every cached document and slice."""
    return CacheClearResponse(cleared=cache.clear())
