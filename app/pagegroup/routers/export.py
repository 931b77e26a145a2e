"""
Router for CSV export of extraction results.
"""

import logging
from datetime import date

from fastapi import APIRouter
from fastapi.responses import Response

from ..models import ExportFieldsRequest, ExportTableRequest
from ..services.export import consolidate_table, field_table, to_csv

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["export"])


def _csv_response(content: str, prefix: str) -> Response:
    filename = f"{prefix}_{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/fields")
async def export_fields(request: ExportFieldsRequest) -> Response:
    """Field-mode pages as CSV: ``Page`` then one column per field."""
    table = field_table(request.pages)
    logger.info("Exporting %d field page(s)", len(table.rows))
    return _csv_response(to_csv(table), "extracted_fields")


@router.post("/table")
async def export_table(request: ExportTableRequest) -> Response:
    """Table-mode pages consolidated into a single CSV table."""
    table = consolidate_table(request.pages)
    return _csv_response(to_csv(table), "bank_statement_data")
