"""
Table extraction: shared header detection and per-page row extraction.

Designed for transaction tables such as bank statements, where every page
repeats the same columns.
"""

import json
import logging
from typing import Any

from ...models import ExtractedTablePage, TableData
from .exceptions import MalformedResponse
from .inference import generate_from_pdf
from .repair import parse_json_response, unwrap_list
from .validation import coerce_cell

logger = logging.getLogger(__name__)


HEADER_PROMPT = """This PDF page belongs to a document containing a transaction table (for example a bank statement).
Identify the column headers of the main transaction table.

Return your response in this exact JSON format, with no additional text before or after:

["Date", "Description", "Amount", "Balance"]

Rules:
1. Return ONLY the JSON array of header names, in left-to-right order
2. Use the header text exactly as printed in the document
3. Do not include any table rows"""


def build_table_page_prompt(headers: list[str], page_number: int) -> str:
    """Prompt for the rows of one page, using the document-wide headers."""
    return f"""Extract every row of the transaction table on this page (page {page_number} of the document).

Use exactly these columns, in this order: {json.dumps(headers)}

Return your response in this exact JSON format, with no additional text before or after:

{{
    "rows": [
        {json.dumps(["value" for _ in headers])}
    ]
}}

Rules:
1. Return ONLY the JSON object, no other text
2. Each row must have exactly {len(headers)} values, one per column, as strings
3. Use an empty string for empty cells
4. Do not repeat the header row
5. If the page has no table rows, return {{"rows": []}}"""


def parse_headers(text: str) -> list[str]:
    """
    Parse a header detection response.

    Raises:
        MalformedResponse: If no non-empty list of strings is found.
    """
    parsed = parse_json_response(text)
    headers = unwrap_list(parsed, "headers", "columns")
    if not headers or not all(isinstance(h, str) and h.strip() for h in headers):
        raise MalformedResponse("Invalid header response: expected array of strings", raw_text=text)
    return [coerce_cell(h) for h in headers]


def _cell_by_header(row: dict[str, Any], header: str) -> Any:
    if header in row:
        return row[header]
    lowered = header.lower()
    for key, value in row.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return None


def normalize_table_rows(parsed: Any, headers: list[str], raw_text: str = "") -> list[list[str]]:
    """
    Coerce parsed rows into lists of strings.

    Rows given as lists are stringified cell by cell; rows given as objects
    are mapped into header order. Row length is not enforced.

    Raises:
        MalformedResponse: If no rows array can be found, or it holds values
            but none of them is a row.
    """
    if isinstance(parsed, dict) and isinstance(parsed.get("tableData"), dict):
        parsed = parsed["tableData"]
    rows = unwrap_list(parsed, "rows", "transactions", "data")
    if rows is None:
        raise MalformedResponse("Invalid table response: missing rows array", raw_text=raw_text)

    normalized: list[list[str]] = []
    for row in rows:
        if isinstance(row, list):
            normalized.append([coerce_cell(cell) for cell in row])
        elif isinstance(row, dict):
            normalized.append([coerce_cell(_cell_by_header(row, h)) for h in headers])
        else:
            logger.warning("Dropping non-row value in table response: %r", row)
    if rows and not normalized:
        raise MalformedResponse(
            "Invalid table response: rows array holds no list or object rows", raw_text=raw_text
        )
    return normalized


async def detect_table_headers(
    first_page_pdf: bytes,
    client: Any,
    model: str = "gpt-4.1",
    **generation: Any,
) -> list[str]:
    """Detect the shared column headers from the document's first page."""
    text = await generate_from_pdf(
        client,
        HEADER_PROMPT,
        first_page_pdf,
        model=model,
        filename="first-page.pdf",
        label="detect-table-headers",
        **generation,
    )
    headers = parse_headers(text)
    logger.info("Detected table headers: %s", headers)
    return headers


async def extract_table_page(
    page_pdf: bytes,
    headers: list[str],
    page_number: int,
    client: Any,
    model: str = "gpt-4.1",
    **generation: Any,
) -> ExtractedTablePage:
    """Extract the table rows of a single page."""
    text = await generate_from_pdf(
        client,
        build_table_page_prompt(headers, page_number),
        page_pdf,
        model=model,
        filename=f"page-{page_number}.pdf",
        label=f"extract-table-page {page_number}",
        **generation,
    )
    rows = normalize_table_rows(parse_json_response(text), headers, raw_text=text)
    logger.info("Extracted %d row(s) from page %d", len(rows), page_number)
    return ExtractedTablePage(
        page_number=page_number,
        table_data=TableData(headers=list(headers), rows=rows),
    )
