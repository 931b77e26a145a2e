"""
Spreadsheet-ready consolidation of extraction results.

Field pages become one row per page; table pages are merged into a single
table over the union of their headers. ``to_csv`` renders either shape.
"""

import csv
import io
import logging
from datetime import datetime

from ..models import ExtractedPage, ExtractedTablePage, TableData
from .ai.validation import parse_date

logger = logging.getLogger(__name__)

PAGE_COLUMN = "Page"
MISSING_VALUE = "N/A"

# Common bank statement columns, matched by substring, in display order
PRIORITY_HEADERS = ["Date", "Transaction Date", "Description", "Debit", "Credit", "Amount", "Balance"]


def field_table(pages: list[ExtractedPage]) -> TableData:
    """
    Lay out field-mode pages as ``Page, <field...>`` rows.

    Field columns follow first appearance across pages; null or missing
    values are written as ``N/A``.
    """
    field_names: list[str] = []
    for page in pages:
        for name in page.fields:
            if name not in field_names:
                field_names.append(name)

    rows = []
    for page in pages:
        row = [str(page.page_number)]
        for name in field_names:
            field_value = page.fields.get(name)
            if field_value is None or field_value.value is None:
                row.append(MISSING_VALUE)
            else:
                row.append(field_value.value)
        rows.append(row)

    return TableData(headers=[PAGE_COLUMN, *field_names], rows=rows)


def _priority(header: str) -> int | None:
    for index, candidate in enumerate(PRIORITY_HEADERS):
        if candidate in header:
            return index
    return None


def order_headers(headers: list[str]) -> list[str]:
    """Priority headers first (in priority order), the rest alphabetically."""

    def key(header: str):
        priority = _priority(header)
        if priority is None:
            return (1, 0, header.lower())
        return (0, priority, "")

    return sorted(headers, key=key)


def sort_rows_by_date(rows: list[list[str]], headers: list[str]) -> list[list[str]]:
    """
    Stable sort by the first column whose header mentions a date or time.

    Rows whose cell does not parse as a date keep their relative order
    after the dated rows. Without a date column the rows are returned as is.
    """
    date_column = next(
        (i for i, h in enumerate(headers) if "date" in h.lower() or "time" in h.lower()),
        None,
    )
    if date_column is None:
        return list(rows)

    def key(row: list[str]):
        parsed = parse_date(row[date_column]) if date_column < len(row) else None
        if parsed is None:
            return (1, datetime.min)
        return (0, parsed)

    return sorted(rows, key=key)


def consolidate_table(pages: list[ExtractedTablePage]) -> TableData:
    """
    Merge table pages into one table.

    Every row is remapped onto the union of page headers, missing cells are
    empty, and a trailing ``Page`` column records the source page.
    """
    union: list[str] = []
    for page in pages:
        for header in page.table_data.headers:
            if header not in union:
                union.append(header)
    headers = order_headers(union)
    positions = {header: index for index, header in enumerate(headers)}

    rows: list[list[str]] = []
    for page in pages:
        page_headers = page.table_data.headers
        for row in page.table_data.rows:
            new_row = [""] * len(headers)
            for index, header in enumerate(page_headers):
                if index < len(row):
                    new_row[positions[header]] = row[index]
            new_row.append(str(page.page_number))
            rows.append(new_row)

    rows = sort_rows_by_date(rows, headers)
    logger.info("Consolidated %d row(s) from %d page(s)", len(rows), len(pages))
    return TableData(headers=[*headers, PAGE_COLUMN], rows=rows)


def to_csv(table: TableData) -> str:
    """Render a header row plus data rows as CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(table.headers)
    writer.writerows(table.rows)
    return buffer.getvalue()
