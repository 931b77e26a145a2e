"""Tests for result consolidation and CSV rendering."""

import csv
import io

from app.pagegroup.models import ExtractedPage, ExtractedTablePage, FieldValue, TableData
from app.pagegroup.services.export import (
    consolidate_table,
    field_table,
    order_headers,
    sort_rows_by_date,
    to_csv,
)


def table_page(number: int, headers: list[str], rows: list[list[str]]) -> ExtractedTablePage:
    return ExtractedTablePage(page_number=number, table_data=TableData(headers=headers, rows=rows))


class TestFieldTable:
    """Tests for field-mode export."""

    def test_page_column_first_and_nulls_as_na(self):
        pages = [
            ExtractedPage(
                page_number=1,
                fields={"name": FieldValue(value="ACME"), "date": FieldValue(value=None)},
            ),
            ExtractedPage(page_number=2, fields={"name": FieldValue(value="Globex")}),
        ]

        table = field_table(pages)

        assert table.headers == ["Page", "name", "date"]
        assert table.rows == [["1", "ACME", "N/A"], ["2", "Globex", "N/A"]]


class TestConsolidateTable:
    """Tests for table-mode consolidation."""

    def test_priority_headers_first_then_alphabetical(self):
        headers = ["Reference", "Balance", "Amount", "Category", "Transaction Date", "Description"]
        assert order_headers(headers) == [
            "Transaction Date",
            "Description",
            "Amount",
            "Balance",
            "Category",
            "Reference",
        ]

    def test_rows_remapped_to_union_headers(self):
        pages = [
            table_page(1, ["Date", "Amount"], [["2024-01-02", "5"]]),
            table_page(2, ["Date", "Balance"], [["2024-01-03", "95"]]),
        ]

        table = consolidate_table(pages)

        assert table.headers == ["Date", "Amount", "Balance", "Page"]
        assert table.rows == [
            ["2024-01-02", "5", "", "1"],
            ["2024-01-03", "", "95", "2"],
        ]

    def test_rows_sorted_by_date_column(self):
        pages = [
            table_page(1, ["Date", "Description"], [["2024-03-01", "late"], ["2024-01-01", "early"]]),
            table_page(2, ["Date", "Description"], [["2024-02-01", "middle"]]),
        ]
        table = consolidate_table(pages)
        assert [row[1] for row in table.rows] == ["early", "middle", "late"]

    def test_day_first_dates_sorted(self):
        rows = [["25/01/2024", "late"], ["13/01/2024", "early"]]
        assert sort_rows_by_date(rows, ["Date", "Description"]) == [
            ["13/01/2024", "early"],
            ["25/01/2024", "late"],
        ]

    def test_undated_rows_kept_in_order_after_dated(self):
        rows = [["", "b"], ["2024-01-02", "x"], ["n/a", "c"]]
        assert sort_rows_by_date(rows, ["Date", "Description"]) == [
            ["2024-01-02", "x"],
            ["", "b"],
            ["n/a", "c"],
        ]

    def test_no_date_column_keeps_order(self):
        rows = [["b"], ["a"]]
        assert sort_rows_by_date(rows, ["Description"]) == [["b"], ["a"]]

    def test_degraded_pages_contribute_no_rows(self):
        pages = [table_page(1, ["Date"], [["2024-01-01"]]), table_page(2, ["Date"], [])]
        assert len(consolidate_table(pages).rows) == 1


class TestToCsv:
    def test_quotes_embedded_commas(self):
        text = to_csv(TableData(headers=["Page", "name"], rows=[["1", "Smith, J."]]))
        assert list(csv.reader(io.StringIO(text))) == [["Page", "name"], ["1", "Smith, J."]]
