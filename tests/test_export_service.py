"""
Tests for `services/export_service.py`.

Covers contract rules:
- Exported columns: Sr#, Sale ID, Username, Referer Name, Created At, Price.
- Sales without a referrer export "No Referrer".
- Dangerous leading characters are stripped from text cells (CSV injection).
- File name: sales-report-YYYY-MM-DD.csv
"""

from __future__ import annotations

import csv
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

from domain.sale import LedgerRow, SaleRecord
from services.export_service import (
    EXPORT_COLUMNS,
    build_export_rows,
    export_filename,
    format_created_at,
    render_csv,
    sanitize_csv_field,
)


def _row(doc_id: str, *, referrer: str = "", referrer_name: str = "", buyer_name: str = "Alice",
         hour: int = 23) -> LedgerRow:
    sale = SaleRecord(
        id=doc_id,
        sale_id=f"S-{doc_id}",
        created_at=datetime(2025, 10, 29, hour, 6, tzinfo=timezone.utc),
        price=Decimal("25.50"),
        buyer_id="u1",
        referrer_id=referrer or None,
    )
    return LedgerRow(sale=sale, buyer_name=buyer_name, referrer_name=referrer_name)


def test_format_created_at() -> None:
    """Verify the "Mon D, YYYY, HH:MM AM" rendering."""

    assert format_created_at(datetime(2025, 10, 29, 23, 6, tzinfo=timezone.utc)) == "Oct 29, 2025, 11:06 PM"
    assert format_created_at(datetime(2025, 3, 5, 9, 0, tzinfo=timezone.utc)) == "Mar 5, 2025, 09:00 AM"


def test_build_export_rows_numbers_and_referrer_label() -> None:
    """Verify Sr# numbering and the "No Referrer" label."""

    records = build_export_rows([_row("a"), _row("b", referrer="r1", referrer_name="Rita")])

    assert [record["Sr#"] for record in records] == [1, 2]
    assert records[0]["Referer Name"] == "No Referrer"
    assert records[1]["Referer Name"] == "Rita"
    assert records[0]["Price"] == "25.50"
    assert list(records[0]) == EXPORT_COLUMNS


def test_render_csv_has_header_and_rows() -> None:
    """Verify the CSV layout."""

    content = render_csv([_row("a"), _row("b", hour=9)])

    parsed = list(csv.reader(StringIO(content)))
    assert parsed[0] == EXPORT_COLUMNS
    assert parsed[1] == ["1", "S-a", "Alice", "No Referrer", "Oct 29, 2025, 11:06 PM", "25.50"]
    assert parsed[2][4] == "Oct 29, 2025, 09:06 AM"


def test_render_csv_strips_formula_prefixes(caplog) -> None:
    """Verify injection characters are removed and logged."""

    content = render_csv([_row("a", buyer_name="=HYPERLINK(\"http://x\")")])

    parsed = list(csv.reader(StringIO(content)))
    assert parsed[1][2] == "HYPERLINK(\"http://x\")"
    assert "CSV injection character(s) stripped from field 'Username'" in caplog.text


def test_sanitize_csv_field() -> None:
    """Verify repeated dangerous prefixes and empty values."""

    assert sanitize_csv_field("+-@cmd", "x") == "cmd"
    assert sanitize_csv_field(None) == ""
    assert sanitize_csv_field("Bob") == "Bob"


def test_export_filename() -> None:
    """Verify the dated file name."""

    assert export_filename(date(2025, 10, 29)) == "sales-report-2025-10-29.csv"
