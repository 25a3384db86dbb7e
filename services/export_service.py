"""
Export service for the sales ledger.

Decides which rows and columns leave the ledger: the rows are exactly the
filtered/sorted (optionally selected) rows the operator is looking at, with
display names instead of raw ids. CSV rendering is provided here; other file
formats (XLSX, ZIP) are assembled elsewhere from `build_export_rows`.

Security:
- CSV Injection Prevention: Sanitizes text fields to prevent formula execution
- Security Logging: Logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import logging
from datetime import date, datetime
from io import StringIO
from typing import Dict, List, Sequence, Union

from domain.sale import LedgerRow

logger = logging.getLogger(__name__)

NO_REFERRER_LABEL: str = "No Referrer"

EXPORT_COLUMNS: List[str] = [
    "Sr#",
    "Sale ID",
    "Username",
    "Referer Name",
    "Created At",
    "Price",
]

ExportValue = Union[int, str]


def sanitize_csv_field(value: str | None, field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    Args:
        value: Field value to sanitize
        field_name: Name of the field being sanitized (for logging)

    Returns:
        Sanitized string safe for CSV export

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "Username")
        # Returns "HYPERLINK(...)" and logs warning about stripped "=" character
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text
    dangerous_chars = {'=', '+', '-', '@', '\t', '\r'}

    stripped_chars = []
    while text and text[0] in dangerous_chars:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention"
            }
        )

    return text


def format_created_at(value: datetime) -> str:
    """Render as e.g. "Oct 29, 2025, 11:06 PM" (UTC)."""

    return f"{value:%b} {value.day}, {value.year}, {value:%I:%M %p}"


def build_export_rows(rows: Sequence[LedgerRow]) -> List[Dict[str, ExportValue]]:
    """
    Map ledger rows to export records keyed by EXPORT_COLUMNS.

    "Sr#" numbers rows from 1 in the order given.
    """

    records: List[Dict[str, ExportValue]] = []
    for index, row in enumerate(rows, start=1):
        sale = row.sale
        records.append({
            "Sr#": index,
            "Sale ID": sale.sale_id,
            "Username": row.buyer_name,
            "Referer Name": row.referrer_name if sale.has_referrer else NO_REFERRER_LABEL,
            "Created At": format_created_at(sale.created_at),
            "Price": str(sale.price),
        })
    return records


def render_csv(rows: Sequence[LedgerRow]) -> str:
    """Render ledger rows as CSV text with a header row."""

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)

    for record in build_export_rows(rows):
        writer.writerow([
            record["Sr#"],
            sanitize_csv_field(str(record["Sale ID"]), "Sale ID"),
            sanitize_csv_field(str(record["Username"]), "Username"),
            sanitize_csv_field(str(record["Referer Name"]), "Referer Name"),
            record["Created At"],
            record["Price"],
        ])

    return output.getvalue()


def export_filename(today: date, extension: str = "csv") -> str:
    return f"sales-report-{today.isoformat()}.{extension}"


__all__ = [
    "EXPORT_COLUMNS",
    "NO_REFERRER_LABEL",
    "build_export_rows",
    "export_filename",
    "format_created_at",
    "render_csv",
    "sanitize_csv_field",
]
