"""
Domain: value normalization for stored sale documents (pure).

Sale documents have been written by several generations of clients, so the same
field can arrive as:
- a datetime (or a store-native timestamp object exposing `to_datetime()`),
- an epoch number in milliseconds,
- an ISO-8601 string (optionally with a trailing 'Z'),
- a console-formatted string such as "October 29, 2025 at 11:06:07 PM UTC+5".

Numbers arrive as numbers or numeric strings.

Every function here returns None instead of raising when a value cannot be
interpreted; callers decide whether a None makes the whole record invalid.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .time import as_utc

# "<Month> <Day>, <Year> at <H:MM:SS> <AM|PM> UTC<+-offset>"
_CONSOLE_TIMESTAMP = re.compile(
    r"^(?P<date>[A-Za-z]+ \d{1,2}, \d{4}) at "
    r"(?P<time>\d{1,2}:\d{2}:\d{2} [AP]M) "
    r"UTC(?P<sign>[+-])(?P<hours>\d{1,2})(?::(?P<minutes>\d{2}))?$"
)


def _from_epoch_millis(value: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _from_iso_string(text: str) -> Optional[datetime]:
    try:
        return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def _from_console_string(text: str) -> Optional[datetime]:
    """
    Parse the timestamp rendering copied out of the store's web console.

    The "UTC+5" suffix is rebuilt as a GMT offset before parsing.
    """

    match = _CONSOLE_TIMESTAMP.match(text)
    if match is None:
        return None

    offset = timedelta(
        hours=int(match.group("hours")),
        minutes=int(match.group("minutes") or 0),
    )
    if match.group("sign") == "-":
        offset = -offset

    try:
        local = datetime.strptime(f"{match.group('date')} {match.group('time')}", "%B %d, %Y %I:%M:%S %p")
        return local.replace(tzinfo=timezone(offset)).astimezone(timezone.utc)
    except ValueError:
        return None


def normalize_timestamp(raw: Any) -> Optional[datetime]:
    """
    Convert any supported stored timestamp representation to a UTC datetime.

    Args:
        raw: Value read from a sale document

    Returns:
        Timezone-aware UTC datetime, or None when the value is missing or unparseable
    """

    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, datetime):
        return as_utc(raw)

    to_datetime = getattr(raw, "to_datetime", None)
    if callable(to_datetime):
        try:
            converted = to_datetime()
        except (TypeError, ValueError, OverflowError):
            return None
        return as_utc(converted) if isinstance(converted, datetime) else None

    if isinstance(raw, (int, float)):
        if raw != raw:  # NaN
            return None
        return _from_epoch_millis(float(raw))

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        return _from_iso_string(text) or _from_console_string(text)

    return None


def normalize_number(raw: Any) -> Optional[Decimal]:
    """
    Convert a stored numeric value (number or numeric string) to a Decimal.

    Non-numeric strings, NaN and infinities yield None.
    """

    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        try:
            value = Decimal(raw.strip())
        except InvalidOperation:
            return None
    else:
        return None

    if not value.is_finite():
        return None
    return value


def normalize_identifier(raw: Any) -> str:
    """Return a stripped identifier string ("" for missing values)."""

    if raw is None:
        return ""
    return str(raw).strip()


__all__ = ["normalize_timestamp", "normalize_number", "normalize_identifier"]
