"""
Tests for `domain/ordering.py`.

Covers contract rules:
- Pinned sales come first, most recently pinned first.
- Unpinned sales follow the chosen sort key and direction.
- Ties break on the store id, ascending, so the order is deterministic.
- Pagination clamps the page number and rejects non-positive page sizes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from domain.filters import FilterState, SortDirection, SortKey
from domain.ordering import clamp_page, order_sales, page_count, paginate
from domain.sale import SaleRecord
from domain.time import EPOCH_UTC

T0 = datetime(2025, 10, 1, tzinfo=timezone.utc)


def _sale(doc_id: str, *, minutes: int = 0, price: str = "10",
          pinned_minutes: Optional[int] = None, sale_id: Optional[str] = None) -> SaleRecord:
    pinned_at = T0 + timedelta(minutes=pinned_minutes) if pinned_minutes is not None else None
    return SaleRecord(
        id=doc_id,
        sale_id=sale_id or f"S-{doc_id}",
        created_at=T0 + timedelta(minutes=minutes),
        price=Decimal(price),
        buyer_id="u1",
        pinned=pinned_at is not None,
        pinned_at=pinned_at,
    )


def _ids(rows: list) -> list:
    return [sale.id for sale in rows]


def test_pinned_rows_first_by_pin_time_descending() -> None:
    """Verify pinned rows lead, newest pin first, regardless of the sort key."""

    rows = [
        _sale("a", minutes=50),
        _sale("b", minutes=1, pinned_minutes=100),
        _sale("c", minutes=60),
        _sale("d", minutes=2, pinned_minutes=200),
    ]

    ordered = order_sales(rows, FilterState(sort_key=SortKey.CREATED_AT, sort_direction=SortDirection.DESC))

    assert _ids(ordered) == ["d", "b", "c", "a"]


def test_pinned_at_epoch_sorts_after_real_pins() -> None:
    """Verify a pinned row without a usable pin time follows the other pinned rows."""

    rows = [
        _sale("a"),
        SaleRecord(id="b", sale_id="S-b", created_at=T0, price=Decimal("1"), buyer_id="u1",
                   pinned=True, pinned_at=EPOCH_UTC),
        _sale("c", pinned_minutes=5),
    ]

    assert _ids(order_sales(rows, FilterState())) == ["c", "b", "a"]


@pytest.mark.parametrize(
    "key, direction, expected",
    [
        (SortKey.PRICE, SortDirection.ASC, ["z", "a", "m"]),
        (SortKey.PRICE, SortDirection.DESC, ["m", "a", "z"]),
        (SortKey.SALE_ID, SortDirection.ASC, ["m", "z", "a"]),
        (SortKey.CREATED_AT, SortDirection.ASC, ["a", "m", "z"]),
    ],
)
def test_unpinned_rows_follow_sort_key(key: SortKey, direction: SortDirection, expected: list) -> None:
    """Verify sort key and direction for unpinned rows."""

    rows = [
        _sale("a", minutes=1, price="20", sale_id="C"),
        _sale("m", minutes=2, price="30", sale_id="A"),
        _sale("z", minutes=3, price="10", sale_id="B"),
    ]

    assert _ids(order_sales(rows, FilterState(sort_key=key, sort_direction=direction))) == expected


def test_ties_break_on_id_ascending_in_both_directions() -> None:
    """Verify equal sort values are ordered by store id, ascending, for ASC and DESC."""

    rows = [_sale("c", price="5"), _sale("a", price="5"), _sale("b", price="5")]

    for direction in SortDirection:
        ordered = order_sales(rows, FilterState(sort_key=SortKey.PRICE, sort_direction=direction))
        assert _ids(ordered) == ["a", "b", "c"]


def test_paginate_slices_and_clamps() -> None:
    """Verify page slicing, clamping and row numbering."""

    rows = list(range(23))

    page = paginate(rows, page_size=10, page_number=3)
    assert page.rows == [20, 21, 22]
    assert (page.number, page.total_pages, page.total_rows) == (3, 3, 23)
    assert page.first_index == 21
    assert page.has_previous and not page.has_next

    assert paginate(rows, 10, 99).number == 3
    assert paginate(rows, 10, 0).number == 1


def test_paginate_empty_has_one_empty_page() -> None:
    """Verify an empty result still has a single page."""

    page = paginate([], page_size=10, page_number=5)

    assert page.rows == []
    assert (page.number, page.total_pages) == (1, 1)
    assert page_count(0, 10) == 1
    assert clamp_page(-3, 0, 10) == 1


def test_paginate_rejects_non_positive_page_size() -> None:
    """Verify page_size must be >= 1."""

    with pytest.raises(ValueError):
        paginate([1, 2], page_size=0, page_number=1)
