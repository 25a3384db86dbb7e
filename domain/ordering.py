"""
Domain: Ledger ordering and pagination (pure).

Ordering, in priority:
1. Pinned rows before unpinned rows.
2. Among pinned rows, the most recently pinned first.
3. The operator's sort key and direction.
4. The store id (ascending), so equal keys never depend on input order.

Implemented as successive stable sorts, least significant key first.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Sequence, TypeVar

from .filters import FilterState, SortDirection, SortKey
from .sale import SaleRecord
from .time import EPOCH_UTC

T = TypeVar("T")

_SORT_VALUES: Dict[SortKey, Callable[[SaleRecord], Any]] = {
    SortKey.CREATED_AT: lambda sale: sale.created_at,
    SortKey.PRICE: lambda sale: sale.price,
    SortKey.SALE_ID: lambda sale: sale.sale_id,
}


def order_sales(rows: Iterable[SaleRecord], filters: FilterState) -> List[SaleRecord]:
    ordered = sorted(rows, key=lambda sale: sale.id)
    ordered.sort(
        key=_SORT_VALUES[filters.sort_key],
        reverse=filters.sort_direction is SortDirection.DESC,
    )
    ordered.sort(key=lambda sale: (sale.pinned_at or EPOCH_UTC) if sale.pinned else EPOCH_UTC, reverse=True)
    ordered.sort(key=lambda sale: not sale.pinned)
    return ordered


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    rows: List[T]
    number: int
    total_pages: int
    total_rows: int
    page_size: int

    @property
    def has_previous(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def first_index(self) -> int:
        """1-based position of the first row on this page (the "Sr#" column)."""

        return (self.number - 1) * self.page_size + 1


def page_count(total_rows: int, page_size: int) -> int:
    return max(1, math.ceil(total_rows / page_size))


def clamp_page(page_number: int, total_rows: int, page_size: int) -> int:
    return min(max(page_number, 1), page_count(total_rows, page_size))


def paginate(rows: Sequence[T], page_size: int, page_number: int) -> Page[T]:
    """
    Slice `rows` into the requested page.

    The page number is clamped to [1, total_pages]; an empty sequence has a
    single empty page.
    """

    if page_size < 1:
        raise ValueError("page_size must be >= 1")

    number = clamp_page(page_number, len(rows), page_size)
    start = (number - 1) * page_size
    return Page(
        rows=list(rows[start:start + page_size]),
        number=number,
        total_pages=page_count(len(rows), page_size),
        total_rows=len(rows),
        page_size=page_size,
    )
