"""
Domain: Ledger filter state and predicates (pure).

FilterState is what the operator has typed/selected in the ledger toolbar.
From it we derive:
- an in-memory predicate over SaleRecord (always applied to the working set),
- a RemoteSaleFilter with only the parts the store can evaluate
  (date range and referrer equality).

The "no referrer" choice cannot be expressed as a store equality query, so it
is never part of a RemoteSaleFilter; the in-memory predicate handles it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Tuple

from .sale import SaleRecord
from .time import require_utc_timestamp

# Referrer filter value meaning "sales without a referrer".
NO_REFERRER: str = "__NO_REFERRER__"

NameLookup = Callable[[str], Optional[str]]


class SortKey(str, Enum):
    CREATED_AT = "created_at"
    PRICE = "price"
    SALE_ID = "sale_id"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


@dataclass(frozen=True, slots=True)
class FilterState:
    """
    Toolbar state of the ledger view.

    referrer_filter: None (any referrer), NO_REFERRER, or a referrer identifier.
    Date and amount bounds are inclusive.
    """

    search_text: str = ""
    referrer_filter: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    sort_key: SortKey = SortKey.CREATED_AT
    sort_direction: SortDirection = SortDirection.DESC

    def __post_init__(self) -> None:
        if self.date_from is not None:
            require_utc_timestamp("date_from", self.date_from)
        if self.date_to is not None:
            require_utc_timestamp("date_to", self.date_to)

    def with_changes(self, **changes: object) -> "FilterState":
        return replace(self, **changes)  # type: ignore[arg-type]

    def cleared(self) -> "FilterState":
        """Drop every filter but keep the current sort."""

        return FilterState(sort_key=self.sort_key, sort_direction=self.sort_direction)

    def toggled_sort(self, key: SortKey) -> "FilterState":
        """
        Column-header click: a new key starts ascending, the same key flips.
        """

        if key is self.sort_key:
            return replace(self, sort_direction=self.sort_direction.flipped())
        return replace(self, sort_key=key, sort_direction=SortDirection.ASC)

    def remote_inputs(self) -> Tuple[Optional[datetime], Optional[datetime], Optional[str]]:
        """The fields whose change requires a fresh remote query."""

        return (self.date_from, self.date_to, self.referrer_filter)

    @property
    def has_active_filters(self) -> bool:
        """True when any filter (not just sorting) is active."""

        return bool(
            self.search_text.strip()
            or self.referrer_filter
            or self.date_from
            or self.date_to
            or self.min_amount is not None
            or self.max_amount is not None
        )


@dataclass(frozen=True, slots=True)
class RemoteSaleFilter:
    """Store-evaluable subset of FilterState, newest first, bounded by `limit`."""

    limit: int
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    referrer_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("limit must be >= 1")


def build_remote_filter(filters: FilterState, limit: int) -> RemoteSaleFilter:
    referrer = filters.referrer_filter
    return RemoteSaleFilter(
        limit=limit,
        date_from=filters.date_from,
        date_to=filters.date_to,
        referrer_id=referrer if referrer and referrer != NO_REFERRER else None,
    )


def _matches_identity(user_id: Optional[str], term: str, name_lookup: NameLookup) -> bool:
    if not user_id:
        return False
    name = name_lookup(user_id)
    if name:
        return term in name.lower() or term in user_id.lower()
    return term in user_id.lower()


def build_predicate(filters: FilterState, name_lookup: NameLookup) -> Callable[[SaleRecord], bool]:
    """
    Build the in-memory predicate for `filters`.

    Search text matches case-insensitively against the sale_id, the cached
    display names of buyer and referrer, or their raw identifiers.

    Args:
        filters: Current toolbar state
        name_lookup: Returns the cached display name for an identifier (None if not cached)

    Returns:
        Callable returning True for sales that pass every active filter
    """

    term = filters.search_text.strip().lower()

    def predicate(sale: SaleRecord) -> bool:
        if term and not (
            term in sale.sale_id.lower()
            or _matches_identity(sale.buyer_id, term, name_lookup)
            or _matches_identity(sale.referrer_id, term, name_lookup)
        ):
            return False

        if filters.referrer_filter == NO_REFERRER:
            if sale.has_referrer:
                return False
        elif filters.referrer_filter and sale.referrer_id != filters.referrer_filter:
            return False

        if filters.date_from is not None and sale.created_at < filters.date_from:
            return False
        if filters.date_to is not None and sale.created_at > filters.date_to:
            return False

        if filters.min_amount is not None and sale.price < filters.min_amount:
            return False
        if filters.max_amount is not None and sale.price > filters.max_amount:
            return False

        return True

    return predicate


def is_identity_known(sale: SaleRecord, is_known: Callable[[str], bool]) -> bool:
    """Buyer must have a display name; a referrer, when present, must too."""

    if not is_known(sale.buyer_id):
        return False
    return not sale.has_referrer or is_known(sale.referrer_id or "")
