"""
Domain: Sale records shown in the transaction ledger.

Sales are created outside this system whenever a buyer completes a purchase.
The ledger only reads them, pins/unpins them and deletes them (with an audit
entry, see `domain/audit.py`).

Contract excerpts relevant here:
- `id` is assigned by the store and never changes.
- `sale_id` and `buyer_id` are required; rows without them never reach the domain.
- `price` is a non-negative amount.
- `pinned_at` is set iff `pinned` is True.

All timestamps must be passed explicitly and must be UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class SaleRecord:
    """
    Immutable record of one card sale.

    Pin transitions return new instances; the original record is unchanged.
    """

    id: str
    sale_id: str
    created_at: datetime
    price: Decimal
    buyer_id: str
    referrer_id: Optional[str] = None  # None means "no referrer"
    pinned: bool = False
    pinned_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id is required")
        if not self.sale_id:
            raise ValueError("sale_id is required")
        if not self.buyer_id:
            raise ValueError("buyer_id is required")
        if self.price < 0:
            raise ValueError("price must be non-negative")
        require_utc_timestamp("created_at", self.created_at)
        if self.pinned and self.pinned_at is None:
            raise ValueError("pinned_at is required when pinned is True")
        if not self.pinned and self.pinned_at is not None:
            raise ValueError("pinned_at must be None when pinned is False")
        if self.pinned_at is not None:
            require_utc_timestamp("pinned_at", self.pinned_at)

    @property
    def has_referrer(self) -> bool:
        return bool(self.referrer_id)

    def pin(self, pinned_at: datetime) -> "SaleRecord":
        """Return a pinned copy of this record."""

        require_utc_timestamp("pinned_at", pinned_at)
        return replace(self, pinned=True, pinned_at=pinned_at)

    def unpin(self) -> "SaleRecord":
        """Return an unpinned copy of this record."""

        return replace(self, pinned=False, pinned_at=None)

    def to_document(self) -> Dict[str, Any]:
        """Render the record with the store's field names."""

        return {
            "sale_id": self.sale_id,
            "created_at": self.created_at.isoformat(),
            "price": str(self.price),
            "user_id": self.buyer_id,
            "referer_id": self.referrer_id,
            "pinned": self.pinned,
            "pinned_at": self.pinned_at.isoformat() if self.pinned_at else None,
        }


@dataclass(frozen=True, slots=True)
class LedgerRow:
    """A sale together with the display names resolved for it ("" = unknown)."""

    sale: SaleRecord
    buyer_name: str = ""
    referrer_name: str = ""

    @property
    def id(self) -> str:
        return self.sale.id
