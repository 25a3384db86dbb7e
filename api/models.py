"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Ledger Models
# ============================================================================

class SaleRowResponse(BaseModel):
    """Single ledger row in API response."""
    sr: int
    id: str
    sale_id: str
    created_at: datetime
    price: Decimal
    buyer_id: str
    buyer_name: str
    referrer_id: Optional[str] = None
    referrer_name: str = ""
    pinned: bool = False
    pinned_at: Optional[datetime] = None
    selected: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "sr": 1,
                "id": "9f1c2d3e",
                "sale_id": "S-1001",
                "created_at": "2025-10-29T23:06:00Z",
                "price": "25.00",
                "buyer_id": "u1",
                "buyer_name": "Alice",
                "referrer_id": None,
                "referrer_name": "",
                "pinned": False,
                "pinned_at": None,
                "selected": False
            }
        }


class SalesPageResponse(BaseModel):
    """One page of the filtered, sorted ledger."""
    rows: List[SaleRowResponse]
    page: int
    total_pages: int
    total_rows: int
    page_size: int
    has_previous: bool
    has_next: bool
    page_selected: bool
    selected_count: int


class FilterRequest(BaseModel):
    """Toolbar filters. Date and amount bounds are inclusive."""
    search_text: str = ""
    referrer_filter: Optional[str] = Field(
        None,
        description="Referrer id, '__NO_REFERRER__' for sales without one, or null for all"
    )
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_amount: Optional[Decimal] = Field(None, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "search_text": "alice",
                "referrer_filter": None,
                "date_from": "2025-10-01T00:00:00Z",
                "date_to": "2025-10-31T23:59:59Z",
                "min_amount": "10.00",
                "max_amount": None
            }
        }


class SortRequest(BaseModel):
    """Column-header click."""
    key: str = Field(..., description="'created_at', 'price' or 'sale_id'")


class WindowRequest(BaseModel):
    window_size: int = Field(..., ge=1, le=5000)


class SelectionToggleRequest(BaseModel):
    id: str = Field(..., min_length=1)


class PageSelectionRequest(BaseModel):
    selected: bool = Field(True, description="True selects the current page, False deselects it")


class SelectionResponse(BaseModel):
    selected_ids: List[str]
    selected_count: int


class DeleteRequest(BaseModel):
    confirm: bool = Field(False, description="Must be true; deletion cannot be undone")


class ActionMessageResponse(BaseModel):
    kind: str  # "success" or "error"
    text: str


class DeleteResponse(BaseModel):
    success: int
    failed: int
    deleted_ids: List[str]
    message: Optional[ActionMessageResponse] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": 2,
                "failed": 1,
                "deleted_ids": ["a", "b"],
                "message": {"kind": "error", "text": "Deleted 2 sale(s), 1 failed."}
            }
        }


class PinToggleResponse(BaseModel):
    pinned: int
    unpinned: int
    failed: int
    skipped: int
    message: Optional[ActionMessageResponse] = None


class RefreshResponse(BaseModel):
    ok: bool
    message: Optional[ActionMessageResponse] = None


class ReferrerOptionResponse(BaseModel):
    value: str
    label: str


class StatusResponse(BaseModel):
    feed_state: str
    notice: Optional[str] = None
    query_mode: str
    filter_loading: bool
    filters_active: bool
    window_size: int
    page: int
    selected_count: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "Deleting 3 sale(s) requires confirmation"
            }
        }
