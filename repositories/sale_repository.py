"""
Sale repository (persistence).

This module maps sale documents to the SaleRecord domain entity and provides
the store operations the ledger needs: window reads, store-side filtering,
pin/unpin updates, raw reads for audit snapshots, and deletes.

Stored documents are loosely typed. `sale_from_document` is the single
ingestion boundary: anything that cannot be turned into a valid SaleRecord is
dropped here (with a warning) and never reaches the rest of the system.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from domain.filters import RemoteSaleFilter
from domain.normalize import normalize_identifier, normalize_number, normalize_timestamp
from domain.sale import SaleRecord
from domain.time import EPOCH_UTC, require_utc_timestamp
from repositories.store import DocumentQuery, DocumentStore, FieldFilter, FilterOp, StoreDocument

logger = logging.getLogger(__name__)

# Field names of sale documents.
# Keep these aligned with your database schema.
SALE_ID_FIELD: str = "sale_id"
CREATED_AT_FIELD: str = "created_at"
PRICE_FIELD: str = "price"
BUYER_FIELD: str = "user_id"
REFERRER_FIELD: str = "referer_id"
PINNED_FIELD: str = "pinned"
PINNED_AT_FIELD: str = "pinned_at"


def _drop(doc: StoreDocument, reason: str) -> None:
    logger.warning(
        "Skipping sale document %s: %s",
        doc.id,
        reason,
        extra={"sale_doc_id": doc.id, "reason": reason},
    )


def sale_from_document(doc: StoreDocument) -> Optional[SaleRecord]:
    """
    Convert a stored sale document into a SaleRecord.

    Returns None (and logs a warning) when the document is missing its
    sale_id or buyer, or when created_at/price cannot be normalized.
    A pinned document without a readable pin time is kept and treated as
    pinned at the Unix epoch.
    """

    data = doc.data
    sale_id = normalize_identifier(data.get(SALE_ID_FIELD))
    buyer_id = normalize_identifier(data.get(BUYER_FIELD))
    if not doc.id:
        _drop(doc, "missing document id")
        return None
    if not sale_id or not buyer_id:
        _drop(doc, "missing sale_id or user_id")
        return None

    created_at = normalize_timestamp(data.get(CREATED_AT_FIELD))
    if created_at is None:
        _drop(doc, f"unreadable created_at {data.get(CREATED_AT_FIELD)!r}")
        return None

    price = normalize_number(data.get(PRICE_FIELD))
    if price is None or price < 0:
        _drop(doc, f"invalid price {data.get(PRICE_FIELD)!r}")
        return None

    pinned = bool(data.get(PINNED_FIELD))
    pinned_at: Optional[datetime] = None
    if pinned:
        pinned_at = normalize_timestamp(data.get(PINNED_AT_FIELD)) or EPOCH_UTC

    return SaleRecord(
        id=doc.id,
        sale_id=sale_id,
        created_at=created_at,
        price=price,
        buyer_id=buyer_id,
        referrer_id=normalize_identifier(data.get(REFERRER_FIELD)) or None,
        pinned=pinned,
        pinned_at=pinned_at,
    )


def sales_from_documents(docs: Iterable[StoreDocument]) -> List[SaleRecord]:
    """Normalize a window of documents, dropping malformed ones."""

    sales: List[SaleRecord] = []
    for doc in docs:
        sale = sale_from_document(doc)
        if sale is not None:
            sales.append(sale)
    return sales


def window_query(limit: int) -> DocumentQuery:
    """The newest `limit` sales."""

    return DocumentQuery(order_by=CREATED_AT_FIELD, descending=True, limit=limit)


def filtered_query(remote: RemoteSaleFilter) -> DocumentQuery:
    """Store-side version of the ledger filters (date range, referrer equality)."""

    filters: List[FieldFilter] = []
    if remote.date_from is not None:
        filters.append(FieldFilter(CREATED_AT_FIELD, FilterOp.GTE, remote.date_from))
    if remote.date_to is not None:
        filters.append(FieldFilter(CREATED_AT_FIELD, FilterOp.LTE, remote.date_to))
    if remote.referrer_id:
        filters.append(FieldFilter(REFERRER_FIELD, FilterOp.EQ, remote.referrer_id))

    return DocumentQuery(
        filters=tuple(filters),
        order_by=CREATED_AT_FIELD,
        descending=True,
        limit=remote.limit,
    )


async def fetch_sales_window(store: DocumentStore, collection: str, limit: int) -> List[SaleRecord]:
    """One-shot read of the newest `limit` sales."""

    docs = await store.query(collection, window_query(limit))
    return sales_from_documents(docs)


async def fetch_filtered_sales(store: DocumentStore, collection: str, remote: RemoteSaleFilter) -> List[SaleRecord]:
    docs = await store.query(collection, filtered_query(remote))
    return sales_from_documents(docs)


async def read_sale_payload(store: DocumentStore, collection: str, doc_id: str) -> Optional[Mapping[str, Any]]:
    """Raw stored payload of a sale (None if it does not exist)."""

    doc = await store.get(collection, doc_id)
    return dict(doc.data) if doc is not None else None


async def set_pinned(store: DocumentStore, collection: str, doc_id: str, pinned_at: datetime) -> None:
    require_utc_timestamp("pinned_at", pinned_at)
    await store.update(collection, doc_id, {PINNED_FIELD: True, PINNED_AT_FIELD: pinned_at})


async def clear_pinned(store: DocumentStore, collection: str, doc_id: str) -> None:
    await store.update(collection, doc_id, {PINNED_FIELD: False, PINNED_AT_FIELD: None})


async def delete_sale(store: DocumentStore, collection: str, doc_id: str) -> None:
    await store.delete(collection, doc_id)


async def record_sale(store: DocumentStore, collection: str, sale: Mapping[str, Any]) -> str:
    """Insert a new sale document (used by seeding scripts, not by the ledger view)."""

    return await store.insert(collection, sale)


__all__ = [
    "sale_from_document",
    "sales_from_documents",
    "window_query",
    "filtered_query",
    "fetch_sales_window",
    "fetch_filtered_sales",
    "read_sale_payload",
    "set_pinned",
    "clear_pinned",
    "delete_sale",
    "record_sale",
]
