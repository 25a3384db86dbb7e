"""
Document store interface.

The ledger talks to its backend only through this protocol. The backend is an
opaque document store that supports:
- equality/range predicates, descending order-by and a row limit,
- point read, partial update and delete of a single document,
- append-only insert,
- a change subscription that yields full replacement windows or an error.

`repositories/supabase_store.py` implements it on Supabase; the tests use an
in-memory implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable


class StoreError(RuntimeError):
    """Raised when the store cannot be reached or rejects a request."""


class DocumentNotFoundError(LookupError):
    """Raised when a point operation targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class FilterOp(str, Enum):
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"


@dataclass(frozen=True, slots=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True, slots=True)
class DocumentQuery:
    """Conjunction of field filters, ordered by one field, bounded by `limit`."""

    filters: Tuple[FieldFilter, ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None


@dataclass(frozen=True, slots=True)
class StoreDocument:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[StoreDocument]], Awaitable[None]]
ErrorCallback = Callable[[BaseException], Awaitable[None]]


@runtime_checkable
class Subscription(Protocol):
    async def close(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""
        ...


@runtime_checkable
class DocumentStore(Protocol):
    async def query(self, collection: str, query: DocumentQuery) -> List[StoreDocument]:
        ...

    async def get(self, collection: str, doc_id: str) -> Optional[StoreDocument]:
        """Return the document, or None if it does not exist."""
        ...

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Partial update. Raises DocumentNotFoundError if the document does not exist."""
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        """Raises DocumentNotFoundError if the document does not exist."""
        ...

    async def insert(self, collection: str, payload: Mapping[str, Any]) -> str:
        """Append a document and return its store-assigned id."""
        ...

    async def subscribe(
        self,
        collection: str,
        query: DocumentQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """
        Deliver the full result of `query` now and after every change.

        Errors after the subscription is open are reported through `on_error`;
        failure to open raises StoreError.
        """
        ...


__all__ = [
    "StoreError",
    "DocumentNotFoundError",
    "FilterOp",
    "FieldFilter",
    "DocumentQuery",
    "StoreDocument",
    "Subscription",
    "DocumentStore",
    "SnapshotCallback",
    "ErrorCallback",
]
