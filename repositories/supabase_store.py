"""
Supabase implementation of the document store.

Each collection is a Supabase table with a primary key column `id`. Queries go
through PostgREST; change subscriptions use a Realtime `postgres_changes`
channel on the table and re-read the subscribed window on every change, so
subscribers always receive a full replacement window.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Set

from postgrest.exceptions import APIError
from supabase import AsyncClient

from repositories.store import (
    DocumentNotFoundError,
    DocumentQuery,
    ErrorCallback,
    SnapshotCallback,
    StoreDocument,
    StoreError,
)

logger = logging.getLogger(__name__)

_ID_COLUMN: str = "id"

# Realtime channel states that end live delivery.
_FAILED_CHANNEL_STATES = {"CHANNEL_ERROR", "TIMED_OUT", "CLOSED"}


def _to_wire(value: Any) -> Any:
    """Serialize Python values for PostgREST filters and payloads."""

    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _row_to_document(row: Mapping[str, Any]) -> StoreDocument:
    data = {key: value for key, value in row.items() if key != _ID_COLUMN}
    return StoreDocument(id=str(row[_ID_COLUMN]), data=data)


def _raise_on_error(response: Any, action: str) -> None:
    error = getattr(response, "error", None)
    if error:
        raise StoreError(f"Failed to {action}: {error}")


class SupabaseDocumentStore:
    """DocumentStore backed by a `supabase.AsyncClient`."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def query(self, collection: str, query: DocumentQuery) -> List[StoreDocument]:
        builder = self._client.table(collection).select("*")

        for field_filter in query.filters:
            builder = getattr(builder, field_filter.op.value)(field_filter.field, _to_wire(field_filter.value))

        if query.order_by:
            builder = builder.order(query.order_by, desc=query.descending)
        if query.limit is not None:
            builder = builder.limit(query.limit)

        try:
            response = await builder.execute()
        except APIError as e:
            raise StoreError(f"Failed to query {collection}: {e}") from e
        _raise_on_error(response, f"query {collection}")

        rows = getattr(response, "data", None) or []
        return [_row_to_document(row) for row in rows]

    async def get(self, collection: str, doc_id: str) -> Optional[StoreDocument]:
        try:
            response = await (
                self._client.table(collection)
                .select("*")
                .eq(_ID_COLUMN, doc_id)
                .limit(1)
                .execute()
            )
        except APIError as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}") from e
        _raise_on_error(response, f"read {collection}/{doc_id}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return _row_to_document(rows[0])

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        payload = {key: _to_wire(value) for key, value in fields.items()}
        try:
            response = await self._client.table(collection).update(payload).eq(_ID_COLUMN, doc_id).execute()
        except APIError as e:
            raise StoreError(f"Failed to update {collection}/{doc_id}: {e}") from e
        _raise_on_error(response, f"update {collection}/{doc_id}")

        if not (getattr(response, "data", None) or []):
            raise DocumentNotFoundError(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            response = await self._client.table(collection).delete().eq(_ID_COLUMN, doc_id).execute()
        except APIError as e:
            raise StoreError(f"Failed to delete {collection}/{doc_id}: {e}") from e
        _raise_on_error(response, f"delete {collection}/{doc_id}")

        # PostgREST returns the deleted rows; nothing returned means nothing existed.
        if not (getattr(response, "data", None) or []):
            raise DocumentNotFoundError(collection, doc_id)

    async def insert(self, collection: str, payload: Mapping[str, Any]) -> str:
        body = {key: _to_wire(value) for key, value in payload.items()}
        try:
            response = await self._client.table(collection).insert(body).execute()
        except APIError as e:
            raise StoreError(f"Failed to insert into {collection}: {e}") from e
        _raise_on_error(response, f"insert into {collection}")

        rows = getattr(response, "data", None) or []
        if not rows:
            raise StoreError(f"Failed to insert into {collection}: no row returned")
        return str(rows[0][_ID_COLUMN])

    async def subscribe(
        self,
        collection: str,
        query: DocumentQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> "RealtimeWindowSubscription":
        subscription = RealtimeWindowSubscription(self, collection, query, on_snapshot, on_error)
        await subscription.open()
        return subscription

    @property
    def client(self) -> AsyncClient:
        return self._client


class RealtimeWindowSubscription:
    """
    Keeps one query result current through a Realtime channel.

    Every change notification triggers a re-read of the whole window. Reads
    are numbered; a read that finishes after a newer one is dropped.
    """

    def __init__(
        self,
        store: SupabaseDocumentStore,
        collection: str,
        query: DocumentQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        self._store = store
        self._collection = collection
        self._query = query
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._channel: Any = None
        self._tasks: Set[asyncio.Task[None]] = set()
        self._generation = 0
        self._closed = False

    async def open(self) -> None:
        documents = await self._store.query(self._collection, self._query)
        await self._on_snapshot(documents)

        try:
            channel = self._store.client.channel(f"ledger-{self._collection}")
            channel.on_postgres_changes(
                "*",
                schema="public",
                table=self._collection,
                callback=self._handle_change,
            )
            await channel.subscribe(self._handle_status)
        except Exception as e:
            raise StoreError(f"Failed to subscribe to {self._collection}: {e}") from e
        self._channel = channel

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _handle_change(self, payload: Dict[str, Any]) -> None:
        if self._closed:
            return
        self._spawn(self._reload())

    def _handle_status(self, status: Any, error: Optional[Exception] = None) -> None:
        state = str(getattr(status, "value", status))
        if self._closed or state not in _FAILED_CHANNEL_STATES:
            return
        logger.error(
            "Realtime channel for %s reported %s",
            self._collection,
            state,
            extra={"collection": self._collection, "channel_state": state},
        )
        self._spawn(self._on_error(error or StoreError(f"Realtime channel {state.lower()}")))

    async def _reload(self) -> None:
        self._generation += 1
        generation = self._generation
        try:
            documents = await self._store.query(self._collection, self._query)
        except Exception as e:
            if not self._closed:
                await self._on_error(e)
            return
        if self._closed or generation != self._generation:
            return
        await self._on_snapshot(documents)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._channel is not None:
            await self._store.client.remove_channel(self._channel)
            self._channel = None


__all__ = ["SupabaseDocumentStore", "RealtimeWindowSubscription"]
