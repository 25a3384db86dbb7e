"""
Tests for `repositories/supabase_store.py` against a recording stand-in for
the Supabase client.

Covers contract rules:
- Query filters, ordering and limits are translated to PostgREST calls.
- Update/delete of a missing row raises DocumentNotFoundError.
- API errors surface as StoreError.
- Realtime changes re-read the window; failed channel states report errors.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, List

import pytest
from postgrest.exceptions import APIError

from repositories.store import DocumentNotFoundError, DocumentQuery, FieldFilter, FilterOp, StoreError
from repositories.supabase_store import SupabaseDocumentStore


class _Builder:
    def __init__(self, client: "_Client", table: str) -> None:
        self.client = client
        self.calls: List[tuple] = [("table", table)]
        client.builders.append(self)

    def __getattr__(self, name: str) -> Any:
        def record(*args: Any, **kwargs: Any) -> "_Builder":
            self.calls.append((name, args, kwargs))
            return self

        return record

    async def execute(self) -> Any:
        if self.client.api_error is not None:
            raise self.client.api_error
        return SimpleNamespace(data=self.client.responses.pop(0))


class _Channel:
    def __init__(self) -> None:
        self.change_callback: Any = None
        self.status_callback: Any = None

    def on_postgres_changes(self, event: str, schema: str, table: str, callback: Any) -> "_Channel":
        self.change_callback = callback
        return self

    async def subscribe(self, callback: Any) -> "_Channel":
        self.status_callback = callback
        return self


class _Client:
    def __init__(self, responses: List[Any]) -> None:
        self.responses = responses
        self.builders: List[_Builder] = []
        self.api_error: Any = None
        self.channels: List[_Channel] = []
        self.removed: List[_Channel] = []

    def table(self, name: str) -> _Builder:
        return _Builder(self, name)

    def channel(self, topic: str) -> _Channel:
        channel = _Channel()
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel: _Channel) -> None:
        self.removed.append(channel)


@pytest.mark.asyncio
async def test_query_translates_filters() -> None:
    """Verify filters, order and limit reach PostgREST with wire values."""

    client = _Client([[{"id": 7, "sale_id": "S-7"}]])
    store = SupabaseDocumentStore(client)  # type: ignore[arg-type]
    since = datetime(2025, 1, 1, tzinfo=timezone.utc)

    docs = await store.query("sales", DocumentQuery(
        filters=(FieldFilter("created_at", FilterOp.GTE, since), FieldFilter("referer_id", FilterOp.EQ, "r1")),
        order_by="created_at",
        descending=True,
        limit=25,
    ))

    assert [(doc.id, doc.data) for doc in docs] == [("7", {"sale_id": "S-7"})]
    names = [call[0] for call in client.builders[0].calls]
    assert names == ["table", "select", "gte", "eq", "order", "limit"]
    assert client.builders[0].calls[2][1] == ("created_at", since.isoformat())
    assert client.builders[0].calls[4][2] == {"desc": True}


@pytest.mark.asyncio
async def test_update_and_delete_missing_rows_raise_not_found() -> None:
    """Verify an empty returning set means the row did not exist."""

    store = SupabaseDocumentStore(_Client([[], []]))  # type: ignore[arg-type]

    with pytest.raises(DocumentNotFoundError):
        await store.update("sales", "x", {"pinned": False})
    with pytest.raises(DocumentNotFoundError):
        await store.delete("sales", "x")


@pytest.mark.asyncio
async def test_get_and_insert() -> None:
    """Verify point reads and inserts."""

    store = SupabaseDocumentStore(_Client([[], [{"id": "a1", "action": "delete"}]]))  # type: ignore[arg-type]

    assert await store.get("users", "nobody") is None
    assert await store.insert("audit_logs", {"action": "delete"}) == "a1"


@pytest.mark.asyncio
async def test_api_error_becomes_store_error() -> None:
    """Verify PostgREST failures are wrapped."""

    client = _Client([])
    client.api_error = APIError({"message": "permission denied", "code": "42501"})
    store = SupabaseDocumentStore(client)  # type: ignore[arg-type]

    with pytest.raises(StoreError, match="Failed to delete sales/x"):
        await store.delete("sales", "x")


@pytest.mark.asyncio
async def test_realtime_subscription_reloads_and_reports_errors() -> None:
    """Verify snapshots on open and on change, errors on channel failure, cleanup on close."""

    client = _Client([[{"id": "a"}], [{"id": "a"}, {"id": "b"}]])
    store = SupabaseDocumentStore(client)  # type: ignore[arg-type]
    snapshots: List[List[str]] = []
    errors: List[BaseException] = []

    async def on_snapshot(docs):
        snapshots.append([doc.id for doc in docs])

    async def on_error(error):
        errors.append(error)

    subscription = await store.subscribe("sales", DocumentQuery(limit=2), on_snapshot, on_error)
    channel = client.channels[0]

    channel.change_callback({"eventType": "INSERT"})
    for _ in range(3):
        await asyncio.sleep(0)
    assert snapshots == [["a"], ["a", "b"]]

    channel.status_callback("SUBSCRIBED", None)
    channel.status_callback("CHANNEL_ERROR", None)
    for _ in range(3):
        await asyncio.sleep(0)
    assert len(errors) == 1 and isinstance(errors[0], StoreError)

    await subscription.close()
    assert client.removed == [channel]
