"""
Tests for `services/query_mode.py`.

Covers contract rules:
- Remote mode starts when the live window holds more rows than the threshold.
- Remote mode re-queries only when date range or referrer change.
- "No referrer" is never sent to the store.
- A remote failure falls back to the live window.
- An older remote answer never overwrites a newer one.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from domain.filters import NO_REFERRER, FilterState
from fake_store import BASE_TIME, sale_doc
from repositories.store import FilterOp
from services.query_mode import QueryMode, QueryModeSelector
from services.session import LocalLedger


def _selector(store, local: LocalLedger, threshold: int = 3) -> QueryModeSelector:
    return QueryModeSelector(store, "sales", local, threshold=threshold, limit=50)


def test_observe_window_size_switches_on_threshold(store) -> None:
    """Verify the mode is remote strictly above the threshold."""

    selector = _selector(store, LocalLedger(), threshold=500)

    assert not selector.observe_window_size(500)
    assert selector.mode is QueryMode.CLIENT
    assert selector.observe_window_size(501)
    assert selector.mode is QueryMode.REMOTE
    assert selector.observe_window_size(10)
    assert selector.mode is QueryMode.CLIENT


def test_needs_refetch_only_for_remote_inputs(store) -> None:
    """Verify in-memory filter changes never trigger a store query."""

    selector = _selector(store, LocalLedger())
    base = FilterState()
    dated = base.with_changes(date_from=BASE_TIME)

    assert not selector.needs_refetch(base, dated)  # client mode

    selector.observe_window_size(10)
    assert selector.needs_refetch(base, dated)
    assert not selector.needs_refetch(base, base.with_changes(search_text="x"))


@pytest.mark.asyncio
async def test_remote_refresh_pushes_date_and_referrer(store) -> None:
    """Verify the store query carries date bounds and referrer equality."""

    for minute in range(5):
        store.put("sales", f"s{minute}", sale_doc(minute, referrer="r1" if minute % 2 else None))
    local = LocalLedger()
    selector = _selector(store, local)
    selector.observe_window_size(10)

    filters = FilterState(date_from=BASE_TIME + timedelta(minutes=1), referrer_filter="r1")
    assert await selector.refresh(filters)

    assert sorted(sale.id for sale in local.working_rows()) == ["s1", "s3"]
    assert not selector.filter_loading
    assert store.calls[("query", "sales")] == 1


@pytest.mark.asyncio
async def test_no_referrer_is_not_sent_to_store(store, monkeypatch) -> None:
    """Verify the remote query omits the "no referrer" sentinel but keeps dates."""

    seen = []
    original = store.query

    async def spy(collection, query):
        seen.append(query)
        return await original(collection, query)

    monkeypatch.setattr(store, "query", spy)
    selector = _selector(store, LocalLedger())
    selector.observe_window_size(10)

    await selector.refresh(FilterState(referrer_filter=NO_REFERRER, date_to=BASE_TIME))

    assert [(f.field, f.op) for f in seen[0].filters] == [("created_at", FilterOp.LTE)]
    assert seen[0].limit == 50


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_window(store) -> None:
    """Verify a failed store filter clears the remote result."""

    local = LocalLedger()
    selector = _selector(store, local)
    selector.observe_window_size(10)
    local.replace_remote_rows([])
    store.fail("query", "sales")

    assert await selector.refresh(FilterState(date_from=BASE_TIME))

    assert local.state.remote_rows is None
    assert not selector.filter_loading


@pytest.mark.asyncio
async def test_client_mode_clears_remote_rows(store) -> None:
    """Verify switching back to client mode drops the remote result."""

    local = LocalLedger()
    local.replace_remote_rows([])
    selector = _selector(store, local)

    assert await selector.refresh(FilterState())

    assert local.state.remote_rows is None
    assert store.calls[("query", "sales")] == 0


@pytest.mark.asyncio
async def test_stale_remote_answer_is_discarded(store) -> None:
    """Verify the last request wins even when an older one finishes later."""

    store.put("sales", "old", sale_doc(0, referrer="r1"))
    store.put("sales", "new", sale_doc(1, referrer="r2"))
    local = LocalLedger()
    selector = _selector(store, local)
    selector.observe_window_size(10)

    gate = store.gate("query", "sales")
    first = asyncio.ensure_future(selector.refresh(FilterState(referrer_filter="r1")))
    await asyncio.sleep(0)
    second = asyncio.ensure_future(selector.refresh(FilterState(referrer_filter="r2")))
    await asyncio.sleep(0)
    gate.set()

    results = await asyncio.gather(first, second)

    assert results == [False, True]
    assert [sale.id for sale in local.working_rows()] == ["new"]
