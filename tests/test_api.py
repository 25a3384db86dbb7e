"""
Tests for `api/routers/sales.py`.

Covers contract rules:
- Paging, filtering and sorting go through the session's ledger view.
- Bulk delete without confirm=true is rejected with HTTP 400.
- Export returns a dated CSV attachment.
- Without an open ledger view the endpoints answer 503.
- Every handler runs on the event loop that owns the ledger view.
"""

from __future__ import annotations

import asyncio
from typing import List

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routers import sales
from fake_store import FakeDocumentStore, sale_doc
from services.ledger_view import LedgerView
from services.session import LedgerSession


@pytest.fixture
def view(store, settings) -> LedgerView:
    for minute in range(12):
        store.put("sales", f"s{minute:02d}", sale_doc(minute, price=str(minute + 1), buyer="u1" if minute % 2 else "u2"))
    ledger = LedgerView(LedgerSession.create(store, settings))
    asyncio.run(ledger.open())
    return ledger


@pytest.fixture
def client(view: LedgerView) -> TestClient:
    app = FastAPI()
    app.include_router(sales.router, prefix="/api/v1")
    app.dependency_overrides[sales.get_ledger_view] = lambda: view
    return TestClient(app)


def test_list_sales_pages(client: TestClient) -> None:
    """Verify page metadata, row numbering and clamping."""

    response = client.get("/api/v1/sales", params={"page": 2})

    assert response.status_code == 200
    body = response.json()
    assert (body["page"], body["total_pages"], body["total_rows"]) == (2, 2, 12)
    assert [row["sr"] for row in body["rows"]] == [11, 12]
    assert body["has_previous"] and not body["has_next"]
    assert body["rows"][0]["buyer_name"] in ("Alice", "Bob Stone")

    assert client.get("/api/v1/sales", params={"page": 9}).json()["page"] == 2


def test_set_filters_and_sort(client: TestClient) -> None:
    """Verify filters reset to page 1 and sort toggles."""

    client.get("/api/v1/sales", params={"page": 2})

    body = client.put("/api/v1/sales/filters", json={"search_text": "bob", "min_amount": "5"}).json()

    assert body["page"] == 1
    assert all(row["buyer_name"] == "Bob Stone" for row in body["rows"])
    assert client.get("/api/v1/sales/status").json()["filters_active"]
    assert [row["sale_id"] for row in body["rows"]] == ["S-0010", "S-0008", "S-0006", "S-0004"]

    sorted_body = client.post("/api/v1/sales/sort", json={"key": "price"}).json()
    assert [row["sale_id"] for row in sorted_body["rows"]] == ["S-0004", "S-0006", "S-0008", "S-0010"]

    assert client.post("/api/v1/sales/sort", json={"key": "nope"}).status_code == 400
    assert client.put("/api/v1/sales/filters", json={"min_amount": "9", "max_amount": "1"}).status_code == 400


def test_delete_requires_confirm(client: TestClient, store: FakeDocumentStore) -> None:
    """Verify 400 without confirmation and counts with it."""

    client.post("/api/v1/sales/selection/toggle", json={"id": "s00"})
    selection = client.post("/api/v1/sales/selection/toggle", json={"id": "s01"}).json()
    assert selection["selected_count"] == 2

    rejected = client.post("/api/v1/sales/delete", json={"confirm": False})
    assert rejected.status_code == 400
    assert "requires confirmation" in rejected.json()["detail"]
    assert "s00" in store.docs("sales")

    body = client.post("/api/v1/sales/delete", json={"confirm": True}).json()
    assert (body["success"], body["failed"]) == (2, 0)
    assert body["message"] == {"kind": "success", "text": "Deleted 2 sale(s)"}
    assert "s00" not in store.docs("sales")
    assert client.get("/api/v1/sales/status").json()["selected_count"] == 0


def test_page_selection_and_pin_toggle(client: TestClient) -> None:
    """Verify select-all on the page and the pin toggle result."""

    selection = client.post("/api/v1/sales/selection/page", json={"selected": True}).json()
    assert selection["selected_count"] == 10

    body = client.post("/api/v1/sales/pin-toggle").json()
    assert (body["pinned"], body["unpinned"], body["failed"]) == (10, 0, 0)
    assert body["message"]["text"] == "Pinned 10, unpinned 0"

    cleared = client.delete("/api/v1/sales/selection").json()
    assert cleared == {"selected_ids": [], "selected_count": 0}


def test_export_csv(client: TestClient) -> None:
    """Verify the CSV download."""

    response = client.get("/api/v1/sales/export.csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=sales-report-" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0] == "Sr#,Sale ID,Username,Referer Name,Created At,Price"
    assert len(lines) == 13


def test_status_referrers_and_refresh(client: TestClient) -> None:
    """Verify the status, referrer options and refresh endpoints."""

    status = client.get("/api/v1/sales/status").json()
    assert status["feed_state"] == "live"
    assert status["query_mode"] == "client"
    assert status["notice"] is None
    assert not status["filters_active"]

    options = client.get("/api/v1/sales/referrers").json()
    assert [option["label"] for option in options] == ["All", "No Referrer"]

    assert client.post("/api/v1/sales/refresh").json() == {"ok": True, "message": None}
    assert client.post("/api/v1/sales/notice/dismiss").status_code == 200


def test_missing_ledger_view_is_unavailable() -> None:
    """Verify endpoints answer 503 when no ledger view has been opened."""

    app = FastAPI()
    app.include_router(sales.router, prefix="/api/v1")

    response = TestClient(app).get("/api/v1/sales")

    assert response.status_code == 503


def test_handlers_touch_the_view_on_the_event_loop(client: TestClient, view: LedgerView, monkeypatch) -> None:
    """Verify no endpoint reaches the ledger view from a worker thread."""

    on_loop: List[bool] = []

    def spy(name: str) -> None:
        original = getattr(view, name)

        def wrapper(*args, **kwargs):
            try:
                asyncio.get_running_loop()
                on_loop.append(True)
            except RuntimeError:
                on_loop.append(False)
            return original(*args, **kwargs)

        monkeypatch.setattr(view, name, wrapper)

    for name in ("current_page", "sort_by", "toggle_selection", "select_current_page",
                 "clear_selection", "referrer_options", "export_rows", "status", "dismiss_notice"):
        spy(name)

    client.get("/api/v1/sales")
    client.post("/api/v1/sales/sort", json={"key": "price"})
    client.post("/api/v1/sales/selection/toggle", json={"id": "s00"})
    client.post("/api/v1/sales/selection/page", json={"selected": True})
    client.delete("/api/v1/sales/selection")
    client.get("/api/v1/sales/referrers")
    client.get("/api/v1/sales/export.csv")
    client.get("/api/v1/sales/status")
    client.post("/api/v1/sales/notice/dismiss")

    assert len(on_loop) >= 9
    assert all(on_loop)


def test_error_responses_are_documented(client: TestClient) -> None:
    """Verify error bodies are described in the OpenAPI schema."""

    schema = client.get("/openapi.json").json()

    assert "ErrorResponse" in schema["components"]["schemas"]
    delete_responses = schema["paths"]["/api/v1/sales/delete"]["post"]["responses"]
    assert {"400", "500", "503"} <= set(delete_responses)
