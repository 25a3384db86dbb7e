"""
Sales Ledger API Endpoints.

Endpoints for browsing, selecting, pinning, deleting and exporting sales.
All state (filters, sort, page, selection) belongs to the server-side
LedgerView of the current operator session.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import (
    ActionMessageResponse,
    DeleteRequest,
    DeleteResponse,
    ErrorResponse,
    FilterRequest,
    PageSelectionRequest,
    PinToggleResponse,
    ReferrerOptionResponse,
    RefreshResponse,
    SaleRowResponse,
    SalesPageResponse,
    SelectionResponse,
    SelectionToggleRequest,
    SortRequest,
    StatusResponse,
    WindowRequest,
)
from domain.filters import FilterState, SortKey
from domain.time import as_utc, utc_now
from services.bulk_mutations import ConfirmationRequiredError
from services.export_service import export_filename, render_csv
from services.ledger_view import ActionMessage, LedgerView

router = APIRouter(responses={503: {"model": ErrorResponse}})


async def get_ledger_view(request: Request) -> LedgerView:
    view = getattr(request.app.state, "ledger_view", None)
    if view is None:
        raise HTTPException(status_code=503, detail="Sales ledger is not available")
    return view


def _message(message: Optional[ActionMessage]) -> Optional[ActionMessageResponse]:
    if message is None:
        return None
    return ActionMessageResponse(kind=message.kind.value, text=message.text)


def _selection(view: LedgerView) -> SelectionResponse:
    ids = view.selected_ids()
    return SelectionResponse(selected_ids=ids, selected_count=len(ids))


def _page_response(view: LedgerView) -> SalesPageResponse:
    page = view.current_page()
    rows: List[SaleRowResponse] = []
    for offset, row in enumerate(page.rows):
        sale = row.sale
        rows.append(SaleRowResponse(
            sr=page.first_index + offset,
            id=sale.id,
            sale_id=sale.sale_id,
            created_at=sale.created_at,
            price=sale.price,
            buyer_id=sale.buyer_id,
            buyer_name=row.buyer_name,
            referrer_id=sale.referrer_id,
            referrer_name=row.referrer_name,
            pinned=sale.pinned,
            pinned_at=sale.pinned_at,
            selected=sale.id in view.selection,
        ))
    return SalesPageResponse(
        rows=rows,
        page=page.number,
        total_pages=page.total_pages,
        total_rows=page.total_rows,
        page_size=page.page_size,
        has_previous=page.has_previous,
        has_next=page.has_next,
        page_selected=view.selection.covers(row.id for row in page.rows),
        selected_count=len(view.selection),
    )


@router.get(
    "/sales",
    response_model=SalesPageResponse,
    summary="List Sales",
    description="One page of the filtered, sorted ledger. Pinned sales always come first."
)
async def list_sales(
    page: Optional[int] = Query(None, ge=1, description="Page to show (clamped to the last page)"),
    view: LedgerView = Depends(get_ledger_view),
):
    if page is not None:
        view.go_to_page(page)
    return _page_response(view)


@router.put(
    "/sales/filters",
    response_model=SalesPageResponse,
    summary="Set Filters",
    responses={400: {"model": ErrorResponse}},
    description="Replace the toolbar filters (sort is kept) and go back to page 1."
)
async def set_filters(request: FilterRequest, view: LedgerView = Depends(get_ledger_view)):
    """
    Apply search, referrer, date range and amount range filters.

    **Example usage:**
    - Sales without a referrer: `{"referrer_filter": "__NO_REFERRER__"}`
    - October sales above 10: `{"date_from": "2025-10-01T00:00:00Z", "date_to": "2025-10-31T23:59:59Z", "min_amount": "10"}`
    """
    if (
        request.min_amount is not None
        and request.max_amount is not None
        and request.min_amount > request.max_amount
    ):
        raise HTTPException(status_code=400, detail="min_amount must not exceed max_amount")

    current = view.filters
    try:
        await view.set_filters(FilterState(
            search_text=request.search_text,
            referrer_filter=request.referrer_filter or None,
            date_from=as_utc(request.date_from) if request.date_from else None,
            date_to=as_utc(request.date_to) if request.date_to else None,
            min_amount=request.min_amount,
            max_amount=request.max_amount,
            sort_key=current.sort_key,
            sort_direction=current.sort_direction,
        ))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _page_response(view)


@router.delete(
    "/sales/filters",
    response_model=SalesPageResponse,
    summary="Clear Filters",
)
async def clear_filters(view: LedgerView = Depends(get_ledger_view)):
    await view.clear_filters()
    return _page_response(view)


@router.post(
    "/sales/sort",
    response_model=SalesPageResponse,
    summary="Sort By Column",
    responses={400: {"model": ErrorResponse}},
    description="A new column sorts ascending; the current column flips direction."
)
async def sort_sales(request: SortRequest, view: LedgerView = Depends(get_ledger_view)):
    try:
        key = SortKey(request.key)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid sort key. Must be one of {[k.value for k in SortKey]}, got '{request.key}'"
        )
    view.sort_by(key)
    return _page_response(view)


@router.put(
    "/sales/window",
    response_model=StatusResponse,
    summary="Set Live Window Size",
    description="How many of the newest sales are kept live."
)
async def set_window(request: WindowRequest, view: LedgerView = Depends(get_ledger_view)):
    await view.set_window_size(request.window_size)
    return _status(view)


@router.post("/sales/refresh", response_model=RefreshResponse, summary="Refresh Sales")
async def refresh_sales(view: LedgerView = Depends(get_ledger_view)):
    ok, message = await view.refresh()
    return RefreshResponse(ok=ok, message=_message(message))


@router.post("/sales/selection/toggle", response_model=SelectionResponse, summary="Toggle Row Selection")
async def toggle_selection(request: SelectionToggleRequest, view: LedgerView = Depends(get_ledger_view)):
    view.toggle_selection(request.id)
    return _selection(view)


@router.post(
    "/sales/selection/page",
    response_model=SelectionResponse,
    summary="Select Current Page",
    description="Select or deselect exactly the rows on the current page."
)
async def select_page(request: PageSelectionRequest, view: LedgerView = Depends(get_ledger_view)):
    if request.selected:
        view.select_current_page()
    else:
        view.deselect_current_page()
    return _selection(view)


@router.delete("/sales/selection", response_model=SelectionResponse, summary="Clear Selection")
async def clear_selection(view: LedgerView = Depends(get_ledger_view)):
    view.clear_selection()
    return _selection(view)


@router.post(
    "/sales/delete",
    response_model=DeleteResponse,
    summary="Delete Selected Sales",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    description="Delete every selected sale and write one audit entry per sale. Requires confirm=true."
)
async def delete_selected(request: DeleteRequest, view: LedgerView = Depends(get_ledger_view)):
    """
    Delete the selected sales.

    **Process:**
    1. Each selected sale is read (for the audit snapshot) and deleted independently
    2. One audit entry is written per deleted sale
    3. Deleted sales leave the selection; failed ones stay selected for retry

    **Failure response (missing confirmation):** HTTP 400
    """
    try:
        outcome, message = await view.delete_selected(confirmed=request.confirm)
    except ConfirmationRequiredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to delete sales: {str(e)}"
        )

    return DeleteResponse(
        success=outcome.success,
        failed=outcome.failed,
        deleted_ids=outcome.deleted_ids,
        message=_message(message),
    )


@router.post(
    "/sales/pin-toggle",
    response_model=PinToggleResponse,
    summary="Toggle Pin On Selected Sales",
    description="Every selected sale flips its own pin state."
)
async def toggle_pin(view: LedgerView = Depends(get_ledger_view)):
    try:
        outcome, message = await view.toggle_pin_selected()
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to toggle pins: {str(e)}"
        )

    return PinToggleResponse(
        pinned=outcome.pinned,
        unpinned=outcome.unpinned,
        failed=outcome.failed,
        skipped=outcome.skipped,
        message=_message(message),
    )


@router.get("/sales/referrers", response_model=List[ReferrerOptionResponse], summary="Referrer Filter Options")
async def referrer_options(view: LedgerView = Depends(get_ledger_view)):
    return [ReferrerOptionResponse(value=o.value, label=o.label) for o in view.referrer_options()]


@router.get(
    "/sales/export.csv",
    summary="Export Sales CSV",
    description="Download the filtered, sorted ledger (or only the selected rows) as CSV.",
    response_class=Response
)
async def export_csv(
    selected_only: bool = Query(False, description="Only export selected rows"),
    view: LedgerView = Depends(get_ledger_view),
):
    """
    Export the ledger as CSV.

    **Security:**
    - CSV injection prevention (dangerous leading characters stripped)

    **Response:**
    CSV file download with filename: `sales-report-YYYY-MM-DD.csv`
    """
    try:
        csv_content = render_csv(view.export_rows(selected_only=selected_only))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to generate CSV: {str(e)}"
        )

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={export_filename(utc_now().date(), 'csv')}"
        }
    )


def _status(view: LedgerView) -> StatusResponse:
    status = view.status()
    return StatusResponse(
        feed_state=status.feed_state.value,
        notice=status.notice,
        query_mode=status.query_mode.value,
        filter_loading=status.filter_loading,
        filters_active=status.filters_active,
        window_size=status.window_size,
        page=status.page_number,
        selected_count=status.selected_count,
    )


@router.get("/sales/status", response_model=StatusResponse, summary="Ledger Status")
async def ledger_status(view: LedgerView = Depends(get_ledger_view)):
    return _status(view)


@router.post("/sales/notice/dismiss", response_model=StatusResponse, summary="Dismiss Notice")
async def dismiss_notice(view: LedgerView = Depends(get_ledger_view)):
    view.dismiss_notice()
    return _status(view)
