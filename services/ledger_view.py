"""
Ledger view service.

One LedgerView per operator session. It owns the toolbar state (filters,
sort, page), the selection and the local ledger, and wires together:

- LiveFeedSubscriber: keeps the newest `window_size` sales in the local ledger
- QueryModeSelector: switches date/referrer filtering to the store for large windows
- IdentityResolver: display names for buyers and referrers
- BulkMutationCoordinator: delete and pin toggle of the selection

Reads (`filtered_rows`, `current_page`, `referrer_options`, `status`) are
synchronous and computed from local state; anything that talks to the store
is async.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from domain.filters import NO_REFERRER, FilterState, SortKey, build_predicate, is_identity_known
from domain.ordering import Page, clamp_page, order_sales, paginate
from domain.sale import LedgerRow, SaleRecord
from domain.selection import SelectionSet
from domain.time import utc_now
from services.bulk_mutations import BulkMutationCoordinator, DeleteOutcome, PinToggleOutcome
from services.export_service import NO_REFERRER_LABEL
from services.identity_resolver import IdentityResolver
from services.live_feed import FeedState, LiveFeedSubscriber
from services.query_mode import QueryMode, QueryModeSelector
from services.session import LedgerSession, LocalLedger

logger = logging.getLogger(__name__)

ALL_REFERRERS_LABEL: str = "All"


class ActionKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ActionMessage:
    """Short user-facing result of an operator action."""

    kind: ActionKind
    text: str


@dataclass(frozen=True, slots=True)
class ReferrerOption:
    """
    One entry of the referrer dropdown.

    value: "" for all referrers, NO_REFERRER, or a referrer identifier
    """

    value: str
    label: str


@dataclass(frozen=True, slots=True)
class LedgerStatus:
    feed_state: FeedState
    notice: Optional[str]
    query_mode: QueryMode
    filter_loading: bool
    filters_active: bool
    window_size: int
    page_number: int
    selected_count: int


def delete_message(outcome: DeleteOutcome) -> ActionMessage:
    if outcome.failed:
        return ActionMessage(
            ActionKind.ERROR,
            f"Deleted {outcome.success} sale(s), {outcome.failed} failed.",
        )
    return ActionMessage(ActionKind.SUCCESS, f"Deleted {outcome.success} sale(s)")


def pin_toggle_message(outcome: PinToggleOutcome) -> ActionMessage:
    text = f"Pinned {outcome.pinned}, unpinned {outcome.unpinned}"
    if outcome.failed:
        return ActionMessage(ActionKind.ERROR, f"{text}, {outcome.failed} failed.")
    return ActionMessage(ActionKind.SUCCESS, text)


class LedgerView:
    def __init__(
        self,
        session: LedgerSession,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = session.settings
        self._session = session
        self._local = LocalLedger()
        self._resolver = IdentityResolver(session.store, settings.users_table)
        self._selector = QueryModeSelector(
            session.store,
            settings.sales_table,
            self._local,
            threshold=settings.remote_threshold,
            limit=settings.window_size,
        )
        self._feed = LiveFeedSubscriber(
            session.store,
            settings.sales_table,
            window_size=settings.window_size,
            on_rows=self._on_rows,
        )
        self._mutations = BulkMutationCoordinator(
            session.store,
            self._local,
            sales_collection=settings.sales_table,
            audit_collection=settings.audit_table,
            actor_id=session.actor_id,
            clock=clock,
        )
        self.page_size = settings.page_size
        self.hide_unresolved = settings.hide_unresolved
        self.filters = FilterState()
        self.selection = SelectionSet()
        self._page_number = 1

    # -- lifecycle ---------------------------------------------------------

    async def open(self) -> None:
        logger.info(
            "Opening sales ledger",
            extra={"window_size": self._feed.window_size, "actor_id": self._session.actor_id},
        )
        await self._feed.start()

    async def close(self) -> None:
        """Tear down: later results from in-flight work no longer touch state."""

        self._local.deactivate()
        await self._feed.stop()
        logger.info("Closed sales ledger")

    async def _on_rows(self, rows: List[SaleRecord]) -> None:
        if not self._local.active:
            return
        self._local.replace_rows(rows)
        if self._selector.observe_window_size(len(rows)):
            await self._selector.refresh(self.filters)
        await self._resolve_visible_names()

    async def _resolve_visible_names(self) -> None:
        ids = set()
        for sale in [*self._local.working_rows(), *self._local.window_rows()]:
            ids.add(sale.buyer_id)
            if sale.referrer_id:
                ids.add(sale.referrer_id)
        await self._resolver.resolve_many(ids)

    # -- filters, sort, paging ---------------------------------------------

    async def set_filters(self, filters: FilterState) -> None:
        previous, self.filters = self.filters, filters
        self._page_number = 1
        if self._selector.needs_refetch(previous, filters):
            await self._selector.refresh(filters)
            await self._resolve_visible_names()

    async def update_filters(self, **changes: object) -> None:
        await self.set_filters(self.filters.with_changes(**changes))

    async def clear_filters(self) -> None:
        await self.set_filters(self.filters.cleared())

    def sort_by(self, key: SortKey) -> None:
        """Column-header click; sorting never needs a store query."""

        self.filters = self.filters.toggled_sort(key)
        self._page_number = 1

    @property
    def page_number(self) -> int:
        return clamp_page(self._page_number, len(self.filtered_rows()), self.page_size)

    def go_to_page(self, page_number: int) -> int:
        self._page_number = clamp_page(page_number, len(self.filtered_rows()), self.page_size)
        return self._page_number

    async def set_window_size(self, window_size: int) -> None:
        self._selector.set_limit(window_size)
        await self._feed.resize(window_size)
        if self._selector.mode is QueryMode.REMOTE:
            await self._selector.refresh(self.filters)
            await self._resolve_visible_names()

    # -- reads ---------------------------------------------------------------

    def _row(self, sale: SaleRecord) -> LedgerRow:
        cached = self._resolver.cached_name
        return LedgerRow(
            sale=sale,
            buyer_name=cached(sale.buyer_id) or "",
            referrer_name=(cached(sale.referrer_id) or "") if sale.referrer_id else "",
        )

    def filtered_rows(self) -> List[LedgerRow]:
        """Working set after filters and the unresolved-identity rule, in display order."""

        predicate = build_predicate(self.filters, self._resolver.cached_name)
        rows = [sale for sale in self._local.working_rows() if predicate(sale)]
        if self.hide_unresolved:
            rows = [sale for sale in rows if is_identity_known(sale, self._resolver.is_known)]
        return [self._row(sale) for sale in order_sales(rows, self.filters)]

    def current_page(self) -> Page[LedgerRow]:
        page = paginate(self.filtered_rows(), self.page_size, self._page_number)
        self._page_number = page.number
        return page

    def referrer_options(self) -> List[ReferrerOption]:
        """All, No Referrer, then referrers of the live window with a known name, by name."""

        known = []
        for referrer_id in {sale.referrer_id for sale in self._local.window_rows() if sale.referrer_id}:
            name = (self._resolver.cached_name(referrer_id) or "").strip()
            if name:
                known.append(ReferrerOption(value=referrer_id, label=name))
        known.sort(key=lambda option: (option.label.lower(), option.value))
        return [
            ReferrerOption(value="", label=ALL_REFERRERS_LABEL),
            ReferrerOption(value=NO_REFERRER, label=NO_REFERRER_LABEL),
            *known,
        ]

    def export_rows(self, selected_only: bool = False) -> List[LedgerRow]:
        rows = self.filtered_rows()
        if selected_only:
            rows = [row for row in rows if row.id in self.selection]
        return rows

    def status(self) -> LedgerStatus:
        return LedgerStatus(
            feed_state=self._feed.state,
            notice=self._feed.notice,
            query_mode=self._selector.mode,
            filter_loading=self._selector.filter_loading,
            filters_active=self.filters.has_active_filters,
            window_size=self._feed.window_size,
            page_number=self.page_number,
            selected_count=len(self.selection),
        )

    def dismiss_notice(self) -> None:
        self._feed.dismiss_notice()

    # -- selection -----------------------------------------------------------

    def _page_ids(self) -> List[str]:
        return [row.id for row in self.current_page().rows]

    def toggle_selection(self, row_id: str) -> bool:
        """Returns True when the row is selected afterwards."""

        self.selection = self.selection.toggle(row_id)
        return row_id in self.selection

    def select_current_page(self) -> None:
        self.selection = self.selection.select_page(self._page_ids())

    def deselect_current_page(self) -> None:
        self.selection = self.selection.deselect_page(self._page_ids())

    def current_page_selected(self) -> bool:
        return self.selection.covers(self._page_ids())

    def clear_selection(self) -> None:
        self.selection = self.selection.clear()

    def selected_ids(self) -> List[str]:
        return list(self.selection)

    # -- actions ---------------------------------------------------------------

    async def refresh(self) -> Tuple[bool, Optional[ActionMessage]]:
        """Manual refresh: new window fetch, back to page 1, remote filter re-run."""

        ok = await self._feed.refresh()
        self._page_number = 1
        if not ok:
            return False, ActionMessage(ActionKind.ERROR, self._feed.notice or "Refresh failed.")
        if self._selector.mode is QueryMode.REMOTE:
            await self._selector.refresh(self.filters)
            await self._resolve_visible_names()
        return True, None

    async def delete_selected(self, confirmed: bool) -> Tuple[DeleteOutcome, Optional[ActionMessage]]:
        """
        Delete the selected sales.

        Raises:
            ConfirmationRequiredError: if there is a selection and `confirmed` is False
        """

        ids = self.selected_ids()
        if not ids:
            return DeleteOutcome(success=0, failed=0), None
        outcome = await self._mutations.delete_selected(ids, confirmed=confirmed)
        # Failed ids stay selected so the operator can retry them.
        self.selection = self.selection.without(outcome.deleted_ids)
        return outcome, delete_message(outcome)

    async def toggle_pin_selected(self) -> Tuple[PinToggleOutcome, Optional[ActionMessage]]:
        ids = self.selected_ids()
        if not ids:
            return PinToggleOutcome(pinned=0, unpinned=0), None
        outcome = await self._mutations.toggle_pin_selected(ids)
        return outcome, pin_toggle_message(outcome)


__all__ = [
    "ActionKind",
    "ActionMessage",
    "LedgerStatus",
    "LedgerView",
    "ReferrerOption",
    "delete_message",
    "pin_toggle_message",
]
