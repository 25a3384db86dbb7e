"""
Query mode selection for the ledger view.

Small windows are filtered entirely in memory (client mode). Once the live
window holds more rows than the threshold, the date range and referrer
filters are pushed to the store (remote mode) and the store's answer replaces
the working set; search text, amount range and the unresolved-identity rule
are still applied in memory afterwards.

Remote mode re-queries whenever the date range or referrer filter changes, or
when the mode or window size changes. "No referrer" is never sent to the
store (it cannot be expressed as an equality); the remaining predicates stay
remote and the in-memory predicate handles it.

Remote reads are numbered. If an older read completes after a newer one was
started, its result is dropped.
"""

from __future__ import annotations

import logging
from enum import Enum

from domain.filters import FilterState, build_remote_filter
from repositories.sale_repository import fetch_filtered_sales
from repositories.store import DocumentStore
from services.session import LocalLedger

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_THRESHOLD: int = 500


class QueryMode(str, Enum):
    CLIENT = "client"
    REMOTE = "remote"


class QueryModeSelector:
    def __init__(
        self,
        store: DocumentStore,
        sales_collection: str,
        local: LocalLedger,
        *,
        threshold: int = DEFAULT_REMOTE_THRESHOLD,
        limit: int,
    ) -> None:
        if threshold < 1 or limit < 1:
            raise ValueError("threshold and limit must be >= 1")
        self._store = store
        self._collection = sales_collection
        self._local = local
        self._threshold = threshold
        self._limit = limit
        self._mode = QueryMode.CLIENT
        self._generation = 0
        self.filter_loading = False

    @property
    def mode(self) -> QueryMode:
        return self._mode

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def limit(self) -> int:
        return self._limit

    def set_limit(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._limit = limit

    def observe_window_size(self, size: int) -> bool:
        """
        Re-evaluate the mode for a live window of `size` rows.

        Returns:
            True if the mode changed
        """

        mode = QueryMode.REMOTE if size > self._threshold else QueryMode.CLIENT
        if mode is self._mode:
            return False
        logger.info(
            "Ledger query mode %s -> %s (window=%d, threshold=%d)",
            self._mode.value,
            mode.value,
            size,
            self._threshold,
            extra={"window_size": size, "threshold": self._threshold},
        )
        self._mode = mode
        return True

    def needs_refetch(self, previous: FilterState, current: FilterState) -> bool:
        return self._mode is QueryMode.REMOTE and previous.remote_inputs() != current.remote_inputs()

    async def refresh(self, filters: FilterState) -> bool:
        """
        Bring the remote result in line with the current mode and filters.

        In client mode this clears any remote result. In remote mode it runs
        the store query; on failure the remote result is cleared so the view
        falls back to the live window.

        Returns:
            False if a newer refresh superseded this one, True otherwise
        """

        self._generation += 1
        generation = self._generation

        if self._mode is QueryMode.CLIENT:
            self.filter_loading = False
            self._local.replace_remote_rows(None)
            return True

        remote = build_remote_filter(filters, self._limit)
        self.filter_loading = True
        try:
            rows = await fetch_filtered_sales(self._store, self._collection, remote)
        except Exception:
            logger.error(
                "Store-side sales filter failed; falling back to the live window",
                exc_info=True,
                extra={"date_from": remote.date_from, "date_to": remote.date_to, "referrer_id": remote.referrer_id},
            )
            rows = None

        if generation != self._generation:
            return False

        self.filter_loading = False
        self._local.replace_remote_rows(rows)
        return True


__all__ = ["QueryMode", "QueryModeSelector", "DEFAULT_REMOTE_THRESHOLD"]
