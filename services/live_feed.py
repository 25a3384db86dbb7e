"""
Live feed subscriber for the sales ledger.

Keeps a bounded, real-time window of the newest sales. States:

    DISCONNECTED -> SUBSCRIBING -> LIVE <-> DEGRADED

- start / resize: open a subscription over the newest `window_size` sales.
- snapshot: normalize the whole window (malformed rows dropped), hand it to
  the consumer, state LIVE.
- subscription error: state DEGRADED, close the subscription, make exactly
  one point-in-time fetch of the same query, set a "live updates unavailable"
  notice, and stay on that snapshot until the window size changes or the
  operator refreshes.
- refresh: one fresh fetch at any state; from DEGRADED it also retries the
  subscription once.
- stop: close the subscription, state DISCONNECTED.

Each subscription attempt gets an epoch number; callbacks from an older
attempt are ignored.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional

from domain.sale import SaleRecord
from repositories.sale_repository import fetch_sales_window, sales_from_documents, window_query
from repositories.store import DocumentStore, StoreDocument, Subscription

logger = logging.getLogger(__name__)

REALTIME_UNAVAILABLE: str = "Real-time updates unavailable. Showing latest snapshot."
UNABLE_TO_LOAD: str = "Unable to load sales. Check your network or authentication."
REFRESH_FAILED: str = "Refresh failed. Please check your connection."

RowsCallback = Callable[[List[SaleRecord]], Awaitable[None]]


class FeedState(str, Enum):
    DISCONNECTED = "disconnected"
    SUBSCRIBING = "subscribing"
    LIVE = "live"
    DEGRADED = "degraded"


_TRANSITIONS: Dict[FeedState, FrozenSet[FeedState]] = {
    FeedState.DISCONNECTED: frozenset({FeedState.SUBSCRIBING}),
    FeedState.SUBSCRIBING: frozenset({FeedState.LIVE, FeedState.DEGRADED, FeedState.DISCONNECTED}),
    FeedState.LIVE: frozenset({FeedState.DEGRADED, FeedState.SUBSCRIBING, FeedState.DISCONNECTED}),
    FeedState.DEGRADED: frozenset({FeedState.SUBSCRIBING, FeedState.DISCONNECTED}),
}


class LiveFeedSubscriber:
    def __init__(
        self,
        store: DocumentStore,
        sales_collection: str,
        *,
        window_size: int,
        on_rows: RowsCallback,
    ) -> None:
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        self._store = store
        self._collection = sales_collection
        self._window_size = window_size
        self._on_rows = on_rows
        self._subscription: Optional[Subscription] = None
        self._epoch = 0
        self.state = FeedState.DISCONNECTED
        self.notice: Optional[str] = None
        self.fallback_fetches = 0

    @property
    def window_size(self) -> int:
        return self._window_size

    @property
    def is_degraded(self) -> bool:
        return self.state is FeedState.DEGRADED

    def _transition(self, target: FeedState) -> None:
        if target is self.state:
            return
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid live feed transition {self.state.value} -> {target.value}")
        logger.debug("Live feed %s -> %s", self.state.value, target.value)
        self.state = target

    async def start(self) -> None:
        await self._subscribe()

    async def resize(self, window_size: int) -> None:
        """Change the window size; an open (or degraded) feed re-subscribes."""

        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        self._window_size = window_size
        if self.state is not FeedState.DISCONNECTED:
            await self._subscribe()

    async def refresh(self) -> bool:
        """
        Fetch the window once and hand it to the consumer.

        Returns:
            True if the fetch succeeded
        """

        try:
            rows = await fetch_sales_window(self._store, self._collection, self._window_size)
        except Exception:
            logger.error("Sales refresh failed", exc_info=True)
            self.notice = REFRESH_FAILED
            return False

        if self.notice == REFRESH_FAILED:
            self.notice = None
        await self._on_rows(rows)

        if self.state is FeedState.DEGRADED:
            await self._subscribe()
        return True

    async def stop(self) -> None:
        self._epoch += 1
        await self._close_subscription()
        self._transition(FeedState.DISCONNECTED)

    def dismiss_notice(self) -> None:
        self.notice = None

    async def _subscribe(self) -> None:
        await self._close_subscription()
        self._epoch += 1
        epoch = self._epoch
        self._transition(FeedState.SUBSCRIBING)

        try:
            subscription = await self._store.subscribe(
                self._collection,
                window_query(self._window_size),
                partial(self._handle_snapshot, epoch),
                partial(self._handle_error, epoch),
            )
        except Exception as e:
            await self._handle_error(epoch, e)
            return

        if epoch != self._epoch:
            # Stopped, failed or re-subscribed while opening.
            await subscription.close()
            return
        self._subscription = subscription

    async def _handle_snapshot(self, epoch: int, documents: List[StoreDocument]) -> None:
        if epoch != self._epoch or self.state is FeedState.DISCONNECTED:
            return

        try:
            rows = sales_from_documents(documents)
            self._transition(FeedState.LIVE)
            if self.notice in (REALTIME_UNAVAILABLE, UNABLE_TO_LOAD):
                self.notice = None
            await self._on_rows(rows)
        except Exception as e:
            await self._handle_error(epoch, e)

    async def _handle_error(self, epoch: int, error: BaseException) -> None:
        if epoch != self._epoch:
            return
        # Later callbacks from the failed subscription are ignored from here on.
        self._epoch += 1
        fallback_epoch = self._epoch

        logger.error(
            "Sales subscription error: %s",
            error,
            exc_info=(type(error), error, error.__traceback__),
            extra={"collection": self._collection, "window_size": self._window_size},
        )
        self._transition(FeedState.DEGRADED)
        await self._close_subscription()

        self.fallback_fetches += 1
        try:
            rows = await fetch_sales_window(self._store, self._collection, self._window_size)
        except Exception:
            logger.error("Fallback sales snapshot failed", exc_info=True)
            if fallback_epoch == self._epoch:
                self.notice = UNABLE_TO_LOAD
            return

        if fallback_epoch != self._epoch:
            return
        self.notice = REALTIME_UNAVAILABLE
        try:
            await self._on_rows(rows)
        except Exception:
            logger.error("Failed to apply fallback sales snapshot", exc_info=True)
            self.notice = UNABLE_TO_LOAD

    async def _close_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        try:
            await subscription.close()
        except Exception:
            logger.warning("Failed to close sales subscription", exc_info=True)


__all__ = ["FeedState", "LiveFeedSubscriber", "REALTIME_UNAVAILABLE", "UNABLE_TO_LOAD", "REFRESH_FAILED"]
