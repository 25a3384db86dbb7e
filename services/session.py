"""
Ledger session and shared local state.

LedgerSession is the explicit replacement for ambient globals: the store
handle, the settings and the operator identity travel together and are
passed to every component that needs them.

LocalLedger is the one mutable holder of the view's LedgerState. The live
feed, the remote filter and bulk actions all write through it; writes are
last-write-wins and need no locking because everything runs on one event
loop. Once the view is torn down (`active = False`) late writers are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from domain.ledger_state import LedgerState, PendingPatch
from domain.sale import SaleRecord
from repositories.client import LedgerSettings
from repositories.store import DocumentStore


@dataclass(frozen=True)
class LedgerSession:
    store: DocumentStore
    settings: LedgerSettings
    actor_id: Optional[str] = None

    @classmethod
    def create(cls, store: DocumentStore, settings: LedgerSettings) -> "LedgerSession":
        return cls(store=store, settings=settings, actor_id=settings.actor_id)


class LocalLedger:
    def __init__(self) -> None:
        self.state = LedgerState()
        self.active = True

    def replace_rows(self, rows: Iterable[SaleRecord]) -> None:
        if self.active:
            self.state = self.state.replace_rows(rows)

    def replace_remote_rows(self, rows: Optional[Iterable[SaleRecord]]) -> None:
        if self.active:
            self.state = self.state.replace_remote_rows(rows)

    def apply(self, patch: PendingPatch) -> None:
        if self.active:
            self.state = self.state.apply(patch)

    def commit(self, op_id: str) -> None:
        if self.active:
            self.state = self.state.commit(op_id)

    def discard(self, op_id: str) -> None:
        if self.active:
            self.state = self.state.discard(op_id)

    def find(self, row_id: str) -> Optional[SaleRecord]:
        return self.state.find(row_id)

    def working_rows(self) -> List[SaleRecord]:
        return self.state.working_rows()

    def window_rows(self) -> List[SaleRecord]:
        return self.state.window_rows()

    def deactivate(self) -> None:
        self.active = False
