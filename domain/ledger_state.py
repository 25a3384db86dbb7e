"""
Domain: Local ledger state with tentative (optimistic) patches.

The store is the source of truth; this state is a cache of it with two row
sources:
- `rows`: the live window kept current by the real-time feed,
- `remote_rows`: the result of the latest store-side filter query (None when
  filtering happens in memory).

Bulk actions do not mutate either list directly. Each action applies a
PendingPatch tagged with its operation id and, once the remote call settles,
either commits it (folds it into both row sources) or discards it.

A fresh snapshot replaces a row source but keeps patches that are still
pending, so an in-flight delete does not make a row flicker back into view.

Pure: every transition returns a new LedgerState.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .sale import SaleRecord


class PatchKind(str, Enum):
    DELETE = "delete"
    PIN = "pin"
    UNPIN = "unpin"


@dataclass(frozen=True, slots=True)
class PendingPatch:
    op_id: str
    row_id: str
    kind: PatchKind
    pinned_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.kind is PatchKind.PIN and self.pinned_at is None:
            raise ValueError("pin patches require pinned_at")

    def apply_to(self, sale: SaleRecord) -> Optional[SaleRecord]:
        """Return the patched record, or None when the patch removes it."""

        if self.kind is PatchKind.DELETE:
            return None
        if self.kind is PatchKind.PIN:
            return sale.pin(self.pinned_at)  # type: ignore[arg-type]
        return sale.unpin()


def _patch_rows(rows: Iterable[SaleRecord], patches: Iterable[PendingPatch]) -> List[SaleRecord]:
    by_row: Dict[str, List[PendingPatch]] = {}
    for patch in patches:
        by_row.setdefault(patch.row_id, []).append(patch)

    patched: List[SaleRecord] = []
    for sale in rows:
        current: Optional[SaleRecord] = sale
        for patch in by_row.get(sale.id, ()):
            current = patch.apply_to(current)
            if current is None:
                break
        if current is not None:
            patched.append(current)
    return patched


@dataclass(frozen=True, slots=True)
class LedgerState:
    rows: Tuple[SaleRecord, ...] = ()
    remote_rows: Optional[Tuple[SaleRecord, ...]] = None
    pending: Tuple[PendingPatch, ...] = ()

    def replace_rows(self, rows: Iterable[SaleRecord]) -> "LedgerState":
        return LedgerState(rows=tuple(rows), remote_rows=self.remote_rows, pending=self.pending)

    def replace_remote_rows(self, rows: Optional[Iterable[SaleRecord]]) -> "LedgerState":
        remote = tuple(rows) if rows is not None else None
        return LedgerState(rows=self.rows, remote_rows=remote, pending=self.pending)

    def apply(self, patch: PendingPatch) -> "LedgerState":
        return LedgerState(rows=self.rows, remote_rows=self.remote_rows, pending=self.pending + (patch,))

    def commit(self, op_id: str) -> "LedgerState":
        """Fold the patch tagged `op_id` into both row sources and drop the tag."""

        patch = self._find(op_id)
        if patch is None:
            return self

        remote = tuple(_patch_rows(self.remote_rows, [patch])) if self.remote_rows is not None else None
        return LedgerState(
            rows=tuple(_patch_rows(self.rows, [patch])),
            remote_rows=remote,
            pending=self._without(op_id),
        )

    def discard(self, op_id: str) -> "LedgerState":
        return LedgerState(rows=self.rows, remote_rows=self.remote_rows, pending=self._without(op_id))

    def window_rows(self) -> List[SaleRecord]:
        """Live window with pending patches applied."""

        return _patch_rows(self.rows, self.pending)

    def working_rows(self) -> List[SaleRecord]:
        """Rows under consideration: the remote result when present, else the live window."""

        source = self.remote_rows if self.remote_rows is not None else self.rows
        return _patch_rows(source, self.pending)

    def find(self, row_id: str) -> Optional[SaleRecord]:
        for sale in self.working_rows():
            if sale.id == row_id:
                return sale
        for sale in self.window_rows():
            if sale.id == row_id:
                return sale
        return None

    def _find(self, op_id: str) -> Optional[PendingPatch]:
        for patch in self.pending:
            if patch.op_id == op_id:
                return patch
        return None

    def _without(self, op_id: str) -> Tuple[PendingPatch, ...]:
        return tuple(patch for patch in self.pending if patch.op_id != op_id)
