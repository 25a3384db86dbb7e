"""
Bulk mutation service for ledger selections.

Handles:
- Bulk delete with mandatory confirmation and one audit entry per deleted sale
- Bulk pin toggle, where every selected row flips its own pin state

Every id is processed independently and concurrently: a failure is logged
and counted but never aborts the batch or escapes as an exception. Local
state is updated optimistically through tagged patches (see
`domain/ledger_state.py`); each patch is committed or discarded when its own
store call settles, and the returned counts reflect real outcomes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, List, Optional
from uuid import uuid4

from domain.audit import AuditEntry
from domain.ledger_state import PatchKind, PendingPatch
from domain.time import utc_now
from repositories.audit_repository import append_audit_entry
from repositories.sale_repository import clear_pinned, delete_sale, read_sale_payload, set_pinned
from repositories.store import DocumentStore
from services.session import LocalLedger

logger = logging.getLogger(__name__)


class ConfirmationRequiredError(Exception):
    """Raised when a destructive bulk action is attempted without confirmation."""


@dataclass(frozen=True, slots=True)
class DeleteOutcome:
    """
    Result of a bulk delete.

    success: sales deleted and audited
    failed: sales not deleted, or deleted without an audit entry
    deleted_ids: ids that are gone from the store (includes unaudited deletes)
    """

    success: int
    failed: int
    deleted_ids: List[str] = field(default_factory=list)

    @property
    def requested(self) -> int:
        return self.success + self.failed


@dataclass(frozen=True, slots=True)
class PinToggleOutcome:
    """
    Result of a bulk pin toggle.

    skipped: selected ids no longer present locally (nothing to flip)
    """

    pinned: int
    unpinned: int
    failed: int = 0
    skipped: int = 0


@dataclass(frozen=True, slots=True)
class _DeleteResult:
    doc_id: str
    deleted: bool
    audited: bool


@dataclass(frozen=True, slots=True)
class _PinResult:
    doc_id: str
    kind: Optional[PatchKind]  # None when skipped
    ok: bool


class BulkMutationCoordinator:
    def __init__(
        self,
        store: DocumentStore,
        local: LocalLedger,
        *,
        sales_collection: str,
        audit_collection: str,
        actor_id: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._local = local
        self._sales = sales_collection
        self._audit = audit_collection
        self._actor_id = actor_id
        self._clock = clock

    async def delete_selected(self, ids: Iterable[str], *, confirmed: bool) -> DeleteOutcome:
        """
        Delete every selected sale and write an audit entry for each.

        Args:
            ids: Selected store ids (stale ids simply fail as not found)
            confirmed: The operator explicitly confirmed this irreversible action

        Raises:
            ConfirmationRequiredError: if `confirmed` is False
        """

        targets = sorted(set(ids))
        if not targets:
            return DeleteOutcome(success=0, failed=0)
        if not confirmed:
            raise ConfirmationRequiredError(f"Deleting {len(targets)} sale(s) requires confirmation")

        results = await asyncio.gather(*(self._delete_one(doc_id) for doc_id in targets))

        success = sum(1 for r in results if r.deleted and r.audited)
        outcome = DeleteOutcome(
            success=success,
            failed=len(results) - success,
            deleted_ids=[r.doc_id for r in results if r.deleted],
        )
        logger.info(
            "Bulk delete finished: %d deleted, %d failed",
            outcome.success,
            outcome.failed,
            extra={"actor_id": self._actor_id, "requested": len(targets)},
        )
        return outcome

    async def _delete_one(self, doc_id: str) -> _DeleteResult:
        op_id = uuid4().hex
        self._local.apply(PendingPatch(op_id=op_id, row_id=doc_id, kind=PatchKind.DELETE))

        # Snapshot is best-effort; a failed read only means an empty snapshot.
        try:
            snapshot = await read_sale_payload(self._store, self._sales, doc_id)
        except Exception:
            logger.warning("Could not read sale %s for audit snapshot", doc_id, exc_info=True,
                           extra={"sale_doc_id": doc_id})
            snapshot = None

        try:
            await delete_sale(self._store, self._sales, doc_id)
        except Exception:
            logger.exception("Delete failed for sale %s", doc_id, extra={"sale_doc_id": doc_id})
            self._local.discard(op_id)
            return _DeleteResult(doc_id=doc_id, deleted=False, audited=False)

        # The sale is gone from the store whatever happens to the audit entry.
        self._local.commit(op_id)

        try:
            await append_audit_entry(
                self._store,
                self._audit,
                AuditEntry.for_delete(doc_id, self._actor_id, snapshot),
            )
        except Exception:
            logger.exception(
                "Sale %s was deleted but its audit entry could not be written",
                doc_id,
                extra={"sale_doc_id": doc_id, "actor_id": self._actor_id},
            )
            return _DeleteResult(doc_id=doc_id, deleted=True, audited=False)

        return _DeleteResult(doc_id=doc_id, deleted=True, audited=True)

    async def toggle_pin_selected(self, ids: Iterable[str]) -> PinToggleOutcome:
        """
        Flip the pin state of every selected sale independently.

        Pinned rows are unpinned (pin time cleared); unpinned rows are pinned
        with the current time.
        """

        targets = sorted(set(ids))
        if not targets:
            return PinToggleOutcome(pinned=0, unpinned=0)

        results = await asyncio.gather(*(self._toggle_one(doc_id) for doc_id in targets))

        outcome = PinToggleOutcome(
            pinned=sum(1 for r in results if r.ok and r.kind is PatchKind.PIN),
            unpinned=sum(1 for r in results if r.ok and r.kind is PatchKind.UNPIN),
            failed=sum(1 for r in results if r.kind is not None and not r.ok),
            skipped=sum(1 for r in results if r.kind is None),
        )
        logger.info(
            "Bulk pin toggle finished: %d pinned, %d unpinned, %d failed, %d skipped",
            outcome.pinned,
            outcome.unpinned,
            outcome.failed,
            outcome.skipped,
            extra={"actor_id": self._actor_id},
        )
        return outcome

    async def _toggle_one(self, doc_id: str) -> _PinResult:
        sale = self._local.find(doc_id)
        if sale is None:
            return _PinResult(doc_id=doc_id, kind=None, ok=False)

        op_id = uuid4().hex
        if sale.pinned:
            patch = PendingPatch(op_id=op_id, row_id=doc_id, kind=PatchKind.UNPIN)
        else:
            patch = PendingPatch(op_id=op_id, row_id=doc_id, kind=PatchKind.PIN, pinned_at=self._clock())
        self._local.apply(patch)

        try:
            if patch.kind is PatchKind.PIN:
                await set_pinned(self._store, self._sales, doc_id, patch.pinned_at)  # type: ignore[arg-type]
            else:
                await clear_pinned(self._store, self._sales, doc_id)
        except Exception:
            logger.exception("Pin toggle failed for sale %s", doc_id, extra={"sale_doc_id": doc_id})
            self._local.discard(op_id)
            return _PinResult(doc_id=doc_id, kind=patch.kind, ok=False)

        self._local.commit(op_id)
        return _PinResult(doc_id=doc_id, kind=patch.kind, ok=True)


__all__ = ["BulkMutationCoordinator", "ConfirmationRequiredError", "DeleteOutcome", "PinToggleOutcome"]
