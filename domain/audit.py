"""
Domain: Audit entries for destructive ledger actions.

Audit entries are append-only. This system writes them and never updates or
deletes them. The entry timestamp is assigned by the store when the entry is
inserted, so entries built locally carry `timestamp=None`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .time import require_utc_timestamp


class AuditAction(str, Enum):
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """
    Immutable audit record.

    snapshot: full stored payload of the target captured just before the
    action, or None if it could not be read.
    """

    action: AuditAction
    target_id: str
    actor_id: Optional[str] = None
    snapshot: Optional[Mapping[str, Any]] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.target_id:
            raise ValueError("target_id is required")
        if self.timestamp is not None:
            require_utc_timestamp("timestamp", self.timestamp)

    @staticmethod
    def for_delete(target_id: str, actor_id: Optional[str], snapshot: Optional[Mapping[str, Any]]) -> "AuditEntry":
        return AuditEntry(
            action=AuditAction.DELETE,
            target_id=target_id,
            actor_id=actor_id,
            snapshot=dict(snapshot) if snapshot is not None else None,
        )

    def to_document(self) -> Dict[str, Any]:
        """Payload for the audit collection; `at` is filled in by the store."""

        payload: Dict[str, Any] = {
            "action": self.action.value,
            "sale_id": self.target_id,
            "by_uid": self.actor_id,
            "sale": dict(self.snapshot) if self.snapshot is not None else None,
        }
        if self.timestamp is not None:
            payload["at"] = self.timestamp.isoformat()
        return payload
