"""
Audit repository (persistence).

Append-only: entries are inserted and never updated or deleted here. The
`at` column is filled by the database default, so the entry timestamp is
assigned by the server.
"""

from __future__ import annotations

from domain.audit import AuditEntry
from repositories.store import DocumentStore


async def append_audit_entry(store: DocumentStore, collection: str, entry: AuditEntry) -> str:
    """Insert `entry` and return the new audit document id."""

    return await store.insert(collection, entry.to_document())


__all__ = ["append_audit_entry"]
