"""
Identity resolution service.

Turns opaque user ids (buyers, referrers) into display names with a
session-long cache.

Guarantees:
- An empty id resolves to "" without touching the store.
- Once an id has been resolved (including to "", meaning "no usable name" or
  "no such user"), it is never read from the store again this session.
- Concurrent callers for the same unresolved id share one store read.
- A transport failure caches nothing: that call returns "" and the next
  call retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, Optional

from repositories.store import DocumentStore
from repositories.user_repository import fetch_display_name

logger = logging.getLogger(__name__)


class IdentityResolver:
    def __init__(self, store: DocumentStore, users_collection: str) -> None:
        self._store = store
        self._collection = users_collection
        self._cache: Dict[str, str] = {}
        self._pending: Dict[str, "asyncio.Task[str]"] = {}

    def cached_name(self, user_id: str) -> Optional[str]:
        """Cached display name, or None if the id has not been resolved yet."""

        return self._cache.get(user_id)

    def is_known(self, user_id: str) -> bool:
        """True when the id resolved to a non-blank display name."""

        return bool((self._cache.get(user_id) or "").strip())

    async def resolve_name(self, user_id: str) -> str:
        """
        Resolve `user_id` to a display name.

        Never raises for "not found" or transport errors; both yield "".
        """

        if not user_id:
            return ""

        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        task = self._pending.get(user_id)
        if task is None:
            task = asyncio.ensure_future(self._lookup(user_id))
            self._pending[user_id] = task

        # Shield so a cancelled caller does not cancel the read other callers share.
        return await asyncio.shield(task)

    async def resolve_many(self, user_ids: Iterable[str]) -> Dict[str, str]:
        """Resolve several ids concurrently (duplicates and empty ids are collapsed)."""

        unique = sorted({user_id for user_id in user_ids if user_id})
        names = await asyncio.gather(*(self.resolve_name(user_id) for user_id in unique))
        return dict(zip(unique, names))

    async def _lookup(self, user_id: str) -> str:
        try:
            name = await fetch_display_name(self._store, self._collection, user_id)
            resolved = name or ""
            self._cache[user_id] = resolved
            return resolved
        except Exception:
            logger.warning(
                "Failed to resolve user name for %s",
                user_id,
                exc_info=True,
                extra={"user_id": user_id},
            )
            return ""
        finally:
            self._pending.pop(user_id, None)


__all__ = ["IdentityResolver"]
