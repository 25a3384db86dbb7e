"""
User repository (persistence).

Read-only access to buyer/referrer profiles, used to turn opaque user ids
into display names.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from repositories.store import DocumentStore


def compose_display_name(data: Mapping[str, Any]) -> str:
    """
    Display name for a user profile.

    Precedence: explicit `name`, then "first_name last_name" (trimmed), then
    `email`; "" when none is present.
    """

    name = str(data.get("name") or "").strip()
    if name:
        return name

    full = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip()
    if full:
        return full

    return str(data.get("email") or "").strip()


async def fetch_display_name(store: DocumentStore, collection: str, user_id: str) -> Optional[str]:
    """
    Read a user's display name.

    Returns:
        The composed name ("" if the profile has no usable field), or None if
        the user does not exist
    """

    doc = await store.get(collection, user_id)
    if doc is None:
        return None
    return compose_display_name(doc.data)


__all__ = ["compose_display_name", "fetch_display_name"]
