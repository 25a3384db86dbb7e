"""
Supabase client initialization and ledger settings.

This module contains *only* configuration and connection setup. Nothing here
is a module-level singleton: the API builds one `LedgerSettings` and one
store at startup and passes them down explicitly.

Environment variables:
- SUPABASE_URL: Your Supabase project URL (required)
- SUPABASE_KEY: Your Supabase API key (required; use a server-side key only on the backend)
- SALES_TABLE / USERS_TABLE / AUDIT_TABLE: table names (default: sales, users, audit_logs)
- LEDGER_WINDOW_SIZE: rows kept by the real-time window (default: 100)
- LEDGER_REMOTE_THRESHOLD: window size above which filters run in the store (default: 500)
- LEDGER_PAGE_SIZE: rows per page (default: 10)
- LEDGER_HIDE_UNRESOLVED: hide rows whose buyer/referrer has no display name (default: true)
- LEDGER_ACTOR_ID: operator id recorded on audit entries (optional)
- LOG_LEVEL: logging level for the API process (default: INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import AsyncClient, acreate_client  # type: ignore[import-not-found]

from repositories.supabase_store import SupabaseDocumentStore

# Load environment variables from the .env file in the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise RuntimeError(f"Environment variable {name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    supabase_url: str
    supabase_key: str
    sales_table: str = "sales"
    users_table: str = "users"
    audit_table: str = "audit_logs"
    window_size: int = 100
    remote_threshold: int = 500
    page_size: int = 10
    hide_unresolved: bool = True
    actor_id: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "LedgerSettings":
        """
        Read settings from the environment (or an explicit mapping).

        Raises:
            RuntimeError: if SUPABASE_URL or SUPABASE_KEY is missing, or a
                numeric setting is not a positive integer
        """

        source: Mapping[str, str] = os.environ if env is None else env

        supabase_url = source.get("SUPABASE_URL")
        supabase_key = source.get("SUPABASE_KEY")

        if not supabase_url:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_URL. "
                "Set SUPABASE_URL to your Supabase project URL."
            )

        if not supabase_key:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_KEY. "
                "Set SUPABASE_KEY to your Supabase API key."
            )

        return cls(
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            sales_table=source.get("SALES_TABLE") or "sales",
            users_table=source.get("USERS_TABLE") or "users",
            audit_table=source.get("AUDIT_TABLE") or "audit_logs",
            window_size=_int_setting(source, "LEDGER_WINDOW_SIZE", 100),
            remote_threshold=_int_setting(source, "LEDGER_REMOTE_THRESHOLD", 500),
            page_size=_int_setting(source, "LEDGER_PAGE_SIZE", 10),
            hide_unresolved=(source.get("LEDGER_HIDE_UNRESOLVED") or "true").strip().lower() in _TRUE_VALUES,
            actor_id=source.get("LEDGER_ACTOR_ID") or None,
            log_level=(source.get("LOG_LEVEL") or "INFO").upper(),
        )


async def create_supabase_client(settings: LedgerSettings) -> AsyncClient:
    """Create the official async Supabase client for these settings."""

    return await acreate_client(settings.supabase_url, settings.supabase_key)


async def create_document_store(settings: LedgerSettings) -> SupabaseDocumentStore:
    client = await create_supabase_client(settings)
    return SupabaseDocumentStore(client)


__all__ = ["LedgerSettings", "create_supabase_client", "create_document_store"]
