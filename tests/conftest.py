"""
Pytest configuration for ledger tests.

This file adds the project root (and this directory) to the Python path so
that tests can import domain, repositories, services, api and the in-memory
store, and provides the shared fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add the project root directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from fake_store import FakeDocumentStore  # noqa: E402
from repositories.client import LedgerSettings  # noqa: E402


@pytest.fixture
def store() -> FakeDocumentStore:
    fake = FakeDocumentStore()
    fake.put("users", "u1", {"name": "Alice"})
    fake.put("users", "u2", {"first_name": "Bob", "last_name": "Stone"})
    fake.put("users", "u3", {"email": "carol@example.com"})
    return fake


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(
        supabase_url="http://localhost:54321",
        supabase_key="test-key",
        window_size=100,
        remote_threshold=500,
        page_size=10,
        actor_id="admin-1",
    )
