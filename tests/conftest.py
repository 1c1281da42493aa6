"""
Shared fixtures.

Every store test gets its own SQLite file under tmp_path, so tests are
isolated without needing a database server.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from foundling.store.kv import KVStore


class FakeClock:
    """Injectable clock. Starts at a fixed instant and only moves on advance()."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'foundling.db'}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def store(db_url, clock):
    """An open store on a fresh file, reading time from ``clock``."""
    async with KVStore(db_url, clock=clock) as kv:
        yield kv


@pytest_asyncio.fixture
async def live_store(db_url):
    """An open store on the wall clock, for tests that really sleep."""
    async with KVStore(db_url) as kv:
        yield kv
