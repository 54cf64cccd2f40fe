"""Tests for argus-store implementations."""

from __future__ import annotations

import sqlite3

import pytest

from argus_store.memory import MemoryStore
from argus_store.sqlite import SQLiteStore


class Clock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock, tmp_path):
    if request.param == "memory":
        yield MemoryStore(clock=clock)
        return
    s = SQLiteStore(db_path=str(tmp_path / "test.db"), clock=clock)
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Behaviour shared by every store
# ---------------------------------------------------------------------------


class TestStoreContract:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get("review:octo/app#1:abc") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self, store):
        await store.put("dedup:evt-1", "1700000000")
        assert await store.get("dedup:evt-1") == "1700000000"

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store):
        await store.put("k", "old")
        await store.put("k", "new")
        assert await store.get("k") == "new"

    @pytest.mark.asyncio
    async def test_value_expires_after_ttl(self, store, clock):
        await store.put("k", "v", ttl=10)
        clock.now += 9
        assert await store.get("k") == "v"
        clock.now += 1
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self, store, clock):
        await store.put("k", "v")
        clock.now += 10**9
        assert await store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_increment_counts_from_one(self, store):
        assert await store.increment("rate:octo:1", ttl=120) == 1
        assert await store.increment("rate:octo:1", ttl=120) == 2
        assert await store.increment("rate:octo:1", ttl=120) == 3

    @pytest.mark.asyncio
    async def test_increment_keeps_first_expiry(self, store, clock):
        await store.increment("c", ttl=10)
        clock.now += 8
        await store.increment("c", ttl=10)
        clock.now += 2
        assert await store.get("c") is None

    @pytest.mark.asyncio
    async def test_increment_restarts_after_expiry(self, store, clock):
        await store.increment("c", ttl=10)
        await store.increment("c", ttl=10)
        clock.now += 11
        assert await store.increment("c", ttl=10) == 1

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.put("k", "v")
        await store.delete("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, store):
        await store.delete("never-written")


# ---------------------------------------------------------------------------
# SQLiteStore
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "argus.db")
        first = SQLiteStore(db_path=path)
        await first.put("review:octo/app#1:abc", '{"output": {}}', ttl=3600)
        first.close()

        second = SQLiteStore(db_path=path)
        try:
            assert await second.get("review:octo/app#1:abc") == '{"output": {}}'
        finally:
            second.close()

    @pytest.mark.asyncio
    async def test_write_sweeps_expired_rows(self, tmp_path, clock):
        path = str(tmp_path / "argus.db")
        store = SQLiteStore(db_path=path, clock=clock)
        await store.put("old", "v", ttl=1)
        clock.now += 2
        await store.put("new", "v")
        store.close()

        conn = sqlite3.connect(path)
        try:
            keys = [row[0] for row in conn.execute("SELECT key FROM kv")]
        finally:
            conn.close()
        assert keys == ["new"]
