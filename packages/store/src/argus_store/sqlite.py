"""SQLiteStore — local file-based key-value store.

Why SQLite as the persistent store:
- Batteries included: ships with Python, no extra dependencies.
- Survives restarts, so dedup records and cached reviews outlive one CLI run.
- Expiry is a column, not a background job: expired rows are ignored on read
  and swept opportunistically on write.

Schema:
  kv — one row per key; ``expires_at`` is a UNIX timestamp or NULL (no TTL).
"""

from __future__ import annotations

import sqlite3
import time
from typing import Callable

from argus_store.base import BaseStore


_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL
);
CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv (expires_at);
"""


class SQLiteStore(BaseStore):
    """Stores keys in a local SQLite database file.

    The database file path defaults to `.argus.db` in the current working
    directory. Configure via .argus.yml: `store_path: /path/to/argus.db`.
    Queries are local and short, so they run inline on the event loop.
    """

    def __init__(self, db_path: str = ".argus.db", clock: Callable[[], float] = time.time):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        self._clock = clock

    def _row(self, key: str, now: float) -> sqlite3.Row | None:
        row = self._conn.execute("SELECT value, expires_at FROM kv WHERE key=?", (key,)).fetchone()
        if row is None or (row["expires_at"] is not None and row["expires_at"] <= now):
            return None
        return row

    async def get(self, key: str) -> str | None:
        row = self._row(key, self._clock())
        return row["value"] if row is not None else None

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        now = self._clock()
        expires_at = now + ttl if ttl else None
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, expires_at),
            )
            self._conn.execute("DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?", (now,))

    async def increment(self, key: str, ttl: int) -> int:
        now = self._clock()
        with self._conn:
            row = self._row(key, now)
            if row is None:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, expires_at) VALUES (?, '1', ?)",
                    (key, now + ttl),
                )
                return 1
            count = int(row["value"]) + 1
            self._conn.execute("UPDATE kv SET value=? WHERE key=?", (str(count), key))
            return count

    async def delete(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM kv WHERE key=?", (key,))

    def close(self) -> None:
        self._conn.close()
