"""MemoryStore — process-local store for tests and one-shot CLI runs.

State disappears with the process, so dedup records and cached reviews do
not survive a restart. Use SQLiteStore when that matters.
"""

from __future__ import annotations

import time
from typing import Callable

from argus_store.base import BaseStore


class MemoryStore(BaseStore):
    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: dict[str, tuple[str, float | None]] = {}
        self._clock = clock

    def _live(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def increment(self, key: str, ttl: int) -> int:
        current = self._live(key)
        if current is None:
            self._data[key] = ("1", self._clock() + ttl)
            return 1
        count = int(current) + 1
        self._data[key] = (str(count), self._data[key][1])
        return count

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
