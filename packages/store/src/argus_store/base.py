"""Abstract key-value store interface.

The review pipeline keeps three kinds of state outside a single run: cached
results, dedup records and rate-limit windows. All of them live behind this
interface so the backend (in-memory, SQLite, a hosted KV service) is
swappable without touching argus_core.

Semantics are weak: at-least-once writes, no cross-key
transactions, and ``increment`` is not required to be atomic across
processes. Callers only ever write the same value for the same key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None if absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl`` seconds (None = never)."""

    @abstractmethod
    async def increment(self, key: str, ttl: int) -> int:
        """Add one to the counter at ``key`` and return the new count.

        A missing or expired counter starts again from zero and gets a fresh ``ttl``.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional — subclasses that need cleanup should override this.
        """
