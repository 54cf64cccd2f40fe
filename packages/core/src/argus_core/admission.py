"""Admission control: drop repeated deliveries and enforce a per-tenant rate limit."""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable

from argus_core.keys import dedup_key, rate_key

if TYPE_CHECKING:
    from argus_store.base import BaseStore

logger = logging.getLogger(__name__)


class AdmissionResult(str, Enum):
    ADMITTED = "admitted"
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"


class AdmissionGate:
    """Write-then-process dedup plus a fixed-window counter per tenant.

    The dedup record is written before the rate check, so a delivery that was
    rate limited is not admitted on redelivery of the same event. The counter
    increment and the ceiling check are not atomic across concurrent callers;
    a tenant may be over-admitted by a small margin.
    """

    def __init__(
        self,
        store: BaseStore,
        rate_limit: int = 60,
        window_size_ms: int = 60_000,
        dedup_ttl: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.rate_limit = rate_limit
        self.window_size_ms = window_size_ms
        self.dedup_ttl = dedup_ttl
        self._clock = clock

    def window_id(self) -> int:
        return int(self._clock() * 1000) // self.window_size_ms

    async def admit(self, event_id: str, tenant_id: str) -> AdmissionResult:
        key = dedup_key(event_id)
        if await self.store.get(key) is not None:
            logger.info("event=%s duplicate delivery ignored", event_id)
            return AdmissionResult.DUPLICATE
        await self.store.put(key, str(int(self._clock())), ttl=self.dedup_ttl)

        # Counter outlives its window by one window so late readers still see it.
        window_ttl = max(2 * self.window_size_ms // 1000, 1)
        count = await self.store.increment(rate_key(tenant_id, self.window_id()), window_ttl)
        if count > self.rate_limit:
            logger.warning("tenant=%s rate limited (%d > %d per window)", tenant_id, count, self.rate_limit)
            return AdmissionResult.RATE_LIMITED
        return AdmissionResult.ADMITTED
