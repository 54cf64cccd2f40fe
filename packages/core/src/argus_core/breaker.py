"""Per-client circuit breaker for the oracle.

The state is a plain dataclass owned by whoever constructs the breaker,
usually one oracle provider instance. Two pipelines share breaker state
only when they are handed the same provider.

States:
    closed    → calls allowed; failures counted
    open      → calls rejected until ``reset_timeout`` has elapsed
    half_open → one trial call allowed; success closes, failure re-opens
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from argus_core.errors import TransientUpstreamError

logger = logging.getLogger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


@dataclass
class BreakerState:
    failure_count: int = 0
    last_failure_at: float | None = None
    state: str = CLOSED


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        threshold: int = 5,
        reset_timeout: float = 60.0,
        state: BreakerState | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self.state = state if state is not None else BreakerState()
        self._clock = clock

    def before_call(self) -> None:
        """Raise TransientUpstreamError if the circuit is open."""
        s = self.state
        if s.state != OPEN:
            return
        elapsed = self._clock() - (s.last_failure_at or 0.0)
        if elapsed >= self.reset_timeout:
            s.state = HALF_OPEN
            logger.info("circuit=%s half-open after %.1fs", self.name, elapsed)
            return
        raise TransientUpstreamError(f"circuit {self.name} is open ({s.failure_count} consecutive failures)")

    def record_success(self) -> None:
        if self.state.state != CLOSED:
            logger.info("circuit=%s closed", self.name)
        self.state.failure_count = 0
        self.state.state = CLOSED

    def record_failure(self) -> None:
        s = self.state
        s.failure_count += 1
        s.last_failure_at = self._clock()
        if s.state == HALF_OPEN or s.failure_count >= self.threshold:
            if s.state != OPEN:
                logger.warning("circuit=%s opened after %d failures", self.name, s.failure_count)
            s.state = OPEN
