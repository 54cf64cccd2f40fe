"""Bounded exponential backoff for async operations.

Used twice: around a single oracle call (per unit, and for the monolithic
attempt), and around a whole pipeline run. The two differ only in which
failures they consider retryable, so the predicate is a parameter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from argus_core.errors import UpstreamRateLimitedError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (1 = first retry): base * 2^(attempt-1), capped."""
    return min(base_delay * 2 ** (attempt - 1), max_delay)


async def retry(
    op: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    should_retry: Callable[[BaseException], bool] = is_retryable,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Await ``op()`` up to ``policy.max_attempts`` times.

    Non-retryable failures are re-raised at once without consuming further
    attempts. After the last attempt the last error is re-raised unchanged.
    No wall-clock deadline is enforced here.
    """
    attempt = 1
    while True:
        try:
            return await op()
        except Exception as e:
            if not should_retry(e):
                raise
            if attempt >= policy.max_attempts:
                logger.error("%s failed after %d attempts: %s", label, attempt, e)
                raise
            delay = backoff_delay(attempt, policy.base_delay, policy.max_delay)
            if isinstance(e, UpstreamRateLimitedError) and e.retry_after:
                delay = min(max(delay, e.retry_after), policy.max_delay)
            logger.warning(
                "%s error (attempt %d/%d): %s. Retrying in %.1fs...",
                label,
                attempt,
                policy.max_attempts,
                e,
                delay,
            )
            await sleep(delay)
            attempt += 1
