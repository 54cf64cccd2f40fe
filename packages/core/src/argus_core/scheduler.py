"""Batch fan-out of analysis units with a hard ceiling on in-flight oracle calls."""

from __future__ import annotations

import asyncio
import logging

from argus_core.analyzer import UnitAnalyzer
from argus_core.errors import FatalError, PayloadTooLargeError, ReviewError
from argus_core.models import AnalysisUnit, UnitOutcome, UnitStatus
from argus_core.retry import RetryPolicy, Sleep, retry

logger = logging.getLogger(__name__)


def make_batches(units: list[AnalysisUnit], size: int) -> list[list[AnalysisUnit]]:
    return [units[i : i + size] for i in range(0, len(units), size)]


class ConcurrencyScheduler:
    """Runs units in sequential batches of ``concurrency``.

    Within a batch every unit is attempted concurrently; the next batch
    starts only once every call of the current one has settled. Outcomes
    come back in input order, one per unit. Only FatalError escapes.
    """

    def __init__(
        self,
        analyzer: UnitAnalyzer,
        concurrency: int = 3,
        policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.analyzer = analyzer
        self.concurrency = concurrency
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.batches_run = 0

    async def run_all(self, units: list[AnalysisUnit]) -> list[UnitOutcome]:
        outcomes: list[UnitOutcome] = []
        batches = make_batches(units, self.concurrency)
        for i, batch in enumerate(batches, 1):
            logger.info("batch %d/%d: %d unit(s)", i, len(batches), len(batch))
            results = await asyncio.gather(*(self._run_one(u) for u in batch), return_exceptions=True)
            self.batches_run += 1
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            outcomes.extend(results)
        return outcomes

    async def _run_one(self, unit: AnalysisUnit) -> UnitOutcome:
        try:
            return await retry(
                lambda: self.analyzer.analyze(unit),
                self.policy,
                label=f"unit={unit.unit_id}",
                sleep=self._sleep,
            )
        except FatalError:
            raise
        except PayloadTooLargeError as e:
            logger.warning("unit=%s too large to review; skipped", unit.unit_id)
            return UnitOutcome(unit_id=unit.unit_id, status=UnitStatus.SKIPPED, reason=f"payload too large: {e}")
        except ReviewError as e:
            logger.warning("unit=%s skipped after retries: %s", unit.unit_id, e)
            return UnitOutcome(unit_id=unit.unit_id, status=UnitStatus.SKIPPED, reason=f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.exception("unit=%s failed unexpectedly", unit.unit_id)
            return UnitOutcome(unit_id=unit.unit_id, status=UnitStatus.FAILED, reason=f"{type(e).__name__}: {e}")
