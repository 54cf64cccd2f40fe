"""Choose between one whole-change oracle call and a per-file fan-out.

    estimated size > max_monolithic_size  → chunked directly
    otherwise                              → monolithic attempt (with backoff)
        PayloadTooLargeError               → chunked
        any other error                    → propagates unchanged
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod

from argus_core.aggregator import aggregate
from argus_core.analyzer import UnitAnalyzer
from argus_core.config import PipelineSettings
from argus_core.errors import PayloadTooLargeError
from argus_core.models import (
    WHOLE_CHANGE,
    AggregatedResult,
    AnalysisUnit,
    ChangedUnit,
    ContextMetadata,
    ReviewRequest,
)
from argus_core.retry import RetryPolicy, Sleep, retry
from argus_core.scheduler import ConcurrencyScheduler
from argus_core.utils.code import is_code_file, is_excluded

logger = logging.getLogger(__name__)


class ChangeSource(ABC):
    """Where the content under review comes from."""

    @abstractmethod
    async def get_context(self, target_id: str) -> ContextMetadata:
        """Title, author and branches of the change."""

    @abstractmethod
    async def get_whole_diff(self, target_id: str) -> str:
        """The complete diff. Raises PayloadTooLargeError if the platform cannot provide it."""

    @abstractmethod
    async def get_changed_units(self, target_id: str) -> list[ChangedUnit]:
        """Per-file patches, in a stable order."""


def estimate_size(diff: str, context: ContextMetadata) -> int:
    return len(diff) + len(json.dumps(context.as_dict()))


def unit_context(change: ChangedUnit, context: ContextMetadata) -> ContextMetadata:
    return ContextMetadata(
        title=f"Review of {change.unit_id}",
        author=context.author,
        base_branch=context.base_branch,
        head_branch=context.head_branch,
        description=(
            f"Part of PR: {context.title}\nFile: {change.unit_id}\n"
            f"Changes: +{change.added_count} -{change.removed_count}"
        ),
    )


class SizeAwareOrchestrator:
    def __init__(
        self,
        source: ChangeSource,
        analyzer: UnitAnalyzer,
        settings: PipelineSettings,
        sleep: Sleep = asyncio.sleep,
    ):
        self.source = source
        self.analyzer = analyzer
        self.settings = settings
        self.policy = RetryPolicy(
            max_attempts=settings.unit_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )
        self.scheduler = ConcurrencyScheduler(
            analyzer, concurrency=settings.concurrent_unit_reviews, policy=self.policy, sleep=sleep
        )
        self._sleep = sleep

    async def run(self, request: ReviewRequest) -> AggregatedResult:
        target = request.target_id
        context = await self.source.get_context(target)

        try:
            diff = await self.source.get_whole_diff(target)
        except PayloadTooLargeError as e:
            logger.info("target=%s whole diff unavailable (%s); using file-based review", target, e)
            return await self._run_chunked(request, context)

        size = estimate_size(diff, context)
        if size > self.settings.max_monolithic_size:
            logger.info(
                "target=%s estimated size %d exceeds %d; using file-based review",
                target,
                size,
                self.settings.max_monolithic_size,
            )
            return await self._run_chunked(request, context)

        unit = AnalysisUnit(unit_id=WHOLE_CHANGE, content=diff, context=context)
        try:
            outcome = await retry(
                lambda: self.analyzer.analyze(unit),
                self.policy,
                label=f"target={target} whole-change",
                sleep=self._sleep,
            )
        except PayloadTooLargeError:
            logger.info("target=%s oracle rejected the whole diff as too large; switching to file-based review", target)
            return await self._run_chunked(request, context)

        return aggregate([outcome], skip_tolerance=self.settings.skip_tolerance)

    async def _run_chunked(self, request: ReviewRequest, context: ContextMetadata) -> AggregatedResult:
        changes = await self.source.get_changed_units(request.target_id)

        units: list[AnalysisUnit] = []
        excluded: list[str] = []
        for change in changes:
            if not change.patch_text:
                continue
            if is_excluded(change.unit_id, list(self.settings.exclude)) or not is_code_file(change.unit_id):
                excluded.append(change.unit_id)
                continue
            units.append(
                AnalysisUnit(unit_id=change.unit_id, content=change.patch_text, context=unit_context(change, context))
            )

        logger.info(
            "target=%s reviewing %d file(s) in batches of %d (%d excluded)",
            request.target_id,
            len(units),
            self.settings.concurrent_unit_reviews,
            len(excluded),
        )
        outcomes = await self.scheduler.run_all(units)
        return aggregate(outcomes, skip_tolerance=self.settings.skip_tolerance, chunked=True, excluded_units=excluded)
