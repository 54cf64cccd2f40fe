"""End-to-end review run: admission, cache, orchestration, formatting, publishing.

    process(request)
      admission gate          duplicate / rate limited → stop
      pipeline retrier ┐
        cache lookup   │      hit → republish only if our artifact is gone
        orchestrator   │
        formatter      │
        decide+publish │
        cache write    ┘
      exhausted               → failure record, nothing published

Admission runs outside the retrier so a retried attempt never meets its own
dedup record. A retried attempt reuses the result and formatted output of an
earlier attempt in the same run, so a failure while publishing never costs
a second round of oracle calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from argus_core.admission import AdmissionGate, AdmissionResult
from argus_core.analyzer import UnitAnalyzer
from argus_core.breaker import CircuitBreaker
from argus_core.config import PipelineSettings, load_guidelines
from argus_core.errors import ConfigError, FatalError
from argus_core.formatter import SIGNATURE, format_output
from argus_core.idempotency import IdempotencyCache
from argus_core.models import AggregatedResult, CacheEntry, ReviewRequest
from argus_core.orchestrator import ChangeSource, SizeAwareOrchestrator
from argus_core.providers.anthropic import AnthropicReviewer
from argus_core.providers.base import BaseReviewer
from argus_core.providers.openai import GitHubModelsReviewer, OpenAIReviewer
from argus_core.publisher import Publisher, decide, inline_comments, publish_output
from argus_core.retry import RetryPolicy, Sleep, retry

if TYPE_CHECKING:
    from argus_store.base import BaseStore

logger = logging.getLogger(__name__)

_PROVIDERS = {
    "openai": (OpenAIReviewer, "openai_api_key", "OPENAI_API_KEY"),
    "anthropic": (AnthropicReviewer, "anthropic_api_key", "ANTHROPIC_API_KEY"),
    "github": (GitHubModelsReviewer, "github_token", "GITHUB_TOKEN"),
}


def get_reviewer(config: dict) -> BaseReviewer:
    """Build the configured oracle provider with its own circuit breaker."""
    model = config["model"]
    if model not in _PROVIDERS:
        raise ConfigError(f"Unknown model provider: {model!r}. Choose one of: {', '.join(_PROVIDERS)}.")
    cls, key_name, env_var = _PROVIDERS[model]
    api_key = config.get(key_name)
    if not api_key:
        raise ConfigError(f"{env_var} is not set; it is required for model provider {model!r}.")
    breaker = CircuitBreaker(
        model,
        threshold=int(config.get("breaker_failure_threshold", 5)),
        reset_timeout=float(config.get("breaker_reset_timeout", 60.0)),
    )
    return cls(
        api_key=api_key,
        model=config.get("model_name"),
        guidelines=load_guidelines(config),
        breaker=breaker,
    )


class RunStatus(str, Enum):
    PUBLISHED = "published"
    REPUBLISHED = "republished"  # cached review posted again
    UNCHANGED = "unchanged"  # cached review still live, nothing posted
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass
class RunReport:
    status: RunStatus
    request: ReviewRequest
    artifact_id: int | str | None = None
    result: AggregatedResult | None = None
    attempts: int = 0


class ReviewPipeline:
    def __init__(
        self,
        source: ChangeSource,
        oracle,
        publisher: Publisher,
        store: BaseStore,
        settings: PipelineSettings | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or PipelineSettings()
        self.publisher = publisher
        self.gate = AdmissionGate(
            store,
            rate_limit=self.settings.rate_limit_per_window,
            window_size_ms=self.settings.window_size_ms,
            dedup_ttl=self.settings.dedup_ttl,
            clock=clock,
        )
        self.cache = IdempotencyCache(
            store, ttl=self.settings.cache_ttl, failure_ttl=self.settings.failure_ttl, clock=clock
        )
        self.orchestrator = SizeAwareOrchestrator(source, UnitAnalyzer(oracle), self.settings, sleep=sleep)
        self.policy = RetryPolicy(
            max_attempts=self.settings.pipeline_max_attempts,
            base_delay=self.settings.retry_base_delay,
            max_delay=self.settings.retry_max_delay,
        )
        self._sleep = sleep

    async def process(self, request: ReviewRequest) -> RunReport:
        admission = await self.gate.admit(request.event_id, request.tenant_id)
        if admission is AdmissionResult.DUPLICATE:
            return RunReport(RunStatus.DUPLICATE, request)
        if admission is AdmissionResult.RATE_LIMITED:
            return RunReport(RunStatus.RATE_LIMITED, request)
        return await self.run(request)

    async def run(self, request: ReviewRequest) -> RunReport:
        """Run the pipeline under the retrier, bypassing admission."""
        attempts = 0
        progress: dict = {}

        async def attempt() -> RunReport:
            nonlocal attempts
            attempts += 1
            return await self._run_once(request, progress)

        try:
            report = await retry(
                attempt,
                self.policy,
                label=f"target={request.target_id} revision={request.revision_id[:7]} pipeline",
                should_retry=lambda e: not isinstance(e, FatalError),
                sleep=self._sleep,
            )
        except FatalError as e:
            await self.cache.record_failure(request, e, attempts)
            logger.error("target=%s fatal error, not retrying: %s", request.target_id, e)
            raise
        except Exception as e:
            record = await self.cache.record_failure(request, e, attempts)
            logger.error(
                "target=%s revision=%s run failed after %d attempt(s); nothing published: %s",
                request.target_id,
                request.revision_id[:7],
                attempts,
                record["last_error"],
            )
            return RunReport(RunStatus.FAILED, request, attempts=attempts)

        report.attempts = attempts
        return report

    async def _run_once(self, request: ReviewRequest, progress: dict) -> RunReport:
        """One attempt. ``progress`` carries finished steps over to the next attempt."""
        target, revision = request.key
        if "result" not in progress:
            cached = await self.cache.get(target, revision)
            if cached is not None:
                return await self._republish(request, cached)
            result = await self.orchestrator.run(request)
            progress["output"] = format_output(
                result,
                limit=self.settings.platform_message_limit,
                buffer=self.settings.continuation_buffer,
                max_continuations=self.settings.max_continuation_messages,
            )
            progress["result"] = result
        else:
            logger.info("target=%s revision=%s resuming with the result of an earlier attempt", target, revision[:7])

        result, output = progress["result"], progress["output"]
        if "artifact_id" not in progress:
            decision = await decide(self.publisher, target, revision, self.settings.update_existing_results)
            progress["artifact_id"] = await publish_output(
                self.publisher, target, output, result.overall_verdict, decision, inline_comments(result.issues)
            )
        artifact_id = progress["artifact_id"]
        await self.cache.put(target, revision, result, output, artifact_id)
        return RunReport(RunStatus.PUBLISHED, request, artifact_id=artifact_id, result=result)

    async def _republish(self, request: ReviewRequest, cached: CacheEntry) -> RunReport:
        target, revision = request.key
        live = await self.publisher.find_existing(target, SIGNATURE)
        if cached.published_artifact_id is not None and live == cached.published_artifact_id:
            logger.info("target=%s revision=%s cached review still published; nothing to do", target, revision[:7])
            return RunReport(
                RunStatus.UNCHANGED, request, artifact_id=cached.published_artifact_id, result=cached.result
            )

        logger.info("target=%s revision=%s republishing cached review", target, revision[:7])
        decision = await decide(self.publisher, target, revision, self.settings.update_existing_results)
        artifact_id = await publish_output(
            self.publisher,
            target,
            cached.output,
            cached.result.overall_verdict,
            decision,
            inline_comments(cached.result.issues),
        )
        await self.cache.put(target, revision, cached.result, cached.output, artifact_id)
        return RunReport(RunStatus.REPUBLISHED, request, artifact_id=artifact_id, result=cached.result)
