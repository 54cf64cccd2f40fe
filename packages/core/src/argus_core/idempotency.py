"""Cache of completed runs keyed by (target, revision).

A stored entry means the pipeline already produced and published a review
for that revision. Replays and redeliveries read it back instead of calling
the oracle again.

Entries are JSON so that any BaseStore backend can hold them.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from typing import TYPE_CHECKING, Callable

from argus_core.keys import DEFAULT_TTLS, failure_key, review_key
from argus_core.models import (
    AggregatedResult,
    CacheEntry,
    FormattedOutput,
    Issue,
    ReviewRequest,
    UnitOutcome,
    UnitStatus,
    Verdict,
)

if TYPE_CHECKING:
    from argus_store.base import BaseStore

logger = logging.getLogger(__name__)


def _outcome_from_dict(data: dict) -> UnitOutcome:
    return UnitOutcome(
        unit_id=data["unit_id"],
        status=UnitStatus(data["status"]),
        verdict=Verdict(data["verdict"]) if data.get("verdict") else None,
        issues=[Issue(**i) for i in data.get("issues", [])],
        raw_text=data.get("raw_text", ""),
        confidence=data.get("confidence"),
        positives=list(data.get("positives", [])),
        main_issues=list(data.get("main_issues", [])),
        feedback=data.get("feedback", ""),
        reason=data.get("reason"),
    )


def result_to_dict(result: AggregatedResult) -> dict:
    data = asdict(result)
    data["overall_verdict"] = result.overall_verdict.value
    for unit, outcome in zip(data["per_unit_summary"], result.per_unit_summary):
        unit["status"] = outcome.status.value
        unit["verdict"] = outcome.verdict.value if outcome.verdict else None
        # raw oracle replies are large and not needed to republish
        unit["raw_text"] = ""
    return data


def result_from_dict(data: dict) -> AggregatedResult:
    return AggregatedResult(
        overall_verdict=Verdict(data["overall_verdict"]),
        confidence=data["confidence"],
        severity_counts=dict(data["severity_counts"]),
        category_counts=dict(data["category_counts"]),
        issues=[Issue(**i) for i in data["issues"]],
        per_unit_summary=[_outcome_from_dict(o) for o in data["per_unit_summary"]],
        narrative_text=data["narrative_text"],
        skipped_count=data.get("skipped_count", 0),
        failed_count=data.get("failed_count", 0),
        excluded_units=list(data.get("excluded_units", [])),
        chunked=data.get("chunked", False),
        positives=list(data.get("positives", [])),
    )


def entry_to_json(entry: CacheEntry) -> str:
    return json.dumps(
        {
            "target_id": entry.target_id,
            "revision_id": entry.revision_id,
            "result": result_to_dict(entry.result),
            "output": {
                "primary_message": entry.output.primary_message,
                "continuation_messages": list(entry.output.continuation_messages),
                "truncated": entry.output.truncated,
            },
            "published_artifact_id": entry.published_artifact_id,
            "created_at": entry.created_at,
            "ttl": entry.ttl,
        }
    )


def entry_from_json(raw: str) -> CacheEntry:
    data = json.loads(raw)
    output = data["output"]
    return CacheEntry(
        target_id=data["target_id"],
        revision_id=data["revision_id"],
        result=result_from_dict(data["result"]),
        output=FormattedOutput(
            primary_message=output["primary_message"],
            continuation_messages=tuple(output.get("continuation_messages", [])),
            truncated=output.get("truncated", False),
        ),
        published_artifact_id=data.get("published_artifact_id"),
        created_at=data.get("created_at", 0.0),
        ttl=data.get("ttl", 0),
    )


class IdempotencyCache:
    def __init__(
        self,
        store: BaseStore,
        ttl: int = DEFAULT_TTLS["review"],
        failure_ttl: int = DEFAULT_TTLS["failure"],
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl = ttl
        self.failure_ttl = failure_ttl
        self._clock = clock

    async def get(self, target_id: str, revision_id: str) -> CacheEntry | None:
        raw = await self.store.get(review_key(target_id, revision_id))
        if raw is None:
            return None
        try:
            return entry_from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            # A corrupt entry is treated as a miss; the next run overwrites it.
            logger.warning("Ignoring unreadable cache entry for %s@%s: %s", target_id, revision_id, e)
            return None

    async def put(
        self,
        target_id: str,
        revision_id: str,
        result: AggregatedResult,
        output: FormattedOutput,
        artifact_id: int | str | None,
    ) -> CacheEntry:
        entry = CacheEntry(
            target_id=target_id,
            revision_id=revision_id,
            result=result,
            output=output,
            published_artifact_id=artifact_id,
            created_at=self._clock(),
            ttl=self.ttl,
        )
        await self.store.put(review_key(target_id, revision_id), entry_to_json(entry), ttl=self.ttl)
        return entry

    async def record_failure(self, request: ReviewRequest, error: BaseException, attempts: int) -> dict:
        record = {
            "target_id": request.target_id,
            "revision_id": request.revision_id,
            "event_id": request.event_id,
            "attempts": attempts,
            "last_error": f"{type(error).__name__}: {error}",
            "failed_at": self._clock(),
        }
        await self.store.put(
            failure_key(request.target_id, request.revision_id), json.dumps(record), ttl=self.failure_ttl
        )
        return record

    async def get_failure(self, target_id: str, revision_id: str) -> dict | None:
        raw = await self.store.get(failure_key(target_id, revision_id))
        return json.loads(raw) if raw is not None else None

    async def invalidate(self, target_id: str, revision_id: str) -> None:
        """Forget the cached review and failure record so the next delivery runs again."""
        await self.store.delete(review_key(target_id, revision_id))
        await self.store.delete(failure_key(target_id, revision_id))
        logger.info("Invalidated cache for %s@%s", target_id, revision_id[:7])
