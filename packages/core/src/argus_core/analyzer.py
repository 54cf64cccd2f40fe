"""Single-unit analysis: one oracle call, one UnitOutcome."""

from __future__ import annotations

import logging
from typing import Protocol

from argus_core.models import WHOLE_CHANGE, AnalysisUnit, ContextMetadata, Issue, UnitOutcome, UnitStatus, Verdict
from argus_core.parsing import Narrative, Parsed, parse_unit_response

logger = logging.getLogger(__name__)


class Oracle(Protocol):
    async def analyze(self, content: str, context: ContextMetadata) -> str: ...


def parse_failure_issue(unit_id: str, reason: str) -> Issue:
    return Issue(
        severity="minor",
        category="improvement",
        message=f"The review for this unit could not be interpreted ({reason}); please review it manually.",
        path=None if unit_id == WHOLE_CHANGE else unit_id,
    )


class UnitAnalyzer:
    """Sends a unit to the oracle and classifies the reply.

    Upstream failures propagate as ReviewError subclasses so the caller's
    retrier can decide what to do. A reply that cannot be interpreted is not
    a failure: it becomes a neutral Comment outcome with one synthetic issue.
    """

    def __init__(self, oracle: Oracle):
        self.oracle = oracle

    async def analyze(self, unit: AnalysisUnit) -> UnitOutcome:
        raw = await self.oracle.analyze(unit.content, unit.context)
        default_path = None if unit.unit_id == WHOLE_CHANGE else unit.unit_id
        parsed = parse_unit_response(raw, default_path=default_path)

        if isinstance(parsed, Parsed):
            r = parsed.response
            return UnitOutcome(
                unit_id=unit.unit_id,
                status=UnitStatus.SUCCESS,
                verdict=r.verdict,
                issues=r.issues,
                raw_text=raw,
                confidence=r.confidence,
                positives=r.positives,
                main_issues=r.main_issues,
                feedback=r.feedback,
            )

        if isinstance(parsed, Narrative):
            logger.info("unit=%s oracle replied with prose; treating as a comment", unit.unit_id)
            return UnitOutcome(
                unit_id=unit.unit_id,
                status=UnitStatus.SUCCESS,
                verdict=Verdict.COMMENT,
                raw_text=raw,
                feedback=parsed.text,
            )

        logger.warning("unit=%s unparseable oracle reply: %s", unit.unit_id, parsed.reason)
        return UnitOutcome(
            unit_id=unit.unit_id,
            status=UnitStatus.SUCCESS,
            verdict=Verdict.COMMENT,
            issues=[parse_failure_issue(unit.unit_id, parsed.reason)],
            raw_text=raw,
            reason=parsed.reason,
        )
