"""Merge unit outcomes into one verdict.

This is the only place the overall verdict is decided. Precedence:
  1. any blocking issue (critical severity, or security category) → request_changes
  2. every reviewed unit approved, at least one reviewed, and the share of
     skipped/failed units within tolerance → approve
  3. otherwise → comment
"""

from __future__ import annotations

from argus_core.models import (
    CATEGORIES,
    SEVERITIES,
    SEVERITY_RANK,
    WHOLE_CHANGE,
    AggregatedResult,
    Issue,
    UnitOutcome,
    UnitStatus,
    Verdict,
)

_DEFAULT_UNIT_CONFIDENCE = 0.7


def _issue_priority(issue: Issue) -> tuple[int, int]:
    return (SEVERITY_RANK.get(issue.severity, len(SEVERITY_RANK)), 0 if issue.category == "security" else 1)


def determine_verdict(outcomes: list[UnitOutcome], skip_tolerance: float = 0.0) -> Verdict:
    reviewed = [o for o in outcomes if o.status is UnitStatus.SUCCESS]
    if any(issue.blocking for o in reviewed for issue in o.issues):
        return Verdict.REQUEST_CHANGES
    not_reviewed = len(outcomes) - len(reviewed)
    within_tolerance = not outcomes or not_reviewed / len(outcomes) <= skip_tolerance
    if reviewed and within_tolerance and all(o.verdict is Verdict.APPROVE for o in reviewed):
        return Verdict.APPROVE
    return Verdict.COMMENT


def compute_confidence(outcomes: list[UnitOutcome]) -> float:
    """Mean unit confidence, scaled down by the skipped share and by issue density.

    Adding skipped units never raises the result.
    """
    if not outcomes:
        return 0.0
    reviewed = [o for o in outcomes if o.status is UnitStatus.SUCCESS]
    if not reviewed:
        return 0.0
    base = sum(o.confidence if o.confidence is not None else _DEFAULT_UNIT_CONFIDENCE for o in reviewed) / len(
        reviewed
    )
    coverage = len(reviewed) / len(outcomes)
    density = sum(len(o.issues) for o in reviewed) / len(reviewed)
    return round(base * coverage / (1 + 0.05 * density), 2)


def _narrative(outcomes: list[UnitOutcome]) -> str:
    parts = []
    for o in outcomes:
        if o.status is not UnitStatus.SUCCESS or not o.feedback:
            continue
        if o.unit_id == WHOLE_CHANGE:
            parts.append(o.feedback)
        else:
            parts.append(f"**{o.unit_id}**: {o.feedback}")
    return "\n\n".join(parts)


def aggregate(
    outcomes: list[UnitOutcome],
    skip_tolerance: float = 0.0,
    chunked: bool = False,
    excluded_units: list[str] | None = None,
) -> AggregatedResult:
    """Pure and deterministic: counts are order-independent, per-unit order is preserved."""
    reviewed = [o for o in outcomes if o.status is UnitStatus.SUCCESS]

    severity_counts = {s: 0 for s in SEVERITIES}
    category_counts = {c: 0 for c in CATEGORIES}
    issues: list[Issue] = []
    for o in reviewed:
        for issue in o.issues:
            severity_counts[issue.severity] = severity_counts.get(issue.severity, 0) + 1
            category_counts[issue.category] = category_counts.get(issue.category, 0) + 1
            issues.append(issue)
    # sorted() is stable, so ties keep unit order then the oracle's own order.
    issues = sorted(issues, key=_issue_priority)

    positives: list[str] = []
    for o in reviewed:
        for p in o.positives:
            if p not in positives:
                positives.append(p)

    return AggregatedResult(
        overall_verdict=determine_verdict(outcomes, skip_tolerance),
        confidence=compute_confidence(outcomes),
        severity_counts=severity_counts,
        category_counts=category_counts,
        issues=issues,
        per_unit_summary=list(outcomes),
        narrative_text=_narrative(outcomes),
        skipped_count=sum(1 for o in outcomes if o.status is UnitStatus.SKIPPED),
        failed_count=sum(1 for o in outcomes if o.status is UnitStatus.FAILED),
        excluded_units=list(excluded_units or []),
        chunked=chunked,
        positives=positives,
    )
