"""Data model of one review run.

ReviewRequest and AnalysisUnit live only for the duration of a run.
AggregatedResult and FormattedOutput are persisted inside a CacheEntry by
argus_core.idempotency, so they stay plain dataclasses of JSON-friendly values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Sentinel unit id used when the whole change is analysed in one oracle call.
WHOLE_CHANGE = "__whole_change__"

SEVERITIES = ("critical", "important", "minor")
CATEGORIES = ("bug", "security", "performance", "style", "improvement")

SEVERITY_RANK = {"critical": 0, "important": 1, "minor": 2}


class Verdict(str, Enum):
    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    COMMENT = "comment"

    @property
    def event(self) -> str:
        """The GitHub review event matching this verdict."""
        return self.name


class UnitStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ContextMetadata:
    title: str = ""
    author: str = ""
    base_branch: str = ""
    head_branch: str = ""
    description: str = ""

    def as_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "base_branch": self.base_branch,
            "head_branch": self.head_branch,
            "description": self.description,
        }


@dataclass(frozen=True)
class ReviewRequest:
    """One accepted notification. ``(target_id, revision_id)`` is the idempotency key."""

    tenant_id: str
    target_id: str  # "owner/repo#123"
    revision_id: str  # head SHA
    event_id: str
    raw_content_ref: str = ""  # URL of the change, informational only

    @property
    def key(self) -> tuple[str, str]:
        return (self.target_id, self.revision_id)


@dataclass(frozen=True)
class ChangedUnit:
    """One changed file as reported by the change source."""

    unit_id: str
    patch_text: str
    added_count: int = 0
    removed_count: int = 0


@dataclass(frozen=True)
class AnalysisUnit:
    unit_id: str
    content: str
    context: ContextMetadata = field(default_factory=ContextMetadata)


@dataclass(frozen=True)
class Issue:
    severity: str  # "critical" | "important" | "minor"
    category: str  # "bug" | "security" | "performance" | "style" | "improvement"
    message: str
    line: int | None = None
    path: str | None = None
    suggestion: str | None = None

    @property
    def blocking(self) -> bool:
        return self.severity == "critical" or self.category == "security"


@dataclass
class UnitOutcome:
    unit_id: str
    status: UnitStatus
    verdict: Verdict | None = None
    issues: list[Issue] = field(default_factory=list)
    raw_text: str = ""
    confidence: float | None = None
    positives: list[str] = field(default_factory=list)
    main_issues: list[str] = field(default_factory=list)
    feedback: str = ""
    reason: str | None = None  # why a unit was skipped or failed


@dataclass
class AggregatedResult:
    overall_verdict: Verdict
    confidence: float
    severity_counts: dict[str, int]
    category_counts: dict[str, int]
    issues: list[Issue]  # prioritised: most severe first
    per_unit_summary: list[UnitOutcome]
    narrative_text: str
    skipped_count: int = 0
    failed_count: int = 0
    excluded_units: list[str] = field(default_factory=list)
    chunked: bool = False
    positives: list[str] = field(default_factory=list)

    @property
    def reviewed_count(self) -> int:
        return sum(1 for o in self.per_unit_summary if o.status is UnitStatus.SUCCESS)


@dataclass(frozen=True)
class FormattedOutput:
    primary_message: str
    continuation_messages: tuple[str, ...] = ()
    truncated: bool = False

    @property
    def messages(self) -> list[str]:
        return [self.primary_message, *self.continuation_messages]


@dataclass
class CacheEntry:
    target_id: str
    revision_id: str
    result: AggregatedResult
    output: FormattedOutput
    published_artifact_id: int | str | None = None
    created_at: float = 0.0
    ttl: int = 0
