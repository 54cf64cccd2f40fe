"""Turn the oracle's free-form reply into a typed result.

Exactly three shapes are recognised:

    Parsed(response)          — a JSON object with a ``summary`` and ``comments``
    Narrative(text)           — Markdown prose that carries no JSON object at all
    Unparseable(raw, reason)  — anything else (empty, broken JSON, wrong schema)

The JSON object is located by bracket matching rather than a greedy regex so
that prose or a second object after the first one does not corrupt it.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Union

from argus_core.models import CATEGORIES, SEVERITIES, Issue, Verdict

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_MARKDOWN_HINT_RE = re.compile(r"^\s*(#{1,6}\s|[-*]\s|\d+\.\s|>\s)", re.MULTILINE)

_SEVERITY_ALIASES = {
    "major": "important",
    "high": "critical",
    "medium": "important",
    "low": "minor",
    "nitpick": "minor",
}
_VERDICT_ALIASES = {"approved": "approve", "changes_requested": "request_changes", "request changes": "request_changes"}


@dataclass
class UnitResponse:
    verdict: Verdict
    confidence: float | None
    issues: list[Issue] = field(default_factory=list)
    main_issues: list[str] = field(default_factory=list)
    positives: list[str] = field(default_factory=list)
    feedback: str = ""


@dataclass(frozen=True)
class Parsed:
    response: UnitResponse


@dataclass(frozen=True)
class Narrative:
    text: str


@dataclass(frozen=True)
class Unparseable:
    raw_text: str
    reason: str


ParseResult = Union[Parsed, Narrative, Unparseable]


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring of ``text``, or None.

    Braces inside JSON string literals (including escaped quotes) are ignored.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def normalize_severity(value) -> str:
    sev = str(value or "").strip().lower()
    sev = _SEVERITY_ALIASES.get(sev, sev)
    return sev if sev in SEVERITIES else "minor"


def normalize_category(value) -> str:
    cat = str(value or "").strip().lower()
    return cat if cat in CATEGORIES else "improvement"


def _to_verdict(value) -> Verdict | None:
    v = str(value or "").strip().lower()
    v = _VERDICT_ALIASES.get(v, v)
    try:
        return Verdict(v)
    except ValueError:
        return None


def _to_line(value) -> int | None:
    try:
        line = int(value)
    except (TypeError, ValueError):
        return None
    return line if line > 0 else None


def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def _build_response(data: dict, default_path: str | None) -> UnitResponse | str:
    """Validate a decoded object; return a UnitResponse or the reason it was rejected."""
    summary = data.get("summary")
    comments = data.get("comments")
    if not isinstance(summary, dict):
        return "missing 'summary' object"
    if not isinstance(comments, list):
        return "missing 'comments' list"

    verdict = _to_verdict(summary.get("verdict"))
    if verdict is None:
        return f"unknown verdict {summary.get('verdict')!r}"

    confidence = summary.get("confidence")
    try:
        confidence = min(max(float(confidence), 0.0), 1.0) if confidence is not None else None
    except (TypeError, ValueError):
        confidence = None

    issues = []
    for c in comments:
        if not isinstance(c, dict):
            continue
        message = str(c.get("message") or c.get("comment") or "").strip()
        if not message:
            continue
        suggestion = c.get("suggestion")
        issues.append(
            Issue(
                severity=normalize_severity(c.get("severity")),
                category=normalize_category(c.get("category")),
                message=message,
                line=_to_line(c.get("line")),
                path=str(c.get("file") or default_path or "") or None,
                suggestion=str(suggestion) if suggestion else None,
            )
        )

    return UnitResponse(
        verdict=verdict,
        confidence=confidence,
        issues=issues,
        main_issues=_str_list(summary.get("mainIssues")),
        positives=_str_list(summary.get("positives")),
        feedback=str(data.get("overallFeedback") or "").strip(),
    )


def parse_unit_response(raw: str, default_path: str | None = None) -> ParseResult:
    """Classify and decode one oracle reply.

    ``default_path`` fills in ``Issue.path`` for comments that omit ``file``
    (per-file units know their own path).
    """
    text = (raw or "").strip()
    if not text:
        return Unparseable(raw or "", "empty response")

    cleaned = _FENCE_RE.sub("", text).strip()
    candidate = extract_json_object(cleaned)
    if candidate is None:
        if _MARKDOWN_HINT_RE.search(cleaned) and "{" not in cleaned:
            return Narrative(cleaned)
        return Unparseable(raw, "no JSON object found")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Oracle reply is not valid JSON (%s): %s", e, text[:200])
        return Unparseable(raw, f"invalid JSON: {e.msg}")

    built = _build_response(data, default_path)
    if isinstance(built, str):
        logger.warning("Oracle reply has an unexpected structure (%s): %s", built, text[:200])
        return Unparseable(raw, built)
    return Parsed(built)
