"""Render an AggregatedResult to Markdown and fit it into platform-sized messages.

format_output() is a pure function of its inputs: formatting the same result
twice yields identical messages, which is what lets a cached FormattedOutput
be republished verbatim.
"""

from __future__ import annotations

import re

from argus_core.errors import ConfigError
from argus_core.models import WHOLE_CHANGE, AggregatedResult, FormattedOutput, Issue, UnitStatus, Verdict

# Hidden marker that identifies our own artifacts on the target.
SIGNATURE = "<!-- argus-review -->"

PLATFORM_LIMIT = 65_536
CONTINUATION_BUFFER = 200
MAX_CONTINUATIONS = 5

CONTINUED_NOTICE = (
    "\n\n---\n\n_This review exceeds the size of a single message "
    "and continues in separate comments on this pull request._"
)
TRUNCATION_NOTICE = (
    "\n\n---\n\n**Review truncated**: the remaining content was omitted because it exceeds the message size limit."
)

_PARAGRAPH_RE = re.compile(r"\n{2,}")

_VERDICT_TEXT = {
    Verdict.APPROVE: "Approved",
    Verdict.REQUEST_CHANGES: "Changes requested",
    Verdict.COMMENT: "Commented",
}

_VERDICT_LINE = {
    Verdict.APPROVE: "No blocking issues found. The changes look good.",
    Verdict.REQUEST_CHANGES: "Blocking issues found. Changes are required before merging.",
    Verdict.COMMENT: "Review completed with comments. Please look at the feedback below.",
}


def part_header(part: int, total: int) -> str:
    return f"## Review continued (part {part} of {total})\n\n"


def _location(issue: Issue) -> str:
    if issue.path and issue.line:
        return f"`{issue.path}:{issue.line}` "
    if issue.path:
        return f"`{issue.path}` "
    if issue.line:
        return f"line {issue.line} "
    return ""


def _render_issue(issue: Issue) -> str:
    text = f"- **[{issue.severity.upper()}]** {_location(issue)}({issue.category}) {issue.message}"
    if issue.suggestion:
        text += f"\n\n  ```suggestion\n{issue.suggestion}\n  ```"
    return text


def render_inline_comment(issue: Issue) -> str:
    """Body of a comment anchored to the issue's line; the location is implied by the anchor."""
    text = f"**[{issue.severity.upper()}]** ({issue.category}) {issue.message}"
    if issue.suggestion:
        text += f"\n\n```suggestion\n{issue.suggestion}\n```"
    return text


def render_report(result: AggregatedResult) -> str:
    """Build the full review body, signature marker first."""
    lines = [SIGNATURE, "## Argus review\n"]

    verdict = result.overall_verdict
    lines.append(f"> **{_VERDICT_TEXT[verdict]}** · confidence {round(result.confidence * 100)}%")
    lines.append(f"> {_VERDICT_LINE[verdict]}\n")

    unit_word = "file(s)" if result.chunked else "change set(s)"
    total_issues = len(result.issues)
    lines.append(
        f"**{result.reviewed_count}** {unit_word} reviewed"
        + (f", **{result.skipped_count}** skipped" if result.skipped_count else "")
        + (f", **{result.failed_count}** failed" if result.failed_count else "")
        + (f", **{len(result.excluded_units)}** excluded" if result.excluded_units else "")
        + f" · **{total_issues}** issue(s)\n"
    )

    if total_issues:
        sc = result.severity_counts
        lines.append("| Critical | Important | Minor | Security | Bugs |")
        lines.append("|:--------:|:---------:|:-----:|:--------:|:----:|")
        lines.append(
            f"| {sc.get('critical', 0)} | {sc.get('important', 0)} | {sc.get('minor', 0)} "
            f"| {result.category_counts.get('security', 0)} | {result.category_counts.get('bug', 0)} |\n"
        )

        lines.append("### Issues\n")
        lines.append("\n\n".join(_render_issue(i) for i in result.issues) + "\n")

    concerns = list(dict.fromkeys(c for o in result.per_unit_summary for c in o.main_issues))
    if concerns:
        lines.append("### Key concerns\n")
        lines.append("\n".join(f"- {c}" for c in concerns) + "\n")

    if result.positives:
        lines.append("### What looks good\n")
        lines.append("\n".join(f"- {p}" for p in result.positives) + "\n")

    if result.chunked and result.per_unit_summary:
        lines.append("### Per-file results\n")
        lines.append("| File | Status | Issues |")
        lines.append("|------|--------|:------:|")
        for o in result.per_unit_summary:
            if o.status is UnitStatus.SUCCESS:
                status = o.verdict.value if o.verdict else "reviewed"
                count = str(len(o.issues))
            else:
                status = o.status.value
                count = "n/a"
            lines.append(f"| `{o.unit_id}` | {status} | {count} |")
        lines.append("")

    if result.narrative_text:
        lines.append("### Feedback\n")
        lines.append(result.narrative_text + "\n")

    not_reviewed = [o for o in result.per_unit_summary if o.status is not UnitStatus.SUCCESS]
    if not_reviewed:
        lines.append("### Not reviewed\n")
        for o in not_reviewed:
            name = "whole change" if o.unit_id == WHOLE_CHANGE else f"`{o.unit_id}`"
            lines.append(f"- {name}: {o.reason or o.status.value}")
        lines.append("")

    if result.excluded_units:
        lines.append(f"_Excluded by configuration: {', '.join(f'`{u}`' for u in result.excluded_units)}_\n")

    return "\n".join(lines).rstrip() + "\n"


def _split_long(paragraph: str, limit: int) -> list[str]:
    """Break one oversized paragraph at line boundaries, slicing single lines if needed."""
    pieces: list[str] = []
    current = ""
    for line in paragraph.split("\n"):
        while len(line) > limit:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) <= limit:
            current = candidate
        else:
            pieces.append(current)
            current = line
    if current:
        pieces.append(current)
    return pieces


def pack_paragraphs(text: str, limit: int) -> list[str]:
    """Greedily pack paragraphs into chunks of at most ``limit`` characters."""
    chunks: list[str] = []
    current = ""
    for paragraph in _PARAGRAPH_RE.split(text.strip()):
        if not paragraph.strip():
            continue
        for piece in _split_long(paragraph, limit) if len(paragraph) > limit else [paragraph]:
            candidate = f"{current}\n\n{piece}" if current else piece
            if len(candidate) <= limit:
                current = candidate
            else:
                chunks.append(current)
                current = piece
    if current:
        chunks.append(current)
    return chunks


def message_overhead(max_continuations: int = MAX_CONTINUATIONS) -> int:
    """Largest header plus notice any single part can carry."""
    parts = 1 + max_continuations
    return len(part_header(parts, parts)) + max(len(CONTINUED_NOTICE), len(TRUNCATION_NOTICE))


def split_message(
    text: str,
    limit: int = PLATFORM_LIMIT,
    buffer: int = CONTINUATION_BUFFER,
    max_continuations: int = MAX_CONTINUATIONS,
) -> FormattedOutput:
    """Fit ``text`` into a primary message plus at most ``max_continuations`` more.

    Content is packed into ``limit`` minus the larger of ``buffer`` and the
    part overhead, so headers and notices never displace content.
    Every returned message is at most ``limit`` characters. When the content
    needs more parts than allowed, the last kept part ends with a truncation
    notice and ``truncated`` is set.
    """
    if len(text) <= limit:
        return FormattedOutput(primary_message=text)

    room = limit - max(buffer, message_overhead(max_continuations))
    if room < 1:
        raise ConfigError(f"message limit {limit} leaves no room for content after part headers and notices")
    chunks = pack_paragraphs(text, room)
    max_parts = 1 + max_continuations
    truncated = len(chunks) > max_parts
    chunks = chunks[:max_parts]
    total = len(chunks)

    messages = []
    for i, chunk in enumerate(chunks):
        prefix = part_header(i + 1, total) if i else ""
        if truncated and i == total - 1:
            suffix = TRUNCATION_NOTICE
        elif i == 0 and total > 1:
            suffix = CONTINUED_NOTICE
        else:
            suffix = ""
        messages.append(prefix + chunk + suffix)

    return FormattedOutput(
        primary_message=messages[0],
        continuation_messages=tuple(messages[1:]),
        truncated=truncated,
    )


def format_output(
    result: AggregatedResult,
    limit: int = PLATFORM_LIMIT,
    buffer: int = CONTINUATION_BUFFER,
    max_continuations: int = MAX_CONTINUATIONS,
) -> FormattedOutput:
    return split_message(render_report(result), limit, buffer, max_continuations)
