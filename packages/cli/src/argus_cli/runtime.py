"""Wiring shared by the commands that run the pipeline."""

from __future__ import annotations

from typing import Sequence

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from argus_core.config import PipelineSettings
from argus_core.errors import ConfigError
from argus_core.models import Verdict
from argus_core.pipeline import ReviewPipeline, RunReport, RunStatus, get_reviewer
from argus_core.publisher import ArtifactId, InlineComment, Publisher

console = Console()

_VERDICT_STYLE = {
    Verdict.APPROVE: "green",
    Verdict.COMMENT: "yellow",
    Verdict.REQUEST_CHANGES: "red",
}


class ShadowPublisher(Publisher):
    """Prints what would be published instead of posting it."""

    def __init__(self, out: Console | None = None):
        self.console = out or console
        self.posted: list[str] = []

    async def find_existing(self, target_id: str, signature: str) -> ArtifactId | None:
        return None

    async def create(
        self, target_id: str, body: str, verdict: Verdict, comments: Sequence[InlineComment] = ()
    ) -> ArtifactId:
        style = _VERDICT_STYLE.get(verdict, "white")
        self.console.print(
            Panel(Markdown(body), title=f"[{style}]{verdict.event}[/{style}] {target_id}", border_style=style)
        )
        for comment in comments:
            title = f"{comment.path}:{comment.line}"
            self.console.print(Panel(Markdown(comment.body), title=title, border_style="dim"))
        self.posted.append(body)
        return f"shadow-{len(self.posted)}"

    async def supersede(self, target_id: str, artifact_id: ArtifactId) -> None:
        self.console.print(f"[dim]Would dismiss review {artifact_id} on {target_id}[/dim]")

    async def create_continuation(self, target_id: str, body: str) -> ArtifactId:
        self.console.print(Panel(Markdown(body), title=f"continuation {target_id}", border_style="dim"))
        self.posted.append(body)
        return f"shadow-{len(self.posted)}"

    async def withdraw_continuation(self, target_id: str, continuation_id: ArtifactId) -> None:
        self.console.print(f"[dim]Would delete comment {continuation_id} on {target_id}[/dim]")


def require_token(config: dict) -> str:
    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    return token


def build_pipeline(config: dict, store, source, publisher: Publisher) -> ReviewPipeline:
    try:
        settings = PipelineSettings.from_config(config)
        oracle = get_reviewer(config)
    except ConfigError as e:
        raise click.UsageError(str(e))
    return ReviewPipeline(source, oracle, publisher, store, settings)


def print_report(report: RunReport) -> None:
    target = report.request.target_id
    revision = report.request.revision_id[:7]
    if report.status is RunStatus.DUPLICATE:
        console.print(f"[yellow]Event {report.request.event_id} was already processed; skipping.[/yellow]")
    elif report.status is RunStatus.RATE_LIMITED:
        console.print(f"[yellow]Rate limit reached for {report.request.tenant_id}; event dropped.[/yellow]")
    elif report.status is RunStatus.FAILED:
        console.print(
            f"[red]Review of {target}@{revision} failed after {report.attempts} attempt(s); "
            "nothing was published.[/red]"
        )
    elif report.status is RunStatus.UNCHANGED:
        console.print(f"[green]Cached review for {target}@{revision} is still published.[/green]")
    else:
        verdict = report.result.overall_verdict
        style = _VERDICT_STYLE.get(verdict, "white")
        action = "Republished cached review" if report.status is RunStatus.REPUBLISHED else "Published review"
        console.print(
            f"[green]✓[/green] {action} for {target}@{revision}: "
            f"[{style}]{verdict.event}[/{style}] (confidence {report.result.confidence:.2f}, "
            f"artifact {report.artifact_id})"
        )
