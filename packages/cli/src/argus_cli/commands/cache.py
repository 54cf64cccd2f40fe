"""cache command — show what the pipeline remembers about one revision."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

console = Console()


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@click.command("cache")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--sha", required=True, help="Head commit SHA of the reviewed revision.")
@click.option("--body", "show_body", is_flag=True, help="Also print the cached review body.")
@click.option("--clear", is_flag=True, help="Forget the cached review and failure record for the revision.")
@click.pass_context
def cache_cmd(ctx, repo: str, pr_number: int, sha: str, show_body: bool, clear: bool):
    """Inspect the cached review (and any failure record) for a revision."""
    from argus_core.gh.pull_request import format_target
    from argus_core.idempotency import IdempotencyCache

    target = format_target(repo, pr_number)
    cache = IdempotencyCache(ctx.obj["store"])

    if clear:
        asyncio.run(cache.invalidate(target, sha))
        console.print(f"[green]Cleared cached state for {target}@{sha[:7]}.[/green]")
        return

    async def lookup():
        return await cache.get(target, sha), await cache.get_failure(target, sha)

    entry, failure = asyncio.run(lookup())

    if entry is None and failure is None:
        console.print(f"[yellow]Nothing cached for {target}@{sha[:7]}.[/yellow]")
        return

    if entry is not None:
        result = entry.result
        table = Table(title=f"Cached review — {target}@{sha[:7]}", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Verdict", result.overall_verdict.event)
        table.add_row("Confidence", f"{result.confidence:.2f}")
        table.add_row("Mode", "file-based" if result.chunked else "whole change")
        table.add_row("Units reviewed", str(result.reviewed_count))
        table.add_row("Skipped / failed", f"{result.skipped_count} / {result.failed_count}")
        table.add_row("Issues", ", ".join(f"{k}: {v}" for k, v in result.severity_counts.items()) or "none")
        table.add_row("Artifact", str(entry.published_artifact_id))
        table.add_row("Messages", f"{len(entry.output.messages)}{' (truncated)' if entry.output.truncated else ''}")
        table.add_row("Cached at", _timestamp(entry.created_at))
        console.print(table)
        if show_body:
            for message in entry.output.messages:
                console.print(Markdown(message))

    if failure is not None:
        console.print(
            f"[red]Last failure:[/red] {failure['last_error']} "
            f"(event {failure['event_id']}, {failure['attempts']} attempt(s), {_timestamp(failure['failed_at'])})"
        )
