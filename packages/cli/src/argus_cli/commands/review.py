"""review command — run a review on a pull request now."""

from __future__ import annotations

import asyncio
import uuid

import click
from rich.console import Console

console = Console()


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option(
    "--model",
    type=click.Choice(["openai", "anthropic", "github"]),
    default=None,
    help="Oracle provider. Overrides config file.",
)
@click.option(
    "--event-id",
    default=None,
    help="Delivery id used for deduplication. Defaults to a fresh id, so the run is always admitted.",
)
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt before publishing.")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the review instead of posting it to GitHub.",
)
@click.pass_context
def review_cmd(ctx, repo: str, pr_number: int, model: str | None, event_id: str | None, yes: bool, shadow: bool):
    """Review a pull request and publish the result on GitHub.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI)
      OPENAI_API_KEY       Required when using --model openai
      ANTHROPIC_API_KEY    Required when using --model anthropic
    """
    from argus_cli.runtime import ShadowPublisher, build_pipeline, print_report, require_token
    from argus_core.errors import ReviewError
    from argus_core.gh.pull_request import format_target, github_collaborators
    from argus_core.models import ReviewRequest
    from argus_core.pipeline import RunStatus
    from argus_store.memory import MemoryStore

    config = ctx.obj["config"]
    if model:
        config["model"] = model
    token = require_token(config)

    source, publisher = github_collaborators(token)
    store = ctx.obj["store"]
    target = format_target(repo, pr_number)

    if shadow:
        # Shadow runs never touch the persistent cache or dedup records.
        publisher, store = ShadowPublisher(console), MemoryStore()
    elif not yes and not click.confirm(f"Publish a review to {target}?", default=True):
        console.print("[yellow]Aborted.[/yellow]")
        return

    pipeline = build_pipeline(config, store, source, publisher)

    async def run():
        revision = await source.get_revision(target)
        request = ReviewRequest(
            tenant_id=repo.split("/")[0],
            target_id=target,
            revision_id=revision,
            event_id=event_id or f"cli-{uuid.uuid4()}",
            raw_content_ref=f"https://github.com/{repo}/pull/{pr_number}",
        )
        return await pipeline.process(request)

    try:
        report = asyncio.run(run())
    except ReviewError as e:
        raise click.ClickException(str(e))
    print_report(report)
    if report.status is RunStatus.FAILED:
        ctx.exit(1)
