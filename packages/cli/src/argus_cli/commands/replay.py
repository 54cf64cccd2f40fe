"""replay command — push a saved pull_request webhook payload through the pipeline."""

from __future__ import annotations

import asyncio
import hashlib
import json

import click
from rich.console import Console

console = Console()


@click.command("replay")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--delivery-id",
    default=None,
    help="X-GitHub-Delivery of the event. Defaults to a hash of the payload, so replaying a file twice is a duplicate.",
)
@click.option("--shadow", "-s", is_flag=True, help="Print the review instead of posting it to GitHub.")
@click.pass_context
def replay_cmd(ctx, payload_file: str, delivery_id: str | None, shadow: bool):
    """Replay a GitHub pull_request webhook payload saved as JSON.

    The event goes through deduplication and rate limiting exactly like a
    live delivery would.
    """
    from argus_cli.runtime import ShadowPublisher, build_pipeline, print_report, require_token
    from argus_core.errors import ReviewError
    from argus_core.events import parse_pull_request_event
    from argus_core.gh.pull_request import github_collaborators
    from argus_core.pipeline import RunStatus

    with open(payload_file, "rb") as f:
        raw = f.read()
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="PAYLOAD_FILE")

    delivery_id = delivery_id or hashlib.sha256(raw).hexdigest()[:32]
    try:
        request = parse_pull_request_event(payload, delivery_id)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PAYLOAD_FILE")
    if request is None:
        console.print(f"[dim]Event action {payload.get('action')!r} is not reviewed; nothing to do.[/dim]")
        return

    config = ctx.obj["config"]
    source, publisher = github_collaborators(require_token(config))
    if shadow:
        publisher = ShadowPublisher(console)
    pipeline = build_pipeline(config, ctx.obj["store"], source, publisher)

    try:
        report = asyncio.run(pipeline.process(request))
    except ReviewError as e:
        raise click.ClickException(str(e))
    print_report(report)
    if report.status is RunStatus.FAILED:
        ctx.exit(1)
