"""CLI entry point for argus.

Commands:
  review   — review a pull request now (optionally in shadow mode)
  replay   — feed a saved webhook payload through admission and the pipeline
  cache    — inspect the cached review for a revision
"""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from argus_cli.commands.cache import cache_cmd
from argus_cli.commands.replay import replay_cmd
from argus_cli.commands.review import review_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured key-value store from .argus.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .argus.db)
      store: memory → MemoryStore (nothing survives the process)

    This factory lives in cli.py so neither argus_core nor argus_store
    know about the CLI config format.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "sqlite":
        from argus_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path") or ".argus.db")

    if store_type == "memory":
        from argus_store.memory import MemoryStore

        return MemoryStore()

    raise click.UsageError(f"Unknown store {store_type!r}. Choose 'sqlite' or 'memory'.")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )
    # SDK transports are chatty at DEBUG.
    for noisy in ("httpx", "httpcore", "openai", "anthropic", "github", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@click.group()
@click.version_option(package_name="argus-review", prog_name="argus")
@click.option(
    "--config",
    "config_path",
    default=".argus.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="ARGUS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Automated GitHub pull request reviews with retries, caching and deduplication."""
    from argus_cli.auth import resolve_github_token
    from argus_core.config import load_config
    from argus_core.errors import ConfigError

    _setup_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(replay_cmd)
main.add_command(cache_cmd)
