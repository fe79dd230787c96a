"""CLI entry point for rollcall.

Commands:
  handle  — process a rollup "opened" event and post the mentions comment
  check   — dry run against an existing rollup PR; never posts
  rules   — show which mention rules a local diff would trigger
  state   — show the mention state recorded for an issue
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console

from rollcall_cli.commands.check import check_cmd
from rollcall_cli.commands.handle import handle_cmd
from rollcall_cli.commands.rules import rules_cmd
from rollcall_cli.commands.state import state_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured state store from .rollcall.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .rollcall.db)
      store: gist   → GistStore   (requires gist_id and github_token)

    This factory lives in cli.py so neither rollcall_core nor rollcall_store
    know about the config format.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "gist":
        from rollcall_store.gist import GistStore

        gist_id = config.get("gist_id")
        token = config.get("github_token")
        if not gist_id or not token:
            raise click.UsageError("store: gist requires gist_id in .rollcall.yml and a GitHub token.")
        return GistStore(gist_id=gist_id, token=token)

    if store_type == "sqlite":
        from rollcall_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".rollcall.db"))

    raise click.UsageError(f"Unknown store {store_type!r}. Choose 'sqlite' or 'gist'.")


@click.group()
@click.version_option(
    version=importlib.metadata.version("rollcall"),
    prog_name="rollcall",
)
@click.option(
    "--config",
    "config_path",
    default=".rollcall.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="ROLLCALL_CONFIG",
)
@click.option(
    "--store-path",
    default=None,
    help="SQLite state file. Overrides store_path in the configuration file.",
    envvar="ROLLCALL_STORE_PATH",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, store_path: str | None, verbose: bool):
    """Cc the owners of sensitive paths touched by a rollup PR."""
    from rollcall_cli.auth import resolve_github_token
    from rollcall_core.config import load_config
    from rollcall_core.exceptions import ConfigError

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path, cli_overrides={"store_path": store_path})
    except ConfigError as e:
        raise click.UsageError(str(e))

    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(handle_cmd)
main.add_command(check_cmd)
main.add_command(rules_cmd)
main.add_command(state_cmd)
