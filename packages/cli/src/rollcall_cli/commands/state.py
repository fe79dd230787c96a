"""state command — display the mention state recorded for an issue."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from rollcall_store.base import StoreError

console = Console()


@click.command("state")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--issue", "issue_number", type=int, required=True, help="Issue or rollup PR number.")
@click.pass_context
def state_cmd(ctx, repo: str, issue_number: int):
    """Show which mention rules have already been posted on an issue."""
    store = ctx.obj["store"]
    try:
        record = store.load_mentions(repo, issue_number)
    except StoreError as e:
        raise click.ClickException(str(e))

    if record is None or not record.mentioned:
        console.print(f"[yellow]Nothing mentioned yet on {repo}#{issue_number}.[/yellow]")
        return

    table = Table(title=f"Mentions — {repo}#{issue_number}", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("Rule")
    for i, key in enumerate(record.mentioned, 1):
        table.add_row(str(i), key)
    console.print(table)
    if record.updated_at:
        console.print(f"[dim]Last updated {record.updated_at[:19].replace('T', ' ')}[/dim]")
