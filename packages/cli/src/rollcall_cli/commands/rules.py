"""rules command — classify a local diff against the configured mention rules."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from rollcall_core.classifier import classify
from rollcall_core.config import load_rules
from rollcall_core.exceptions import ConfigError
from rollcall_core.utils.diff import files_changed

console = Console()


@click.command("rules")
@click.option("--diff", "diff_file", type=click.File("r"), required=True, help="Unified diff file ('-' for stdin).")
@click.option("--author", default="", help="PR author login; rules that would only ping them are dropped.")
@click.pass_context
def rules_cmd(ctx, diff_file, author: str):
    """List the mention rules a diff would trigger."""
    config = ctx.obj["config"]
    try:
        rules = load_rules(config)
    except ConfigError as e:
        raise click.UsageError(str(e))

    files = files_changed(diff_file.read())
    if not files:
        console.print("[yellow]No files found in diff.[/yellow]")
        return

    matched = classify(files, rules, author)
    if not matched:
        console.print(f"[green]{len(files)} file(s) changed; no mention rules triggered.[/green]")
        return

    table = Table(title="Triggered mention rules", show_header=True, header_style="bold cyan")
    table.add_column("Path")
    table.add_column("Cc")
    table.add_column("Message", max_width=60)
    for key in matched:
        rule = rules[key]
        table.add_row(key, ", ".join(rule.cc) or "—", escape(rule.message) if rule.message else "[dim]default[/dim]")
    console.print(table)
