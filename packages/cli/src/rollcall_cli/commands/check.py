"""check command — dry run of the mention pipeline against an existing rollup."""

from __future__ import annotations

import click
from github import GithubException
from rich.console import Console

from rollcall_cli.commands.handle import record_to_state
from rollcall_core.config import load_rules
from rollcall_core.exceptions import ConfigError
from rollcall_core.gh.pull_request import get_pull, get_repo
from rollcall_core.mentions import aggregate
from rollcall_core.models import RollupEvent
from rollcall_core.rollup import get_rolled_up_prs, is_active_rollup
from rollcall_core.rollup_mentions import classify_rollup
from rollcall_store.base import StoreError

console = Console()


@click.command("check")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Rollup pull request number.")
@click.pass_context
def check_cmd(ctx, repo: str, pr_number: int):
    """Show the comment rollcall would post on a rollup PR, without posting it.

    Reads the recorded mention state so rules already mentioned are left out,
    exactly as `rollcall handle` would. Nothing is written.
    """
    config = ctx.obj["config"]
    store = ctx.obj["store"]

    try:
        rules = load_rules(config)
    except ConfigError as e:
        raise click.UsageError(str(e))
    if not rules:
        raise click.UsageError("No mention rules configured. Add a 'mentions' section to .rollcall.yml.")

    token = config.get("github_token")
    if not token:
        raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")

    try:
        this_repo = get_repo(repo, token=token, timeout=config.get("github_timeout", 15))
        pr = get_pull(this_repo, pr_number)
    except GithubException:
        raise click.UsageError(f"PR #{pr_number} not found in {repo}.")

    event = RollupEvent(
        action="opened",
        repo=repo,
        issue_number=pr_number,
        title=pr.title or "",
        body=pr.body or "",
        draft=bool(pr.draft),
        author=pr.user.login,
    )
    if not is_active_rollup(event, config.get("rollup_title_prefix", "Rollup of")):
        console.print(
            "[yellow]`rollcall handle` would ignore this PR: it is a draft or its title does not start "
            f"with {config.get('rollup_title_prefix', 'Rollup of')!r}.[/yellow]"
        )
    bundled = get_rolled_up_prs(event.body)
    if not bundled:
        console.print("[yellow]No bundled PRs found under 'Successful merges:'.[/yellow]")
        return
    console.print(f"Rollup bundles {len(bundled)} PR(s): " + ", ".join(f"#{p}" for p in bundled))

    try:
        record = store.load_mentions(repo, pr_number)
    except StoreError as e:
        raise click.ClickException(str(e))
    prior = record_to_state(record, repo, pr_number)

    matched = classify_rollup(this_repo, event, rules, max_workers=config.get("max_fetch_workers", 4))
    body, new_state = aggregate(matched, prior, rules)

    if prior.mentioned:
        console.print(f"[dim]Already mentioned: {', '.join(prior.mentioned)}[/dim]")
    if body is None:
        console.print("[green]Nothing new to mention.[/green]")
        return

    console.print(f"\n[bold]Would post ({len(new_state.mentioned) - len(prior.mentioned)} rule(s)):[/bold]\n")
    console.print(body, markup=False, highlight=False)
