"""handle command — process one rollup "opened" event.

Runs the full pipeline for a single webhook payload: extract the bundled
PRs, classify their changes, and post one comment naming the rules not yet
mentioned on the issue. The whole load-decide-post-save cycle runs under
the store's per-issue lock.

Exit codes:
  0  done (including "nothing to do")
  1  failed before anything was posted; safe to redeliver
  3  comment posted but state not saved; do NOT redeliver, reconcile by hand
"""

from __future__ import annotations

import json
import logging

import click
from github import GithubException
from rich.console import Console

from rollcall_core.config import load_rules
from rollcall_core.exceptions import CommentPostError, ConfigError, StateLoadError, StatePersistError
from rollcall_core.gh.pull_request import get_changed_files, get_issue, get_repo
from rollcall_core.models import IssueMentionState, RollupEvent
from rollcall_core.notifier import commit_mentions
from rollcall_core.rollup_mentions import plan_mentions, should_handle
from rollcall_store.base import StoreError
from rollcall_store.models import MentionRecord

console = Console()
logger = logging.getLogger(__name__)

EXIT_RETRYABLE = 1
EXIT_NEEDS_RECONCILIATION = 3


def record_to_state(record: MentionRecord | None, repo: str, issue_number: int) -> IssueMentionState:
    """Map a stored MentionRecord (or its absence) to the pipeline's state.

    The CLI layer owns this mapping: rollcall_core has no store knowledge and
    rollcall_store has no core knowledge.
    """
    if record is None:
        return IssueMentionState(repo=repo, issue_number=issue_number)
    return IssueMentionState(repo=record.repo, issue_number=record.issue_number, mentioned=list(record.mentioned))


def state_to_record(state: IssueMentionState) -> MentionRecord:
    return MentionRecord(repo=state.repo, issue_number=state.issue_number, mentioned=list(state.mentioned))


def process_rollup(
    repo,
    event: RollupEvent,
    rules: dict,
    store,
    max_workers: int = 4,
    fetch_files=get_changed_files,
) -> str | None:
    """Run the mention pipeline for one rollup event under the issue lock.

    Returns the posted comment, or None when there was nothing new to mention.
    Raises StateLoadError, CommentPostError or StatePersistError.
    """
    try:
        with store.issue_lock(event.repo, event.issue_number):
            record = store.load_mentions(event.repo, event.issue_number)
            prior = record_to_state(record, event.repo, event.issue_number)

            body, new_state = plan_mentions(
                repo, event, rules, prior, max_workers=max_workers, fetch_files=fetch_files
            )
            if body is None:
                logger.info("Nothing new to mention on %s#%d", event.repo, event.issue_number)
                return None

            try:
                issue = get_issue(repo, event.issue_number)
            except GithubException as e:
                raise CommentPostError(f"Could not open {event.repo}#{event.issue_number} for commenting: {e}") from e
            commit_mentions(issue, body, new_state, persist=lambda s: store.save_mentions(state_to_record(s)))
            return body
    except StoreError as e:
        raise StateLoadError(f"Could not load mention state for {event.repo}#{event.issue_number}: {e}") from e


@click.command("handle")
@click.option(
    "--event",
    "event_file",
    type=click.File("r"),
    envvar="GITHUB_EVENT_PATH",
    required=True,
    help="Webhook payload JSON file ('-' for stdin). Defaults to $GITHUB_EVENT_PATH.",
)
@click.pass_context
def handle_cmd(ctx, event_file):
    """Mention reviewers for sensitive changes bundled in a newly opened rollup.

    \b
    Required environment variables:
      GITHUB_TOKEN or ROLLCALL_GITHUB_TOKEN   token allowed to comment on the repo
    """
    config = ctx.obj["config"]
    store = ctx.obj["store"]

    try:
        payload = json.load(event_file)
    except json.JSONDecodeError as e:
        raise click.UsageError(f"Event payload is not valid JSON: {e}")
    try:
        event = RollupEvent.from_payload(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise click.UsageError(f"Unsupported event payload: {e}")

    if not should_handle(event, config):
        console.print(f"[dim]{event.repo}#{event.issue_number} is not a newly opened rollup. Nothing to do.[/dim]")
        return

    try:
        rules = load_rules(config)
    except ConfigError as e:
        console.print(f"[red]Invalid mentions config: {e}[/red]")
        ctx.exit(EXIT_RETRYABLE)

    token = config.get("github_token")
    if not token:
        raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or ROLLCALL_GITHUB_TOKEN.")

    try:
        repo = get_repo(event.repo, token=token, timeout=config.get("github_timeout", 15))
    except GithubException as e:
        console.print(f"[red]Could not open repository {event.repo}: {e}[/red]")
        ctx.exit(EXIT_RETRYABLE)

    try:
        body = process_rollup(repo, event, rules, store, max_workers=config.get("max_fetch_workers", 4))
    except StatePersistError as e:
        console.print(f"[bold red]{e}[/bold red]")
        console.print("[red]Do not redeliver this event; record the mentions by hand.[/red]")
        ctx.exit(EXIT_NEEDS_RECONCILIATION)
    except (StateLoadError, CommentPostError) as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(EXIT_RETRYABLE)

    if body is None:
        console.print("[green]No new sensitive changes to mention.[/green]")
    else:
        console.print(f"[green]Posted mentions comment on {event.repo}#{event.issue_number}.[/green]")
