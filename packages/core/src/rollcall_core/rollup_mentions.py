"""Rollup mention pipeline: extract bundled PRs, classify them, compose the comment.

When a rollup PR is opened, each PR it bundles is checked against the
configured sensitivity rules and the owners of any touched area are cc'd
once per issue.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor

from rollcall_core.classifier import classify
from rollcall_core.gh.pull_request import get_changed_files
from rollcall_core.mentions import aggregate
from rollcall_core.models import IssueMentionState, RollupEvent, SensitivityRule
from rollcall_core.rollup import get_rolled_up_prs, is_active_rollup, parse_pr_number

logger = logging.getLogger(__name__)

FetchFiles = Callable[[object, int], list[str]]


def should_handle(event: RollupEvent, config: dict) -> bool:
    """True for an opened, non-draft rollup in a repo with mention rules configured."""
    if event.action != "opened":
        return False
    if not config.get("mentions"):
        return False
    return is_active_rollup(event, config.get("rollup_title_prefix", "Rollup of"))


def classify_rollup(
    repo,
    event: RollupEvent,
    rules: Mapping[str, SensitivityRule],
    max_workers: int = 4,
    fetch_files: FetchFiles = get_changed_files,
) -> list[list[str]]:
    """Return the matched rule keys for each bundled PR, in rollup order.

    A PR whose files cannot be fetched contributes no matches; the rest of
    the rollup is still checked.
    """
    numbers = [parse_pr_number(token) for token in get_rolled_up_prs(event.body)]
    unique = list(dict.fromkeys(n for n in numbers if n is not None))
    if not unique:
        logger.info("No bundled PRs found in %s#%d", event.repo, event.issue_number)
        return []

    def _classify_one(pr_number: int) -> list[str]:
        try:
            files = fetch_files(repo, pr_number)
        except Exception as e:
            logger.warning("Could not fetch files for #%d; skipping it: %s", pr_number, e)
            return []
        matched = classify(files, rules, event.author)
        logger.debug("#%d touches %d file(s), matched: %s", pr_number, len(files), matched)
        return matched

    # map() yields in submission order, so completion order cannot leak into the comment.
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        results = dict(zip(unique, pool.map(_classify_one, unique)))

    return [results[n] for n in numbers if n is not None]


def plan_mentions(
    repo,
    event: RollupEvent,
    rules: Mapping[str, SensitivityRule],
    prior_state: IssueMentionState,
    max_workers: int = 4,
    fetch_files: FetchFiles = get_changed_files,
) -> tuple[str | None, IssueMentionState]:
    """Work out the comment to post (if any) and the state that would record it."""
    if not rules:
        return None, prior_state
    matched = classify_rollup(repo, event, rules, max_workers=max_workers, fetch_files=fetch_files)
    return aggregate(matched, prior_state, rules)
