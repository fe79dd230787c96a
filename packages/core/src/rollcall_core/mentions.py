"""Compose the mentions comment and the state that records it."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from rollcall_core.models import IssueMentionState, SensitivityRule


def format_mention(rule: SensitivityRule) -> str:
    """Render the comment block for one rule."""
    text = rule.message if rule.message else f"Some changes occurred in {rule.key}"
    if rule.cc:
        text += "\n\ncc " + ", ".join(rule.cc)
    return text


def merge_matches(matched: Iterable[Iterable[str]]) -> list[str]:
    """Flatten per-PR match lists keeping the first occurrence of each key."""
    seen: set[str] = set()
    merged: list[str] = []
    for keys in matched:
        for key in keys:
            if key not in seen:
                seen.add(key)
                merged.append(key)
    return merged


def aggregate(
    matched: Iterable[Iterable[str]],
    prior_state: IssueMentionState,
    rules: Mapping[str, SensitivityRule],
) -> tuple[str | None, IssueMentionState]:
    """Build the comment for rules not yet mentioned on this issue.

    ``matched`` holds one list of rule keys per bundled PR, in the order the
    PRs appear in the rollup. Returns ``(None, prior_state)`` when there is
    nothing new to say. ``prior_state`` is never mutated.
    """
    already = set(prior_state.mentioned)
    fresh = [key for key in merge_matches(matched) if key not in already and key in rules]
    if not fresh:
        return None, prior_state

    body = "\n\n".join(format_mention(rules[key]) for key in fresh)
    new_state = IssueMentionState(
        repo=prior_state.repo,
        issue_number=prior_state.issue_number,
        mentioned=[*prior_state.mentioned, *fresh],
    )
    return body, new_state
