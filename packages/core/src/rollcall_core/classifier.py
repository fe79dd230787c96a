"""Decide which sensitivity rules a set of changed files trips."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import PurePosixPath

from rollcall_core.models import SensitivityRule


def touches_path(files: Iterable[str], prefix: str) -> bool:
    """Return True if any file lives at or below ``prefix``.

    Matching is per path segment: ``compiler`` covers ``compiler/src/lib``
    but not ``compiler2/src/lib``.
    """
    root = PurePosixPath(prefix)
    for f in files:
        path = PurePosixPath(f)
        if path == root or root in path.parents:
            return True
    return False


def pings_non_author(rule: SensitivityRule, author: str) -> bool:
    """False when the author is the only person the rule would cc."""
    if len(rule.cc) == 1:
        return rule.cc[0].lstrip("@") != author
    return True


def classify(files: list[str], rules: Mapping[str, SensitivityRule], author: str) -> list[str]:
    """Return the keys of the rules touched by ``files``, in configuration order."""
    return [
        key
        for key, rule in rules.items()
        if touches_path(files, rule.key) and pings_non_author(rule, author)
    ]
