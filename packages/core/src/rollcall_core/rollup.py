"""Parsing of rollup pull request bodies.

A rollup body produced by the merge queue looks like::

    Successful merges:

     - #101075 (Migrate rustc_codegen_gcc to SessionDiagnostics )
     - #102350 (Improve errors for incomplete functions in struct definitions)

    Failed merges:

Only the first contiguous list under ``Successful merges:`` is honoured.
"""

from __future__ import annotations

import logging

from rollcall_core.models import RollupEvent

logger = logging.getLogger(__name__)

_SUCCESS_HEADER = "Successful merges:"
_PR_MARKER = "- #"


def get_rolled_up_prs(body: str) -> list[str]:
    """Return the bundled PR ids listed in a rollup body, in order.

    Ids are returned as the literal text between the marker and the first
    space. A matched line without a trailing title is skipped.
    """
    lines = [line.strip() for line in body.splitlines()]
    lines = [line for line in lines if line]

    try:
        start = lines.index(_SUCCESS_HEADER) + 1
    except ValueError:
        return []

    prs: list[str] = []
    for line in lines[start:]:
        if not line.startswith(_PR_MARKER):
            break
        rest = line[len(_PR_MARKER) :]
        pr_id, sep, _title = rest.partition(" ")
        if not sep or not pr_id:
            continue
        prs.append(pr_id)
    return prs


def is_active_rollup(event: RollupEvent, title_prefix: str = "Rollup of") -> bool:
    """Only ping on opened, non-draft rollups."""
    return event.title.startswith(title_prefix) and not event.draft


def parse_pr_number(token: str) -> int | None:
    """Parse a bundled PR id into a pull request number, or None if it is not one."""
    try:
        number = int(token)
    except ValueError:
        logger.warning("Ignoring malformed rollup entry #%s", token)
        return None
    if number <= 0:
        logger.warning("Ignoring malformed rollup entry #%s", token)
        return None
    return number
