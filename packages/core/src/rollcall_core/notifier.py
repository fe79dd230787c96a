"""Post the mentions comment, then record what was mentioned.

Posting is the externally visible side effect, so state is written only
after GitHub has accepted the comment. A crash between the two steps can
lead to the same comment being posted again on a later delivery; it can
never leave state claiming a mention that was not posted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from github import GithubException

from rollcall_core.exceptions import CommentPostError, StatePersistError
from rollcall_core.models import IssueMentionState

logger = logging.getLogger(__name__)


def commit_mentions(
    issue,
    body: str | None,
    new_state: IssueMentionState,
    persist: Callable[[IssueMentionState], None],
) -> bool:
    """Post ``body`` on ``issue`` and persist ``new_state``.

    Returns True if a comment was posted, False for the no-op case.
    """
    if not body:
        return False

    try:
        issue.create_comment(body)
    except (GithubException, OSError) as e:
        raise CommentPostError(
            f"Failed to post mentions comment on {new_state.repo}#{new_state.issue_number}: {e}"
        ) from e
    logger.info("Posted mentions comment on %s#%d:\n%s", new_state.repo, new_state.issue_number, body)

    try:
        persist(new_state)
    except Exception as e:
        raise StatePersistError(
            f"Comment posted on {new_state.repo}#{new_state.issue_number} but mention state was not saved: {e}",
            posted_comment=body,
        ) from e
    return True
