"""GitHub token resolution for the rollcall bot.

Resolution order (stops at first success):
  1. ROLLCALL_GITHUB_TOKEN (a bot account token, kept apart from the job's own)
  2. GITHUB_TOKEN (injected by GitHub Actions)
  3. `gh auth token` (GitHub CLI session, for local dry runs)
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_TOKEN_ENV_VARS = ("ROLLCALL_GITHUB_TOKEN", "GITHUB_TOKEN")


def resolve_github_token() -> str | None:
    """Return a GitHub token or None if no source provides one.

    Never raises; callers decide whether a missing token is a usage error.
    """
    for name in _TOKEN_ENV_VARS:
        token = os.environ.get(name)
        if token:
            logger.debug("Using GitHub token from %s.", name)
            return token

    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None

    token = result.stdout.strip() if result.returncode == 0 else ""
    if token:
        logger.debug("Using GitHub token from the gh CLI session.")
        return token
    return None
