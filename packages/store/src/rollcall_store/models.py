"""Mention state data models.

Decoupled from rollcall_core so the store layer can be used independently
and rollcall_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field

MENTIONS_KEY = "mentions"


@dataclass
class MentionRecord:
    """Rule keys already mentioned on one issue.

    Created by the CLI layer from the pipeline's IssueMentionState once the
    comment naming those keys has been posted.
    """

    repo: str
    issue_number: int
    key: str = MENTIONS_KEY
    mentioned: list[str] = field(default_factory=list)
    updated_at: str = ""  # ISO-8601 UTC timestamp
