"""Plain data passed between the rollup mention pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RollupEvent:
    """An issue or pull request event as delivered by GitHub."""

    action: str
    repo: str  # owner/name
    issue_number: int
    title: str
    body: str
    draft: bool
    author: str

    @classmethod
    def from_payload(cls, payload: dict) -> RollupEvent:
        """Build an event from a ``pull_request`` or ``issues`` webhook payload.

        Raises ValueError when the payload carries neither object.
        """
        issue = payload.get("pull_request") or payload.get("issue")
        if not issue:
            raise ValueError("Payload has no 'pull_request' or 'issue' object.")
        repository = payload.get("repository") or {}
        return cls(
            action=payload.get("action", ""),
            repo=repository.get("full_name", ""),
            issue_number=int(issue["number"]),
            title=issue.get("title") or "",
            body=issue.get("body") or "",
            draft=bool(issue.get("draft", False)),
            author=(issue.get("user") or {}).get("login", ""),
        )


@dataclass(frozen=True)
class SensitivityRule:
    """A configured path prefix and who to notify when it changes.

    ``key`` is both the path prefix and the identifier recorded in
    persisted mention state.
    """

    key: str
    message: str | None = None
    cc: tuple[str, ...] = ()


@dataclass
class IssueMentionState:
    """Rule keys already mentioned on one issue, in the order they were posted."""

    repo: str
    issue_number: int
    mentioned: list[str] = field(default_factory=list)
