"""Abstract store interface.

Every storage backend (SQLite, Gist) implements this interface. The CLI
depends on BaseStore, not on a concrete backend, so backends are swappable
without touching CLI code.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rollcall_store.models import MentionRecord


class StoreError(Exception):
    """A backend could not read or write mention state."""


class BaseStore(ABC):
    """Persistence layer for per-issue mention state.

    Reads and writes raise StoreError on failure. Unlike an audit log, this
    state decides whether a comment is posted, so failures are never
    swallowed.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, int], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @abstractmethod
    def load_mentions(self, repo: str, issue_number: int) -> MentionRecord | None:
        """Return the stored record for an issue, or None if nothing was mentioned yet."""

    @abstractmethod
    def save_mentions(self, record: MentionRecord) -> None:
        """Create or replace the record for ``record.repo`` / ``record.issue_number``."""

    @contextmanager
    def issue_lock(self, repo: str, issue_number: int) -> Iterator[None]:
        """Serialize load-decide-save cycles for one issue.

        The base implementation only excludes other threads of this process.
        Backends that can lock across processes extend it.
        """
        with self._locks_guard:
            lock = self._locks.setdefault((repo, issue_number), threading.Lock())
        with lock:
            yield

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """
