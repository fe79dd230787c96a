"""SQLiteStore — local file-based mention state.

Schema:
  issue_data  — one row per (repo, issue, key); ``data_json`` holds the list
                of rule keys already mentioned on that issue.
  issue_locks — one row per issue currently being processed. A row older
                than ``lock_ttl`` belongs to a crashed process and is reclaimed.

issue_lock() claims the issue's row in issue_locks, so bot processes sharing
the file cannot interleave their read-modify-write of the same issue, while
different issues proceed independently. Every statement runs in autocommit
mode, so the database write lock is only held for single statements.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from rollcall_store.base import BaseStore, StoreError
from rollcall_store.models import MENTIONS_KEY, MentionRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS issue_data (
    repo          TEXT NOT NULL,
    issue_number  INTEGER NOT NULL,
    key           TEXT NOT NULL,
    data_json     TEXT NOT NULL DEFAULT '[]',
    updated_at    TEXT,
    PRIMARY KEY (repo, issue_number, key)
);
CREATE TABLE IF NOT EXISTS issue_locks (
    repo          TEXT NOT NULL,
    issue_number  INTEGER NOT NULL,
    acquired_at   REAL NOT NULL,
    PRIMARY KEY (repo, issue_number)
);
"""

_LOCK_POLL_INTERVAL = 0.05


class SQLiteStore(BaseStore):
    """Stores mention state in a local SQLite database file.

    The database file path defaults to `.rollcall.db` in the current working
    directory. Configure via .rollcall.yml: `store_path: /path/to/rollcall.db`.
    The connection must only be used from the thread that created the store.

    ``lock_timeout`` bounds how long issue_lock() waits for another process
    working on the same issue; ``lock_ttl`` is how old a lock row must be
    before it is treated as abandoned.
    """

    def __init__(
        self,
        db_path: str = ".rollcall.db",
        busy_timeout: float = 30.0,
        lock_timeout: float = 300.0,
        lock_ttl: float = 900.0,
    ):
        super().__init__()
        self._conn = sqlite3.connect(db_path, timeout=busy_timeout, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._lock_timeout = lock_timeout
        self._lock_ttl = lock_ttl

    def load_mentions(self, repo: str, issue_number: int) -> MentionRecord | None:
        try:
            row = self._conn.execute(
                "SELECT * FROM issue_data WHERE repo=? AND issue_number=? AND key=?",
                (repo, issue_number, MENTIONS_KEY),
            ).fetchone()
            return self._row_to_record(row) if row is not None else None
        except (sqlite3.Error, ValueError) as e:
            raise StoreError(f"Could not read mention state for {repo}#{issue_number}: {e}") from e

    def save_mentions(self, record: MentionRecord) -> None:
        updated_at = record.updated_at or datetime.now(timezone.utc).isoformat()
        try:
            self._conn.execute(
                """
                INSERT INTO issue_data (repo, issue_number, key, data_json, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (repo, issue_number, key)
                DO UPDATE SET data_json = excluded.data_json, updated_at = excluded.updated_at
                """,
                (record.repo, record.issue_number, record.key, json.dumps(record.mentioned), updated_at),
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not save mention state for {record.repo}#{record.issue_number}: {e}") from e

    @contextmanager
    def issue_lock(self, repo: str, issue_number: int) -> Iterator[None]:
        with super().issue_lock(repo, issue_number):
            self._acquire_row_lock(repo, issue_number)
            try:
                yield
            except BaseException:
                try:
                    self._release_row_lock(repo, issue_number)
                except StoreError as release_error:
                    logger.warning("%s", release_error)
                raise
            else:
                self._release_row_lock(repo, issue_number)

    def _acquire_row_lock(self, repo: str, issue_number: int) -> None:
        deadline = time.monotonic() + self._lock_timeout
        while True:
            now = time.time()
            try:
                self._conn.execute(
                    "DELETE FROM issue_locks WHERE repo=? AND issue_number=? AND acquired_at < ?",
                    (repo, issue_number, now - self._lock_ttl),
                )
                self._conn.execute(
                    "INSERT INTO issue_locks (repo, issue_number, acquired_at) VALUES (?, ?, ?)",
                    (repo, issue_number, now),
                )
                return
            except sqlite3.IntegrityError:
                pass  # held by another process
            except sqlite3.Error as e:
                raise StoreError(f"Could not lock mention state for {repo}#{issue_number}: {e}") from e

            if time.monotonic() >= deadline:
                raise StoreError(
                    f"Could not lock mention state for {repo}#{issue_number}: "
                    f"still held by another process after {self._lock_timeout:g}s"
                )
            time.sleep(_LOCK_POLL_INTERVAL)

    def _release_row_lock(self, repo: str, issue_number: int) -> None:
        try:
            self._conn.execute("DELETE FROM issue_locks WHERE repo=? AND issue_number=?", (repo, issue_number))
        except sqlite3.Error as e:
            raise StoreError(f"Could not unlock mention state for {repo}#{issue_number}: {e}") from e

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> MentionRecord:
        return MentionRecord(
            repo=row["repo"],
            issue_number=row["issue_number"],
            key=row["key"],
            mentioned=list(json.loads(row["data_json"] or "[]")),
            updated_at=row["updated_at"] or "",
        )
