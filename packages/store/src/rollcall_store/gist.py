"""GistStore — zero-infrastructure mention state via GitHub Gist.

Useful when the bot runs as a GitHub Actions job with no persistent disk:
the state survives between workflow runs without provisioning a database.

Data format: a single JSON file named `rollcall_state.json` inside the Gist.
The file contains a JSON object keyed by ``"<owner>/<repo>#<issue>"``; each
value maps a record key (``"mentions"``) to the record dict.

Gists offer no locking, so issue_lock() only serializes threads of the
current process. Run a single writer per Gist.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from rollcall_store.base import BaseStore, StoreError
from rollcall_store.models import MENTIONS_KEY, MentionRecord

logger = logging.getLogger(__name__)

_GIST_FILENAME = "rollcall_state.json"


class GistStore(BaseStore):
    """Stores mention state for every issue in one Gist file.

    The Gist ID is stored in .rollcall.yml under `gist_id`. The token needs
    the 'gist' scope; the GITHUB_TOKEN injected into Actions does not have it.
    """

    def __init__(self, gist_id: str, token: str):
        super().__init__()
        from github import Github

        self._gist_id = gist_id
        self._gh = Github(token)

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def load_mentions(self, repo: str, issue_number: int) -> MentionRecord | None:
        try:
            data = self._read_state(self._get_gist())
        except Exception as e:
            raise StoreError(f"Could not read mention state from Gist {self._gist_id}: {e}") from e

        entry = data.get(self._issue_key(repo, issue_number), {}).get(MENTIONS_KEY)
        if entry is None:
            return None
        return self._from_dict(repo, issue_number, entry)

    def save_mentions(self, record: MentionRecord) -> None:
        """Merge the record into the Gist file and write it back."""
        if not record.updated_at:
            record.updated_at = datetime.now(timezone.utc).isoformat()
        try:
            gist = self._get_gist()
            data = self._read_state(gist)
            data.setdefault(self._issue_key(record.repo, record.issue_number), {})[record.key] = self._to_dict(record)
            gist.edit(files={_GIST_FILENAME: {"content": json.dumps(data, indent=2, sort_keys=True)}})
        except Exception as e:
            raise StoreError(f"Could not save mention state to Gist {self._gist_id}: {e}") from e
        logger.debug("Saved mention state for %s#%d to Gist", record.repo, record.issue_number)

    @staticmethod
    def _issue_key(repo: str, issue_number: int) -> str:
        return f"{repo}#{issue_number}"

    def _read_state(self, gist) -> dict:
        """Read the current JSON object from the Gist file, or return {}.

        A file that exists but does not parse is an error: treating it as
        empty would re-mention every rule on every issue.
        """
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None or not file_obj.content:
            return {}
        data = json.loads(file_obj.content)
        if not isinstance(data, dict):
            raise ValueError(f"{_GIST_FILENAME} does not contain a JSON object")
        return data

    @staticmethod
    def _to_dict(record: MentionRecord) -> dict:
        return {"mentioned": list(record.mentioned), "updated_at": record.updated_at}

    @staticmethod
    def _from_dict(repo: str, issue_number: int, d: dict) -> MentionRecord:
        return MentionRecord(
            repo=repo,
            issue_number=issue_number,
            key=MENTIONS_KEY,
            mentioned=list(d.get("mentioned", [])),
            updated_at=d.get("updated_at", ""),
        )
