"""Tests for the CLI entry point and the handle pipeline."""

import json
from unittest.mock import MagicMock

import click
import pytest
from click.testing import CliRunner
from github import GithubException

from rollcall_cli.cli import _build_store, main
from rollcall_cli.commands.handle import process_rollup, record_to_state, state_to_record
from rollcall_core.exceptions import CommentPostError, StateLoadError, StatePersistError
from rollcall_core.models import IssueMentionState, RollupEvent, SensitivityRule
from rollcall_store.base import StoreError
from rollcall_store.models import MentionRecord
from rollcall_store.sqlite import SQLiteStore

ROLLUP_BODY = "Successful merges:\n\n - #1 (Touch the compiler)\n - #2 (Fix docs)\n\nFailed merges:\n"


def _make_config(github_token="tok", mentions=None):
    return {
        "github_token": github_token,
        "rollup_title_prefix": "Rollup of",
        "max_fetch_workers": 2,
        "github_timeout": 15,
        "store": "sqlite",
        "store_path": ".rollcall.db",
        "gist_id": None,
        "mentions": {"compiler": {"cc": ["@bob"]}} if mentions is None else mentions,
    }


def _patch_common(mocker, config=None, token="tok", store=None):
    """Patch load_config, resolve_github_token, and _build_store for most tests."""
    cfg = config or _make_config()
    mocker.patch("rollcall_core.config.load_config", return_value=cfg)
    mocker.patch("rollcall_cli.auth.resolve_github_token", return_value=token)
    if store is None:
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.return_value = None
    mocker.patch("rollcall_cli.cli._build_store", return_value=store)
    return cfg, store


def _payload(title="Rollup of 2 pull requests", action="opened", draft=False, body=ROLLUP_BODY, author="alice"):
    return {
        "action": action,
        "repository": {"full_name": "owner/repo"},
        "pull_request": {
            "number": 100,
            "title": title,
            "body": body,
            "draft": draft,
            "user": {"login": author},
        },
    }


def _write_event(tmp_path, payload):
    path = tmp_path / "event.json"
    path.write_text(json.dumps(payload))
    return str(path)


def _event(author="alice"):
    return RollupEvent(
        action="opened",
        repo="owner/repo",
        issue_number=100,
        title="Rollup of 2 pull requests",
        body=ROLLUP_BODY,
        draft=False,
        author=author,
    )


def _fetch(repo, pr_number):
    return {1: ["compiler/rustc_ast/src/lib.rs"], 2: ["docs/y.md"]}[pr_number]


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------


class TestRollupEventFromPayload:
    def test_pull_request_payload(self):
        event = RollupEvent.from_payload(_payload())
        assert event.repo == "owner/repo"
        assert event.issue_number == 100
        assert event.author == "alice"
        assert event.action == "opened"

    def test_issues_payload(self):
        payload = {
            "action": "opened",
            "repository": {"full_name": "owner/repo"},
            "issue": {"number": 7, "title": "Rollup of 3", "body": None, "user": {"login": "bob"}},
        }
        event = RollupEvent.from_payload(payload)
        assert event.issue_number == 7
        assert event.body == ""
        assert event.draft is False

    def test_payload_without_issue_rejected(self):
        with pytest.raises(ValueError):
            RollupEvent.from_payload({"action": "opened"})


# ---------------------------------------------------------------------------
# State mapping
# ---------------------------------------------------------------------------


class TestStateMapping:
    def test_missing_record_is_empty_state(self):
        state = record_to_state(None, "owner/repo", 5)
        assert state == IssueMentionState(repo="owner/repo", issue_number=5, mentioned=[])

    def test_record_roundtrip(self):
        record = MentionRecord(repo="owner/repo", issue_number=5, mentioned=["compiler"])
        state = record_to_state(record, "owner/repo", 5)
        assert state.mentioned == ["compiler"]
        assert state_to_record(state).mentioned == ["compiler"]


# ---------------------------------------------------------------------------
# process_rollup (the locked pipeline)
# ---------------------------------------------------------------------------


class TestProcessRollup:
    RULES = {"compiler": SensitivityRule("compiler", cc=("@bob",))}

    def test_posts_and_records_mention(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "state.db"))
        repo = MagicMock()

        body = process_rollup(repo, _event(), self.RULES, store, fetch_files=_fetch)

        assert body == "Some changes occurred in compiler\n\ncc @bob"
        repo.get_issue.assert_called_once_with(100)
        repo.get_issue.return_value.create_comment.assert_called_once_with(body)
        assert store.load_mentions("owner/repo", 100).mentioned == ["compiler"]
        store.close()

    def test_redelivery_posts_nothing(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "state.db"))
        repo = MagicMock()

        process_rollup(repo, _event(), self.RULES, store, fetch_files=_fetch)
        second = process_rollup(repo, _event(), self.RULES, store, fetch_files=_fetch)

        assert second is None
        assert repo.get_issue.return_value.create_comment.call_count == 1
        store.close()

    def test_author_only_reviewer_posts_nothing(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "state.db"))
        repo = MagicMock()
        rules = {"compiler": SensitivityRule("compiler", cc=("@alice",))}

        assert process_rollup(repo, _event(author="alice"), rules, store, fetch_files=_fetch) is None

        repo.get_issue.return_value.create_comment.assert_not_called()
        assert store.load_mentions("owner/repo", 100) is None
        store.close()

    def test_post_failure_leaves_state_untouched(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "state.db"))
        store.save_mentions(MentionRecord(repo="owner/repo", issue_number=100, mentioned=["library"]))
        repo = MagicMock()
        repo.get_issue.return_value.create_comment.side_effect = GithubException(500, {"message": "boom"}, None)

        with pytest.raises(CommentPostError):
            process_rollup(repo, _event(), self.RULES, store, fetch_files=_fetch)

        assert store.load_mentions("owner/repo", 100).mentioned == ["library"]
        store.close()

    def test_issue_lookup_failure_is_a_post_failure(self):
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.return_value = None
        repo = MagicMock()
        repo.get_issue.side_effect = GithubException(404, {"message": "Not Found"}, None)

        with pytest.raises(CommentPostError):
            process_rollup(repo, _event(), self.RULES, store, fetch_files=_fetch)

        store.save_mentions.assert_not_called()

    def test_persist_failure_after_post(self):
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.return_value = None
        store.save_mentions.side_effect = StoreError("disk I/O error")
        repo = MagicMock()

        with pytest.raises(StatePersistError):
            process_rollup(repo, _event(), self.RULES, store, fetch_files=_fetch)

        repo.get_issue.return_value.create_comment.assert_called_once()

    def test_load_failure_is_fatal(self):
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.side_effect = StoreError("database is locked")
        repo = MagicMock()

        with pytest.raises(StateLoadError):
            process_rollup(repo, _event(), self.RULES, store, fetch_files=_fetch)

        repo.get_issue.assert_not_called()

    def test_runs_under_issue_lock(self):
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.return_value = None

        process_rollup(MagicMock(), _event(), self.RULES, store, fetch_files=_fetch)

        store.issue_lock.assert_called_once_with("owner/repo", 100)


# ---------------------------------------------------------------------------
# handle command
# ---------------------------------------------------------------------------


class TestHandleCommand:
    def test_non_rollup_is_a_no_op(self, mocker, tmp_path):
        _patch_common(mocker)
        mock_process = mocker.patch("rollcall_cli.commands.handle.process_rollup")

        result = CliRunner().invoke(main, ["handle", "--event", _write_event(tmp_path, _payload(title="Fix typo"))])

        assert result.exit_code == 0
        assert "Nothing to do" in result.output
        mock_process.assert_not_called()

    def test_other_action_is_a_no_op(self, mocker, tmp_path):
        _patch_common(mocker)
        mock_process = mocker.patch("rollcall_cli.commands.handle.process_rollup")

        result = CliRunner().invoke(main, ["handle", "--event", _write_event(tmp_path, _payload(action="edited"))])

        assert result.exit_code == 0
        mock_process.assert_not_called()

    def test_invalid_json(self, mocker, tmp_path):
        _patch_common(mocker)
        path = tmp_path / "event.json"
        path.write_text("{not json")

        result = CliRunner().invoke(main, ["handle", "--event", str(path)])

        assert result.exit_code == 2

    def test_event_path_from_environment(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("rollcall_cli.commands.handle.get_repo", return_value=MagicMock())
        mock_process = mocker.patch("rollcall_cli.commands.handle.process_rollup", return_value=None)

        result = CliRunner().invoke(
            main, ["handle"], env={"GITHUB_EVENT_PATH": _write_event(tmp_path, _payload())}
        )

        assert result.exit_code == 0
        mock_process.assert_called_once()

    def test_posted(self, mocker, tmp_path):
        _, store = _patch_common(mocker)
        mocker.patch("rollcall_cli.commands.handle.get_repo", return_value=MagicMock())
        mock_process = mocker.patch("rollcall_cli.commands.handle.process_rollup", return_value="body")

        result = CliRunner().invoke(main, ["handle", "--event", _write_event(tmp_path, _payload())])

        assert result.exit_code == 0
        assert "Posted" in result.output
        args, kwargs = mock_process.call_args
        assert args[1].issue_number == 100
        assert list(args[2]) == ["compiler"]
        assert args[3] is store
        assert kwargs["max_workers"] == 2

    def test_missing_token(self, mocker, tmp_path):
        _patch_common(mocker, config=_make_config(github_token=None), token=None)

        result = CliRunner().invoke(main, ["handle", "--event", _write_event(tmp_path, _payload())])

        assert result.exit_code == 2
        assert "token" in result.output.lower()

    def test_retryable_failure_exit_code(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("rollcall_cli.commands.handle.get_repo", return_value=MagicMock())
        mocker.patch("rollcall_cli.commands.handle.process_rollup", side_effect=CommentPostError("502"))

        result = CliRunner().invoke(main, ["handle", "--event", _write_event(tmp_path, _payload())])

        assert result.exit_code == 1

    def test_persist_failure_exit_code(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("rollcall_cli.commands.handle.get_repo", return_value=MagicMock())
        mocker.patch(
            "rollcall_cli.commands.handle.process_rollup",
            side_effect=StatePersistError("not saved", posted_comment="body"),
        )

        result = CliRunner().invoke(main, ["handle", "--event", _write_event(tmp_path, _payload())])

        assert result.exit_code == 3
        assert "Do not redeliver" in result.output

    def test_invalid_rules_exit_code(self, mocker, tmp_path):
        _patch_common(mocker, config=_make_config(mentions={"compiler": {"cc": [1]}}))
        mock_process = mocker.patch("rollcall_cli.commands.handle.process_rollup")

        result = CliRunner().invoke(main, ["handle", "--event", _write_event(tmp_path, _payload())])

        assert result.exit_code == 1
        mock_process.assert_not_called()


# ---------------------------------------------------------------------------
# check, rules and state commands
# ---------------------------------------------------------------------------


class TestCheckCommand:
    def _pr(self):
        pr = MagicMock(title="Rollup of 2 pull requests", body=ROLLUP_BODY, draft=False)
        pr.user.login = "alice"
        return pr

    def test_prints_comment_without_posting(self, mocker):
        _, store = _patch_common(mocker)
        repo = MagicMock()
        mocker.patch("rollcall_cli.commands.check.get_repo", return_value=repo)
        mocker.patch("rollcall_cli.commands.check.get_pull", return_value=self._pr())
        mocker.patch("rollcall_cli.commands.check.classify_rollup", return_value=[["compiler"], []])

        result = CliRunner().invoke(main, ["check", "--repo", "owner/repo", "--pr", "100"])

        assert result.exit_code == 0
        assert "Some changes occurred in compiler" in result.output
        assert "cc @bob" in result.output
        repo.get_issue.assert_not_called()
        store.save_mentions.assert_not_called()

    def test_already_mentioned(self, mocker):
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.return_value = MentionRecord(repo="owner/repo", issue_number=100, mentioned=["compiler"])
        _patch_common(mocker, store=store)
        mocker.patch("rollcall_cli.commands.check.get_repo", return_value=MagicMock())
        mocker.patch("rollcall_cli.commands.check.get_pull", return_value=self._pr())
        mocker.patch("rollcall_cli.commands.check.classify_rollup", return_value=[["compiler"], []])

        result = CliRunner().invoke(main, ["check", "--repo", "owner/repo", "--pr", "100"])

        assert result.exit_code == 0
        assert "Nothing new to mention" in result.output

    def test_warns_when_handle_would_ignore_pr(self, mocker):
        _patch_common(mocker)
        pr = self._pr()
        pr.draft = True
        mocker.patch("rollcall_cli.commands.check.get_repo", return_value=MagicMock())
        mocker.patch("rollcall_cli.commands.check.get_pull", return_value=pr)
        mocker.patch("rollcall_cli.commands.check.classify_rollup", return_value=[["compiler"], []])

        result = CliRunner().invoke(main, ["check", "--repo", "owner/repo", "--pr", "100"])

        assert result.exit_code == 0
        assert "would ignore this PR" in result.output

    def test_no_warning_for_active_rollup(self, mocker):
        _patch_common(mocker)
        mocker.patch("rollcall_cli.commands.check.get_repo", return_value=MagicMock())
        mocker.patch("rollcall_cli.commands.check.get_pull", return_value=self._pr())
        mocker.patch("rollcall_cli.commands.check.classify_rollup", return_value=[["compiler"], []])

        result = CliRunner().invoke(main, ["check", "--repo", "owner/repo", "--pr", "100"])

        assert "would ignore" not in result.output

    def test_no_rules_configured(self, mocker):
        _patch_common(mocker, config=_make_config(mentions={}))

        result = CliRunner().invoke(main, ["check", "--repo", "owner/repo", "--pr", "100"])

        assert result.exit_code != 0
        assert "mentions" in result.output


class TestRulesCommand:
    def test_lists_triggered_rules(self, mocker, tmp_path):
        _patch_common(mocker)
        diff = tmp_path / "change.diff"
        diff.write_text("diff --git a/compiler/x.rs b/compiler/x.rs\n--- a/compiler/x.rs\n+++ b/compiler/x.rs\n")

        result = CliRunner().invoke(main, ["rules", "--diff", str(diff), "--author", "carol"])

        assert result.exit_code == 0
        assert "compiler" in result.output
        assert "@bob" in result.output

    def test_author_only_rule_not_listed(self, mocker, tmp_path):
        _patch_common(mocker)
        diff = tmp_path / "change.diff"
        diff.write_text("diff --git a/compiler/x.rs b/compiler/x.rs\n")

        result = CliRunner().invoke(main, ["rules", "--diff", str(diff), "--author", "bob"])

        assert result.exit_code == 0
        assert "no mention rules triggered" in result.output


class TestStateCommand:
    def test_shows_recorded_mentions(self, mocker):
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.return_value = MentionRecord(
            repo="owner/repo", issue_number=100, mentioned=["compiler", "library"], updated_at="2026-10-01T12:00:00"
        )
        _patch_common(mocker, store=store)

        result = CliRunner().invoke(main, ["state", "--repo", "owner/repo", "--issue", "100"])

        assert result.exit_code == 0
        assert "compiler" in result.output
        assert "library" in result.output

    def test_nothing_recorded(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["state", "--repo", "owner/repo", "--issue", "100"])

        assert result.exit_code == 0
        assert "Nothing mentioned yet" in result.output

    def test_store_error(self, mocker):
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.side_effect = StoreError("database is locked")
        _patch_common(mocker, store=store)

        result = CliRunner().invoke(main, ["state", "--repo", "owner/repo", "--issue", "100"])

        assert result.exit_code == 1
        assert "database is locked" in result.output


# ---------------------------------------------------------------------------
# _build_store
# ---------------------------------------------------------------------------


class TestBuildStore:
    def test_sqlite_store(self, tmp_path):
        store = _build_store({"store": "sqlite", "store_path": str(tmp_path / "x.db")})
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_gist_requires_id_and_token(self):
        with pytest.raises(click.UsageError):
            _build_store({"store": "gist", "gist_id": None, "github_token": "tok"})

    def test_gist_store(self, mocker):
        mocker.patch("github.Github")
        from rollcall_store.gist import GistStore

        store = _build_store({"store": "gist", "gist_id": "abc", "github_token": "tok"})
        assert isinstance(store, GistStore)

    def test_unknown_store(self):
        with pytest.raises(click.UsageError):
            _build_store({"store": "redis"})


class TestStorePathOption:
    def _invoke(self, mocker, tmp_path, extra_args):
        cfg = tmp_path / ".rollcall.yml"
        cfg.write_text(f"store_path: {tmp_path / 'from-file.db'}\n")
        mocker.patch("rollcall_cli.auth.resolve_github_token", return_value="tok")
        store = MagicMock(spec=SQLiteStore)
        store.load_mentions.return_value = None
        build = mocker.patch("rollcall_cli.cli._build_store", return_value=store)

        result = CliRunner().invoke(
            main, ["--config", str(cfg), *extra_args, "state", "--repo", "owner/repo", "--issue", "1"]
        )

        assert result.exit_code == 0
        return build.call_args[0][0]

    def test_store_path_overrides_config_file(self, mocker, tmp_path):
        override = str(tmp_path / "override.db")
        config = self._invoke(mocker, tmp_path, ["--store-path", override])
        assert config["store_path"] == override

    def test_config_file_used_without_option(self, mocker, tmp_path):
        config = self._invoke(mocker, tmp_path, [])
        assert config["store_path"] == str(tmp_path / "from-file.db")
