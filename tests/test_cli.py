# Tests for the chatviewer CLI and MCP tools against a seeded store.

from datetime import datetime, timezone

import pytest
from click.testing import CliRunner

from chatviewer import cli as cli_module
from chatviewer import server
from chatviewer.storage import SessionStore, StoreError


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "chat_sessions.db"
    store = SessionStore(path)
    store.put_session(
        "4f1c2a9e-aaaa",
        "user:-where is my order?\nbot:-It ships tomorrow.",
        user_ip="203.0.113.7",
        updated_at=datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc),
    )
    store.put_session(
        "9b7d0e11-bbbb",
        "[]",
        updated_at=datetime(2024, 7, 1, 11, 0, tzinfo=timezone.utc),
    )
    store.close()

    monkeypatch.setattr(cli_module, "SQLITE_PATH", path)
    monkeypatch.setattr(server, "SQLITE_PATH", path)
    monkeypatch.setattr(server, "_store", None)
    yield path
    if server._store is not None:
        server._store.close()


@pytest.fixture
def runner():
    return CliRunner()


class TestCli:
    def test_sessions_lists_newest_first(self, runner, db_path):
        result = runner.invoke(cli_module.cli, ["sessions"])
        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert "4f1c2a9e..." in lines[0]
        assert "It ships tomorrow." in lines[0]
        assert "No messages yet" in lines[1]

    def test_sessions_search(self, runner, db_path):
        result = runner.invoke(cli_module.cli, ["sessions", "--search", "SHIPS"])
        assert result.exit_code == 0
        assert "4f1c2a9e" in result.output
        assert "9b7d0e11" not in result.output

        result = runner.invoke(cli_module.cli, ["sessions", "--search", "zzz"])
        assert "No sessions found." in result.output

    def test_show_prints_transcript(self, runner, db_path):
        result = runner.invoke(cli_module.cli, ["show", "4f1c2a9e-aaaa"])
        assert result.exit_code == 0
        assert "Origin: 203.0.113.7" in result.output
        assert "where is my order?" in result.output
        assert "It ships tomorrow." in result.output

    def test_show_empty_session(self, runner, db_path):
        result = runner.invoke(cli_module.cli, ["show", "9b7d0e11-bbbb"])
        assert result.exit_code == 0
        assert "No messages in this session." in result.output

    def test_show_unknown_session_fails(self, runner, db_path):
        result = runner.invoke(cli_module.cli, ["show", "nope"])
        assert result.exit_code != 0
        assert "Session not found: nope" in result.output

    def test_stats(self, runner, db_path):
        result = runner.invoke(cli_module.cli, ["stats"])
        assert result.exit_code == 0
        assert "Sessions:       2" in result.output

    def test_missing_database(self, runner, tmp_path, monkeypatch):
        monkeypatch.setattr(cli_module, "SQLITE_PATH", tmp_path / "absent.db")
        result = runner.invoke(cli_module.cli, ["sessions"])
        assert result.exit_code != 0
        assert "No session database found" in result.output

    def test_watch_reports_store_failure(self, runner, db_path, monkeypatch):
        def broken(self, seq):
            raise StoreError("disk I/O error")

        monkeypatch.setattr(SessionStore, "changes_since", broken)
        result = runner.invoke(cli_module.cli, ["watch", "--interval", "0.01"])
        assert result.exit_code == 1
        assert "Error: disk I/O error" in result.output
        assert not isinstance(result.exception, StoreError)
        # the initial listing is printed before the failure
        assert "4f1c2a9e..." in result.output


class TestServerTools:
    def test_list_sessions(self, db_path):
        text = server.list_sessions()
        assert text.index("4f1c2a9e-aaaa") < text.index("9b7d0e11-bbbb")
        assert "Last message: It ships tomorrow." in text

    def test_list_sessions_filtered(self, db_path):
        assert "No sessions found matching 'zzz'." == server.list_sessions("zzz")

    def test_get_transcript(self, db_path):
        text = server.get_transcript("4f1c2a9e-aaaa")
        assert "Origin: 203.0.113.7" in text
        assert "**User**:\nwhere is my order?" in text
        assert "**Bot**:\nIt ships tomorrow." in text

    def test_get_transcript_not_found(self, db_path):
        assert server.get_transcript("nope") == "Session not found: nope"

    def test_get_stats(self, db_path):
        assert "**Sessions**: 2" in server.get_stats()

    def test_no_database(self, tmp_path, monkeypatch):
        monkeypatch.setattr(server, "SQLITE_PATH", tmp_path / "absent.db")
        assert server.list_sessions().startswith("No chat session database found")
