"""CLI tests using typer's CliRunner against a temporary database."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from typer.testing import CliRunner

from scriptdesk.cli import app

runner = CliRunner()


@pytest.fixture
def cli_db(tmp_path: Path) -> Path:
    return tmp_path / "cli.db"


def invoke(db: Path, *args: str):
    return runner.invoke(app, [*args, "--db", str(db)])


def only_id(db: Path, table: str) -> str:
    conn = sqlite3.connect(db)
    try:
        return conn.execute(f"SELECT id FROM {table}").fetchone()[0]
    finally:
        conn.close()


class TestDatabaseCommands:
    def test_init_then_status(self, cli_db):
        result = invoke(cli_db, "init")
        assert result.exit_code == 0
        assert cli_db.exists()

        result = invoke(cli_db, "status")
        assert result.exit_code == 0
        assert "parser_filter_terms" in result.output

    def test_status_without_database(self, cli_db):
        result = invoke(cli_db, "status")
        assert result.exit_code == 1
        assert "Database not found" in result.output


class TestOverrideCommands:
    def test_terms_lifecycle(self, cli_db):
        assert invoke(cli_db, "terms", "add", "スキップ").exit_code == 0
        listed = invoke(cli_db, "terms", "list")
        assert "スキップ" in listed.output

        assert invoke(cli_db, "terms", "remove", "スキップ").exit_code == 0
        assert "No blocked terms." in invoke(cli_db, "terms", "list").output

    def test_rules_lifecycle(self, cli_db):
        result = invoke(cli_db, "rules", "set", "教室", "location")
        assert result.exit_code == 0
        assert "location" in invoke(cli_db, "rules", "list").output

        assert invoke(cli_db, "rules", "clear", "教室").exit_code == 0
        assert "教室" not in invoke(cli_db, "rules", "list").output

    def test_rules_reject_unknown_classification(self, cli_db):
        result = invoke(cli_db, "rules", "set", "教室", "narrator")
        assert result.exit_code != 0

    def test_speakers(self, cli_db):
        assert invoke(cli_db, "speakers", "add", "アリス").exit_code == 0
        assert "アリス" in invoke(cli_db, "speakers", "list").output


class TestParseCommand:
    def test_parse_with_stored_speakers(self, cli_db, tmp_path):
        transcript = tmp_path / "story.txt"
        transcript.write_text("アリス\nこんにちは\n機能一覧\nボブ\nやあ", encoding="utf-8")
        invoke(cli_db, "speakers", "add", "アリス")
        invoke(cli_db, "speakers", "add", "ボブ")

        result = invoke(cli_db, "parse", str(transcript))
        assert result.exit_code == 0
        assert "こんにちは" in result.output
        assert "機能一覧" not in result.output

    def test_parse_empty_file(self, cli_db, tmp_path):
        transcript = tmp_path / "empty.txt"
        transcript.write_text("\n\n", encoding="utf-8")
        result = invoke(cli_db, "parse", str(transcript))
        assert result.exit_code == 1
        assert "Nothing to parse." in result.output


class TestBodyCommands:
    def test_import_persist_and_annotate(self, cli_db, tmp_path):
        transcript = tmp_path / "story.txt"
        transcript.write_text("教室\nアリス\nおはよう", encoding="utf-8")
        invoke(cli_db, "speakers", "add", "アリス")
        invoke(cli_db, "tags", "add", "伏線")
        assert invoke(cli_db, "threads", "add", "Main story").exit_code == 0
        thread_id = only_id(cli_db, "threads")

        result = invoke(cli_db, "body", "import", str(transcript), "--thread", thread_id)
        assert result.exit_code == 0, result.output

        result = invoke(cli_db, "entries", "persist", "--thread", thread_id)
        assert result.exit_code == 0
        assert "Saved 2 entries" in result.output

        result = invoke(cli_db, "annotate", "add", "0", "2", "伏線", "--thread", thread_id)
        assert result.exit_code == 0, result.output
        assert "Tagged 0-2" in result.output

        result = invoke(cli_db, "annotate", "add", "1", "4", "伏線", "--thread", thread_id)
        assert result.exit_code == 1
        assert "overlaps" in result.output

        listed = invoke(cli_db, "annotate", "list", "--thread", thread_id)
        assert "伏線" in listed.output

    def test_episodes(self, cli_db):
        invoke(cli_db, "threads", "add", "Main story")
        thread_id = only_id(cli_db, "threads")
        result = invoke(cli_db, "episodes", "add", thread_id, "第1話", "--label", "EP1")
        assert result.exit_code == 0
        assert "EP1" in invoke(cli_db, "episodes", "list", thread_id).output

        episode_id = only_id(cli_db, "subitem_episodes")
        result = invoke(cli_db, "body", "show", "--episode", episode_id)
        assert result.exit_code == 0
        assert "Nothing to parse." in result.output

    def test_target_required(self, cli_db):
        result = invoke(cli_db, "body", "show")
        assert result.exit_code == 1
        assert "exactly one of --thread or --episode" in result.output

    def test_missing_thread(self, cli_db):
        result = invoke(cli_db, "body", "show", "--thread", "nope")
        assert result.exit_code == 1
        assert "thread:nope not found" in result.output

    def test_unknown_tag(self, cli_db):
        invoke(cli_db, "threads", "add", "Main story")
        thread_id = only_id(cli_db, "threads")
        result = invoke(cli_db, "annotate", "add", "0", "1", "nope", "--thread", thread_id)
        assert result.exit_code == 1
        assert "Unknown tag: nope" in result.output
