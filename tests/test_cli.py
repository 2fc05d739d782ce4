"""Tests for the bookflow command-line interface."""

import json

import pytest
from click.testing import CliRunner


@pytest.fixture
def runner(tmp_path, monkeypatch):
    """Return a CliRunner with storage redirected to tmp_path."""
    monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "books.db"))
    monkeypatch.setenv("CHROMA_PERSIST_DIR", str(tmp_path / "chroma"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("MEMORY_ENABLED", "false")
    monkeypatch.chdir(tmp_path)
    return CliRunner()


def _invoke(runner, *args):
    from cli.main import cli
    return runner.invoke(cli, list(args))


class TestInitCommand:
    def test_init(self, runner):
        result = _invoke(runner, "init", "-b", "c1", "-t", "Mira's Garden")
        assert result.exit_code == 0, result.output
        assert "c1" in result.output

    def test_init_twice_resumes(self, runner):
        _invoke(runner, "init", "-b", "c1")
        result = _invoke(runner, "init", "-b", "c1")
        assert result.exit_code == 0
        assert "Resumed" in result.output


class TestStepCommands:
    def test_update_step_inline(self, runner):
        _invoke(runner, "init", "-b", "c1")
        result = _invoke(runner, "update-step", "-b", "c1", "-s", "1", "-d", '{"premise": "A fox"}')
        assert result.exit_code == 0, result.output
        assert "Step 1 updated" in result.output

    def test_update_step_from_file(self, runner, tmp_path):
        _invoke(runner, "init", "-b", "c1")
        data = tmp_path / "chars.json"
        data.write_text(json.dumps({"characters": [{"name": "Kip"}], "mood": "x"}), encoding="utf-8")
        result = _invoke(runner, "update-step", "-b", "c1", "-s", "2", "-f", str(data))
        assert result.exit_code == 0, result.output
        assert "mood" in result.output

    def test_update_step_needs_one_source(self, runner):
        result = _invoke(runner, "update-step", "-b", "c1", "-s", "1")
        assert result.exit_code != 0
        assert "exactly one" in result.output

    def test_update_step_bad_json(self, runner):
        result = _invoke(runner, "update-step", "-b", "c1", "-s", "1", "-d", "{nope")
        assert result.exit_code != 0

    def test_update_unknown_book_fails(self, runner):
        result = _invoke(runner, "update-step", "-b", "ghost", "-s", "1", "-d", "{}")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_picture_book_gate(self, runner):
        _invoke(runner, "init", "-b", "c1", "--picture-book")
        result = _invoke(runner, "update-step", "-b", "c1", "-s", "2", "-d",
                         '{"characters": [{"name": "A"}]}')
        assert result.exit_code == 1
        assert "Character portrait for A" in result.output

    def test_approve_reject_regenerate_finalize(self, runner):
        _invoke(runner, "init", "-b", "c1")
        assert _invoke(runner, "approve", "-b", "c1", "-s", "1").exit_code == 0
        rejected = _invoke(runner, "approve", "-b", "c1", "-s", "2", "--reject", "-m", "Older Kip")
        assert rejected.exit_code == 0
        assert "Older Kip" in rejected.output
        assert _invoke(runner, "regenerate", "-b", "c1", "-s", "2").exit_code == 0
        finalized = _invoke(runner, "finalize", "-b", "c1")
        assert finalized.exit_code == 0
        assert "Pages" in finalized.output

    def test_step_out_of_range(self, runner):
        result = _invoke(runner, "approve", "-b", "c1", "-s", "7")
        assert result.exit_code == 2


class TestStatusCommand:
    def test_empty(self, runner):
        result = _invoke(runner, "status")
        assert result.exit_code == 0
        assert "No books yet" in result.output

    def test_lists_books(self, runner):
        _invoke(runner, "init", "-b", "c1", "-t", "Mira's Garden")
        _invoke(runner, "init", "-b", "c2", "-t", "Kip Flies")
        result = _invoke(runner, "status")
        assert "Mira's Garden" in result.output
        assert "Kip Flies" in result.output

    def test_book_detail(self, runner):
        _invoke(runner, "init", "-b", "c1", "-t", "Mira's Garden")
        _invoke(runner, "update-step", "-b", "c1", "-s", "2", "-d", '{"characters": [{"name": "Mira"}]}')
        result = _invoke(runner, "status", "-b", "c1")
        assert result.exit_code == 0
        assert "Character Creation" in result.output
        assert "Mira" in result.output

    def test_missing_book(self, runner):
        assert _invoke(runner, "status", "-b", "ghost").exit_code == 1

    def test_user_scoping(self, runner):
        _invoke(runner, "--user", "alice", "init", "-b", "c1", "-t", "Alice Book")
        result = _invoke(runner, "--user", "bob", "status")
        assert "Alice Book" not in result.output


class TestAssetCommands:
    def test_add_prop_then_search(self, runner):
        added = _invoke(runner, "add-prop", "-b", "c1", "-t", "character", "-n", "Kip",
                        "-i", "https://img/kip.png")
        assert added.exit_code == 0, added.output
        result = _invoke(runner, "search-images", "-b", "c1", "-q", "Kip")
        assert result.exit_code == 0
        assert "https://img/kip.png" in result.output

    def test_search_no_results(self, runner):
        result = _invoke(runner, "search-images", "-b", "c1", "-q", "Dragon")
        assert result.exit_code == 0
        assert "No existing" in result.output

    def test_edit_chapter_from_file(self, runner, tmp_path):
        _invoke(runner, "init", "-b", "c1")
        text = tmp_path / "ch1.md"
        text.write_text("Kip climbed the barn.\n", encoding="utf-8")
        result = _invoke(runner, "edit-chapter", "-b", "c1", "-c", "1", "-f", str(text))
        assert result.exit_code == 0, result.output
        assert "Chapter 1 saved" in result.output

    def test_edit_chapter_missing_book(self, runner, tmp_path):
        text = tmp_path / "ch1.md"
        text.write_text("text", encoding="utf-8")
        result = _invoke(runner, "edit-chapter", "-b", "ghost", "-c", "1", "-f", str(text))
        assert result.exit_code == 1

    def test_props_lists_registered_images(self, runner):
        _invoke(runner, "add-prop", "-b", "c1", "-t", "environment", "-n", "Greenhouse",
                "-i", "https://img/gh.png")
        result = _invoke(runner, "props", "-b", "c1")
        assert result.exit_code == 0, result.output
        assert "Greenhouse" in result.output
        assert "environment" in result.output

    def test_props_empty(self, runner):
        result = _invoke(runner, "props", "-b", "c1")
        assert result.exit_code == 0
        assert "No images registered" in result.output


class TestBackupCommand:
    def test_backup_copies_database(self, runner, tmp_path):
        _invoke(runner, "init", "-b", "c1", "-t", "Mira's Garden")
        target = tmp_path / "backups" / "books.db"
        result = _invoke(runner, "backup", str(target))
        assert result.exit_code == 0, result.output
        assert target.exists()

        from models.database import Database
        assert Database(target).get_book_row("c1", "local-user") is not None
