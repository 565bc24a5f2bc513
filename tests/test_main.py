"""Tests for the command-line harness."""
import pytest

from noted.main import main
from noted.observability import metrics


@pytest.fixture
def cli(test_config, tmp_path, noted_logger):
    """Run the CLI against a temp store and return its exit code."""
    db = str(tmp_path / "cli" / "notes.db")

    def run(*args):
        return main(["--database-path", db, *args])

    yield run
    metrics.set_metrics_file(None)


class TestCommands:
    def test_add_then_list(self, cli, capsys):
        assert cli("add", "Groceries", "milk and eggs") == 0
        note_id = capsys.readouterr().out.strip()
        assert note_id == "1"

        assert cli("list") == 0
        out = capsys.readouterr().out
        assert "Groceries" in out
        assert "milk and eggs" in out

    def test_search(self, cli, capsys):
        cli("add", "Alpha project", "planning")
        cli("add", "Meeting", "discuss alpha later")
        capsys.readouterr()

        assert cli("search", "alpha") == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("1\t")

    def test_edit_keeps_unspecified_fields(self, cli, capsys):
        cli("add", "Title", "Body")
        assert cli("edit", "1", "--title", "Renamed") == 0
        capsys.readouterr()

        cli("list")
        out = capsys.readouterr().out
        assert "Renamed" in out
        assert "Body" in out

    def test_tag_and_remove(self, cli, capsys):
        cli("add", "Title", "Body")
        assert cli("tag", "1", "home", "weekly") == 0
        cli("list")
        assert "[home, weekly]" in capsys.readouterr().out

        assert cli("rm", "1") == 0
        cli("list")
        assert "Title" not in capsys.readouterr().out

    def test_missing_note_reports_error(self, cli, capsys):
        assert cli("rm", "42") == 1
        assert "Note with ID 42 not found" in capsys.readouterr().err


class TestOptions:
    def test_directory_database_path_is_rejected(self, test_config, tmp_path, capsys, noted_logger):
        assert main(["--database-path", str(tmp_path), "list"]) == 2
        assert "directory" in capsys.readouterr().err

    def test_subcommand_is_required(self, test_config):
        with pytest.raises(SystemExit):
            main([])
