"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work against a
throwaway SQLite file.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import pytest
from typer.testing import CliRunner

from playpath.cli.main import app
from playpath.core.errors import StorageFailure
from playpath.progression.engine import ProgressionEngine

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture
def db_args(tmp_path):
    return ["--database-url", f"sqlite:///{tmp_path / 'progress.db'}"]


def invoke(db_args, *args):
    return runner.invoke(app, [*db_args, *args])


@pytest.fixture
def seeded(db_args):
    assert invoke(db_args, "db", "init").exit_code == 0
    assert invoke(db_args, "content", "seed").exit_code == 0
    assert invoke(db_args, "child", "add", "ana", "Ana", "--age", "6", "--premium").exit_code == 0
    return db_args


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "complete" in result.output
        assert "status" in result.output

    @pytest.mark.parametrize("group", ["db", "content", "child"])
    def test_group_help(self, group):
        result = runner.invoke(app, [group, "--help"])
        assert result.exit_code == 0


class TestSetupCommands:
    def test_db_init(self, db_args):
        result = invoke(db_args, "db", "init")

        assert result.exit_code == 0, result.output
        assert "Database ready" in result.output

    def test_content_seed_and_validate(self, db_args):
        seed = invoke(db_args, "content", "seed")
        assert seed.exit_code == 0, seed.output
        assert "Seeded 5 subjects" in seed.output

        validate = invoke(db_args, "content", "validate")
        assert validate.exit_code == 0, validate.output
        assert "Content graph is valid" in validate.output

    def test_child_add_and_list(self, seeded):
        result = invoke(seeded, "child", "list")

        assert result.exit_code == 0
        assert "Ana" in result.output


class TestProgressionCommands:
    def test_complete_activity(self, seeded):
        result = invoke(seeded, "complete", "ana", "math-01", "--total", "5", "--errors", "0")

        assert result.exit_code == 0, result.output
        assert "celebration.stars.3" in result.output
        assert "new activities unlocked" in result.output

    def test_complete_unknown_child(self, seeded):
        result = invoke(seeded, "complete", "nobody", "math-01")
        assert result.exit_code == 1

    def test_complete_invalid_outcome(self, seeded):
        result = invoke(seeded, "complete", "ana", "math-01", "--total", "0")
        assert result.exit_code == 1

    def test_status(self, seeded):
        invoke(seeded, "complete", "ana", "math-01")
        result = invoke(seeded, "status", "ana", "--subject", "math")

        assert result.exit_code == 0, result.output
        assert "math-02" in result.output
        assert "Streak" in result.output

    def test_rebuild(self, seeded):
        invoke(seeded, "complete", "ana", "math-01")
        result = invoke(seeded, "rebuild", "ana")

        assert result.exit_code == 0, result.output
        assert "Rebuilt ana" in result.output

    def test_path(self, seeded):
        result = invoke(seeded, "path", "ana", "--subject", "math", "--length", "3")

        assert result.exit_code == 0, result.output
        assert "math-01" in result.output
        assert "Next milestone" in result.output

    @pytest.mark.parametrize(
        "method,args",
        [
            ("process_completion", ["complete", "ana", "math-01"]),
            ("get_unlocked_activities", ["status", "ana"]),
            ("rebuild_derived_state", ["rebuild", "ana"]),
        ],
    )
    def test_storage_failure_exits_cleanly(self, seeded, monkeypatch, method, args):
        def fail(*_args, **_kwargs):
            raise StorageFailure("database is locked")

        monkeypatch.setattr(ProgressionEngine, method, fail)
        result = invoke(seeded, *args)

        assert result.exit_code == 1
        assert "database is locked" in result.output
