"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
The engine is built in memory, so no state file or database is touched.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json

import pytest
from loguru import logger
from typer.testing import CliRunner

from practice_core.cli import main as cli_main
from practice_core.cli.main import app
from practice_core.core.tiers import DifficultyTier

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_engine(engine, monkeypatch):
    """Route every command to the in-memory test engine."""
    monkeypatch.setattr(cli_main, "build_engine", lambda: engine)
    yield engine
    # the CLI callback points loguru at the runner's stderr
    logger.remove()


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("stats", "monthly", "reconcile", "import-summary", "next"):
            assert command in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])

        assert "Usage" in result.output


class TestCLIStats:
    """Test stats and monthly commands."""

    def test_stats_empty(self):
        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0, result.output
        assert "Attempts: 0" in result.output
        assert "No formulas attempted yet" in result.output

    def test_stats_with_attempts(self, cli_engine, sample_item, sample_attempt):
        cli_engine.register_item(sample_item)
        cli_engine.record_attempt(sample_attempt)

        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0, result.output
        assert "Attempts: 1" in result.output
        assert "speed" in result.output
        assert "Mastered formulas: 0" in result.output

    def test_stats_category_filter(self, cli_engine, sample_attempt):
        cli_engine.record_attempt(sample_attempt)

        result = runner.invoke(app, ["stats", "--category", "MK"])

        assert result.exit_code == 0, result.output
        assert "No formulas attempted yet" in result.output

    def test_monthly(self):
        result = runner.invoke(app, ["monthly"])

        assert result.exit_code == 0, result.output
        assert "Monthly Summary" in result.output


class TestCLIImport:
    """Test import-summary."""

    def test_import_summary(self, cli_engine, tmp_path, sample_attempt):
        summary = tmp_path / "session.json"
        synthetic = {k: v for k, v in sample_attempt.items() if k != "itemId"}
        summary.write_text(json.dumps({"attempts": [synthetic, sample_attempt, {"correct": True}]}))

        result = runner.invoke(app, ["import-summary", str(summary)])

        assert result.exit_code == 0, result.output
        assert "added: 1" in result.output
        assert "replaced: 1" in result.output
        assert "invalid: 1" in result.output
        assert cli_engine.state.ledger.entries[0].source == "backfill"
        assert cli_engine.backend.load(cli_engine.state_key)["ledger"]

    def test_null_item_id_is_synthetic(self, cli_engine, tmp_path):
        summary = tmp_path / "session.json"
        rows = [{"itemId": None, "formulaId": "speed", "category": "AR", "correct": True, "difficulty": "medium"}]
        summary.write_text(json.dumps(rows))

        result = runner.invoke(app, ["import-summary", str(summary)])

        assert result.exit_code == 0, result.output
        entry = cli_engine.state.ledger.entries[0]
        assert entry.is_synthetic
        assert entry.source == "synthetic"

    def test_summary_accuracy_labels_rows_without_tier(self, cli_engine, tmp_path):
        summary = tmp_path / "session.json"
        rows = [
            {"formulaId": "speed", "category": "AR", "correct": True},
            {"formulaId": "area", "category": "MK", "correct": False, "difficulty": "easy"},
        ]
        summary.write_text(json.dumps({"accuracy": 0.9, "attempts": rows}))

        result = runner.invoke(app, ["import-summary", str(summary)])

        assert result.exit_code == 0, result.output
        tiers = {e.formula_id: e.difficulty_tier for e in cli_engine.state.ledger.entries}
        assert tiers == {"speed": DifficultyTier.VERY_HARD, "area": DifficultyTier.EASY}

    def test_import_missing_file(self, tmp_path):
        result = runner.invoke(app, ["import-summary", str(tmp_path / "missing.json")])

        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_import_invalid_json(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")

        result = runner.invoke(app, ["import-summary", str(bad)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output


class TestCLIReconcile:
    """Test reconcile."""

    def test_consistent(self, cli_engine, sample_attempt):
        cli_engine.record_attempt(sample_attempt)

        result = runner.invoke(app, ["reconcile"])

        assert result.exit_code == 0, result.output
        assert "match" in result.output

    def test_apply_rebuilt_statistics(self, cli_engine, sample_attempt):
        cli_engine.record_attempt(sample_attempt)
        cli_engine.state.model.record_outcome("speed", "AR", False, 0)

        result = runner.invoke(app, ["reconcile", "--apply"])

        assert result.exit_code == 0, result.output
        assert "applied" in result.output
        assert cli_engine.state.model.formulas["speed"].attempts == 1


class TestCLINext:
    """Test next."""

    def test_next_generates_item(self, cli_engine):
        result = runner.invoke(app, ["next", "--topic", "AR"])

        assert result.exit_code == 0, result.output
        assert "Item 1000" in result.output
        assert 1000 in cli_engine.state.pool

    def test_next_closes_generation_backend(self, cli_engine, monkeypatch):
        closed = []

        async def close():
            closed.append(True)

        monkeypatch.setattr(cli_engine.gate.backend, "close", close)

        result = runner.invoke(app, ["next"])

        assert result.exit_code == 0, result.output
        assert closed == [True]

    def test_next_prefers_pool(self, cli_engine, sample_item):
        cli_engine.register_item(sample_item)

        result = runner.invoke(app, ["next", "--topic", "AR"])

        assert result.exit_code == 0, result.output
        assert "Item 42" in result.output

    def test_next_with_exclusion(self, cli_engine, sample_item):
        cli_engine.register_item(sample_item)

        result = runner.invoke(app, ["next", "--topic", "AR", "--exclude", "42"])

        assert result.exit_code == 0, result.output
        assert "Item 1000" in result.output
