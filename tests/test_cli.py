"""Tests for the CLI."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from turnaround_tracker.cli import main


@pytest.fixture
def cli_env():
    """Set up a temp environment for CLI testing."""
    with tempfile.TemporaryDirectory() as tmp:
        env = {
            "TT_DB_PATH": str(Path(tmp) / "test.db"),
            "TT_SIMULATION_DATE": "2024-08-15T10:00",
        }
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        yield CliRunner(), Path(tmp)

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture
def seeded(cli_env):
    """Package P1 with two HE-101A activities, 08-12 and 12-16."""
    runner, tmp = cli_env
    runner.invoke(main, [
        "package", "add", "Exchangers", "--id", "P1",
        "--start", "2024-08-15 08:00", "--end", "2024-08-15 16:00",
    ])
    runner.invoke(main, [
        "activity", "add", "Blinding", "--id", "A", "--package", "P1", "--tag", "HE-101A",
        "--start", "2024-08-15 08:00", "--end", "2024-08-15 12:00",
    ])
    runner.invoke(main, [
        "activity", "add", "Dismantle", "--id", "B", "--package", "P1", "--tag", "HE-101A",
        "--start", "2024-08-15 12:00", "--hours", "4",
    ])
    return runner, tmp


def _activity(runner, activity_id):
    result = runner.invoke(main, ["activity", "list", "--json"])
    return next(a for a in json.loads(result.output) if a["id"] == activity_id)


class TestCLI:
    def test_help(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Turnaround Tracker" in result.output

    def test_init_db(self, cli_env):
        runner, tmp = cli_env
        result = runner.invoke(main, ["init-db"])
        assert result.exit_code == 0
        assert (tmp / "test.db").exists()


class TestPackageCommands:
    def test_add_generates_id(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, [
            "package", "add", "Pump Refurb",
            "--start", "2024-08-16 09:00", "--end", "2024-08-19 18:00", "-p", "high",
        ])
        assert result.exit_code == 0
        assert "PKG-PUMP-REFURB" in result.output

    def test_add_invalid_window(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, [
            "package", "add", "Bad", "--start", "2024-08-16", "--end", "2024-08-15",
        ])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_list_and_show(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["package", "list"])
        assert result.exit_code == 0
        assert "P1: Exchangers" in result.output
        assert "Not Started" in result.output

        result = runner.invoke(main, ["package", "show", "P1"])
        assert result.exit_code == 0
        assert "HE-101A:" in result.output
        assert "A: Blinding" in result.output

    def test_show_missing(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["package", "show", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_delete_cascades(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["package", "delete", "P1"])
        assert result.exit_code == 0
        assert "2 activities" in result.output
        result = runner.invoke(main, ["activity", "list"])
        assert "No activities found." in result.output


class TestActivityCommands:
    def test_edit_cascades(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["activity", "edit", "A", "--end", "2024-08-15 14:00"])
        assert result.exit_code == 0
        assert "Shifted B" in result.output
        b = _activity(runner, "B")
        assert b["deadline"] == "2024-08-15T14:00:00"
        assert b["planned_end_date"] == "2024-08-15T18:00:00"

        result = runner.invoke(main, ["package", "list", "--json"])
        assert json.loads(result.output)[0]["end_date"] == "2024-08-15T18:00:00"

    def test_add_requires_end_or_hours(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, [
            "activity", "add", "Inspect", "--package", "P1", "--tag", "X", "--start", "2024-08-15",
        ])
        assert result.exit_code == 1

    def test_add_unknown_package(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, [
            "activity", "add", "Inspect", "--package", "NOPE", "--tag", "X",
            "--start", "2024-08-15", "--hours", "1",
        ])
        assert result.exit_code == 1
        assert "Package not found" in result.output

    def test_status_flow(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["activity", "status", "A", "start"])
        assert result.exit_code == 0
        assert "A: In Progress" in result.output

        result = runner.invoke(main, ["activity", "status", "A", "hold", "--reason", "Tooling"])
        assert result.exit_code == 0
        assert _activity(runner, "A")["hold_history"][0]["reason"] == "Tooling"

        result = runner.invoke(main, ["activity", "status", "A", "On Hold"])
        assert result.exit_code == 1
        assert "reason is required" in result.output

        result = runner.invoke(main, ["activity", "status", "A", "done"])
        assert result.exit_code == 0
        a = _activity(runner, "A")
        assert a["status"] == "Completed"
        assert a["hold_history"][0]["end_time"] is not None

    def test_complete_before_start_rejected(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["activity", "status", "A", "completed"])
        assert result.exit_code == 1
        assert _activity(runner, "A")["status"] == "Not Started"

    def test_prerequisite_reported(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["activity", "status", "B", "in-progress"])
        assert result.exit_code == 1
        assert "Blinding" in result.output
        assert _activity(runner, "B")["status"] == "Not Started"

    def test_unknown_status(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["activity", "status", "A", "paused"])
        assert result.exit_code != 0

    def test_retag_and_history(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["activity", "retag", "HE-102", "B"])
        assert result.exit_code == 0
        assert "Retagged 1" in result.output
        result = runner.invoke(main, ["activity", "history", "B"])
        assert "retagged: HE-101A -> HE-102" in result.output

    def test_delete(self, seeded):
        runner, _ = seeded
        assert runner.invoke(main, ["activity", "delete", "A"]).exit_code == 0
        assert runner.invoke(main, ["activity", "delete", "A"]).exit_code == 1


class TestMetricsCommands:
    def test_stats_json(self, seeded):
        runner, _ = seeded
        runner.invoke(main, ["activity", "status", "A", "start"])
        result = runner.invoke(main, ["stats", "--json", "--as-of", "2024-08-15 12:00"])
        assert result.exit_code == 0
        stats = json.loads(result.output)
        assert stats["planned_progress"] == 50.0
        assert stats["on_track"] == ["A"]
        assert stats["counts"]["upcoming"] == 1

    def test_stats_text_uses_simulation_date(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["stats"])
        assert result.exit_code == 0
        assert "As of 2024-08-15 10:00" in result.output
        assert "Planned progress: 25.0%" in result.output

    def test_holds(self, seeded):
        runner, _ = seeded
        runner.invoke(main, ["activity", "status", "A", "start"])
        runner.invoke(main, ["activity", "status", "A", "hold", "--reason", "Permit"])
        result = runner.invoke(main, ["holds", "summary"])
        assert result.exit_code == 0
        assert "Permit" in result.output
        result = runner.invoke(main, ["holds", "log"])
        assert "A: Permit" in result.output
        assert "ongoing" in result.output

    def test_report(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["report"])
        assert result.exit_code == 0
        assert "Packages:" in result.output
        assert "P1: Exchangers" in result.output

    def test_scurve_empty_for_single_day(self, seeded):
        runner, _ = seeded
        result = runner.invoke(main, ["scurve"])
        assert result.exit_code == 0
        assert "No data" in result.output


class TestImportCommands:
    def test_template_help_mentions_example_rows(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["template", "--help"])
        assert "example rows" in result.output

    def test_template_then_import(self, cli_env):
        runner, tmp = cli_env
        path = tmp / "template.xlsx"
        result = runner.invoke(main, ["template", str(path)])
        assert result.exit_code == 0
        assert path.exists()

        result = runner.invoke(main, ["import", str(path)])
        assert result.exit_code == 0
        assert "Preview only" in result.output
        assert "No packages" in runner.invoke(main, ["package", "list"]).output

        result = runner.invoke(main, ["import", str(path), "--commit"])
        assert result.exit_code == 0
        assert "Imported 2 packages and 3 activities" in result.output
        assert "PKG-EX-01" in runner.invoke(main, ["package", "list"]).output


class TestSlackCommands:
    def test_status_without_channel(self, seeded):
        runner, _ = seeded
        os.environ.pop("TT_SLACK_CHANNEL", None)
        result = runner.invoke(main, ["slack", "status"])
        assert result.exit_code == 1
        assert "No channel" in result.output
