"""Tests for the MCP tool functions, called with a stub request context."""

import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from turnaround_tracker.config import Config
from turnaround_tracker.core.clock import SimulationClock
from turnaround_tracker.mcp import server

NOW = datetime(2024, 8, 15, 12, 0)


@pytest.fixture
def ctx():
    with tempfile.TemporaryDirectory() as tmp:
        config = Config(db_path=Path(tmp) / "test.db", slack_channel="#turnaround")
        ctx = MagicMock()
        ctx.request_context.lifespan_context = server.AppContext(
            db_path=config.db_path, config=config, clock=SimulationClock(pinned=NOW)
        )
        server.upsert_package(ctx, "Exchangers", "2024-08-15T08:00", "2024-08-15T16:00", package_id="P1")
        server.upsert_activity(
            ctx, "A", "Blinding", "P1", "HE-101A", "2024-08-15T08:00", "2024-08-15T12:00"
        )
        server.upsert_activity(
            ctx, "B", "Dismantle", "P1", "HE-101A", "2024-08-15T12:00", "2024-08-15T16:00"
        )
        yield ctx


class TestPackageTools:
    def test_list_and_get(self, ctx):
        assert [p["id"] for p in server.list_packages(ctx)] == ["P1"]
        pkg = server.get_package(ctx, "P1")
        assert [a["id"] for a in pkg["activities"]] == ["A", "B"]
        assert "error" in server.get_package(ctx, "nope")

    def test_invalid_date(self, ctx):
        result = server.upsert_package(ctx, "Pumps", "soon", "later")
        assert "error" in result

    def test_delete(self, ctx):
        assert server.delete_package(ctx, "P1") == {"deleted": "P1"}
        assert server.list_activities(ctx) == []


class TestActivityTools:
    def test_update_reports_rescheduled(self, ctx):
        result = server.upsert_activity(ctx, "A", planned_end_date="2024-08-15T13:00")
        assert result["planned_end_date"] == "2024-08-15T13:00:00"
        assert result["rescheduled"] == ["B"]
        b = next(a for a in server.list_activities(ctx) if a["id"] == "B")
        assert b["deadline"] == "2024-08-15T13:00:00"

    def test_update_with_offset_dates(self, ctx):
        result = server.upsert_activity(
            ctx, "A", deadline="2024-08-15T08:00:00+00:00", planned_end_date="2024-08-15T12:00:00+00:00"
        )
        assert "error" not in result
        assert "+" not in result["deadline"]
        assert len(server.list_activities(ctx)) == 2

    def test_create_requires_fields(self, ctx):
        result = server.upsert_activity(ctx, title="Inspect", package_id="P1")
        assert "Missing fields" in result["error"]

    def test_status_uses_clock(self, ctx):
        result = server.set_activity_status(ctx, "A", "In Progress")
        assert result["start_time"] == NOW.isoformat()

    def test_status_errors(self, ctx):
        assert "error" in server.set_activity_status(ctx, "B", "In Progress")
        assert "error" in server.set_activity_status(ctx, "A", "Completed")
        assert "error" in server.set_activity_status(ctx, "nope", "In Progress")

    def test_delete(self, ctx):
        assert server.delete_activity(ctx, "A") == {"deleted": "A"}
        assert "error" in server.delete_activity(ctx, "A")


class TestMetricsTools:
    def _progress(self, ctx):
        server.set_activity_status(ctx, "A", "In Progress")
        server.set_activity_status(ctx, "A", "Completed")

    def test_formula_by_default(self, ctx):
        stats = server.project_stats(ctx)
        assert stats["display_estimate"]["source"] == "formula"
        assert stats["planned_progress"] == 50.0

    def test_prediction_used_inside_band(self, ctx):
        self._progress(ctx)
        stats = server.project_stats(ctx, predicted_end="2024-08-15T18:00", reasoning="crew")
        assert stats["display_estimate"]["source"] == "external"
        assert stats["display_estimate"]["reasoning"] == "crew"
        assert stats["display_variance_hours"] == -2.0

    def test_prediction_ignored_at_zero_progress(self, ctx):
        stats = server.project_stats(ctx, predicted_end="2024-08-15T18:00")
        assert stats["display_estimate"]["source"] == "formula"

    def test_prediction_with_offset(self, ctx):
        self._progress(ctx)
        stats = server.project_stats(ctx, predicted_end="2024-08-15T18:00:00+00:00")
        assert "error" not in stats
        assert stats["display_estimate"]["source"] == "external"

    def test_hold_tools_reject_bad_as_of(self, ctx):
        assert "error" in server.hold_log(ctx, as_of="yesterday")
        assert "error" in server.hold_summary(ctx, as_of="yesterday")

    def test_holds(self, ctx):
        server.set_activity_status(ctx, "A", "In Progress")
        server.set_activity_status(ctx, "A", "On Hold", reason="Rain")
        assert server.hold_log(ctx)[0]["reason"] == "Rain"
        assert server.hold_summary(ctx, as_of="2024-08-15T13:00")[0]["total_hours"] == 1.0


class TestSlackTools:
    @patch("turnaround_tracker.mcp.server.slack_mod.send_message")
    def test_notify_status(self, mock_send, ctx):
        mock_send.return_value = MagicMock(channel="C1", ts="1.0")
        assert server.notify_status(ctx) == {"channel": "C1", "ts": "1.0"}
        assert mock_send.call_args[0][1] == "#turnaround"

    def test_notify_status_not_configured(self, ctx):
        assert "error" in server.notify_status(ctx)
