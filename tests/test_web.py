"""Tests for the web dashboard API."""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from starlette.testclient import TestClient

from turnaround_tracker.core import activities as activities_mod
from turnaround_tracker.core import packages as packages_mod
from turnaround_tracker.core import transitions as transitions_mod
from turnaround_tracker.db.engine import open_store
from turnaround_tracker.db.models import Activity, Package
from turnaround_tracker.web.app import create_app

T0 = datetime(2024, 8, 15, 8, 0)


@pytest.fixture
def web_env():
    """Set up a temp environment for web API testing."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"
        env = {"TT_DB_PATH": str(db_path), "TT_SIMULATION_DATE": "2024-08-15T12:00"}
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        # Seed data
        with open_store(db_path) as store:
            packages_mod.upsert_package(store, Package("P1", "Exchangers", T0, T0, priority="High"))
            packages_mod.upsert_package(store, Package("P2", "Pumps", T0, T0))
            for activity in (
                Activity("A", "Blinding", "P1", "HE-101A", T0, T0 + timedelta(hours=2)),
                Activity("B", "Dismantle", "P1", "HE-101A", T0 + timedelta(hours=2), T0 + timedelta(hours=6)),
                Activity("C", "Lockout", "P2", "P-201", T0, T0 + timedelta(hours=8)),
            ):
                activities_mod.upsert_activity(store, activity)
            transitions_mod.set_activity_status(store, "A", "In Progress", now=T0)
            transitions_mod.set_activity_status(store, "A", "Completed", now=T0 + timedelta(hours=2))
            transitions_mod.set_activity_status(store, "C", "In Progress", now=T0)
            transitions_mod.set_activity_status(
                store, "C", "On Hold", reason="Tooling", now=T0 + timedelta(hours=1)
            )

        app = create_app()
        client = TestClient(app)
        yield client

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


class TestDashboardPage:
    def test_index_returns_html(self, web_env):
        resp = web_env.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "Turnaround Tracker" in resp.text


class TestPackagesAPI:
    def test_list_packages(self, web_env):
        resp = web_env.get("/api/packages")
        assert resp.status_code == 200
        data = {p["id"]: p for p in resp.json()}
        assert data["P1"]["metrics"]["status"] == "In Progress"
        assert data["P1"]["metrics"]["progress"] == 50.0
        assert data["P2"]["metrics"]["status"] == "On Hold"

    def test_get_package(self, web_env):
        resp = web_env.get("/api/packages/P1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["end_date"] == "2024-08-15T14:00:00"
        assert [a["id"] for a in data["activities"]] == ["A", "B"]

    def test_get_package_not_found(self, web_env):
        resp = web_env.get("/api/packages/nope")
        assert resp.status_code == 404


class TestActivitiesAPI:
    def test_filter_by_status(self, web_env):
        resp = web_env.get("/api/activities", params={"status": "On Hold"})
        assert [a["id"] for a in resp.json()] == ["C"]

    def test_get_activity_with_events(self, web_env):
        resp = web_env.get("/api/activities/A")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "Completed"
        assert [e["event_type"] for e in data["events"]] == ["created", "status_changed", "status_changed"]

    def test_get_activity_not_found(self, web_env):
        assert web_env.get("/api/activities/nope").status_code == 404

    def test_set_status(self, web_env):
        resp = web_env.post("/api/activities/B/status", json={"status": "In Progress"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "In Progress"
        assert data["start_time"] == "2024-08-15T12:00:00"

    def test_set_status_hold_needs_reason(self, web_env):
        resp = web_env.post("/api/activities/B/status", json={"status": "On Hold"})
        assert resp.status_code == 400
        assert "reason" in resp.json()["error"]

    def test_set_status_invalid_transition(self, web_env):
        resp = web_env.post("/api/activities/B/status", json={"status": "Completed"})
        assert resp.status_code == 409

    def test_set_status_unknown(self, web_env):
        resp = web_env.post("/api/activities/nope/status", json={"status": "In Progress"})
        assert resp.status_code == 404

    def test_set_status_missing_body(self, web_env):
        resp = web_env.post("/api/activities/B/status", json={})
        assert resp.status_code == 400


class TestMetricsAPI:
    def test_stats(self, web_env):
        resp = web_env.get("/api/stats")
        assert resp.status_code == 200
        data = resp.json()
        assert data["as_of"] == "2024-08-15T12:00:00"
        assert data["actual_progress"] == pytest.approx(33.3)
        assert data["planned_progress"] == 50.0
        assert data["on_track"] == ["C"]
        assert data["in_progress"][0]["label"] == "On Hold"

    def test_stats_as_of(self, web_env):
        resp = web_env.get("/api/stats", params={"as_of": "2024-08-15T16:00"})
        assert resp.json()["planned_progress"] == 100.0

    def test_stats_as_of_with_offset(self, web_env):
        resp = web_env.get("/api/stats", params={"as_of": "2024-08-15T12:00:00+00:00"})
        assert resp.status_code == 200
        expected = datetime.fromisoformat("2024-08-15T12:00:00+00:00").astimezone()
        assert resp.json()["as_of"] == expected.replace(tzinfo=None).isoformat()

    def test_hold_summary_as_of_with_offset(self, web_env):
        resp = web_env.get("/api/holds/summary", params={"as_of": "2024-08-16T20:00:00+00:00"})
        assert resp.status_code == 200
        assert resp.json()[0]["reason"] == "Tooling"

    def test_stats_bad_as_of(self, web_env):
        assert web_env.get("/api/stats", params={"as_of": "tomorrow"}).status_code == 400

    def test_hold_log_and_summary(self, web_env):
        log = web_env.get("/api/holds/log").json()
        assert log[0]["activity_id"] == "C"
        assert log[0]["ongoing"] is True
        assert log[0]["duration"] == "3h"

        summary = web_env.get("/api/holds/summary").json()
        assert summary == [
            {"reason": "Tooling", "count": 1, "total_hours": 3.0, "total_duration": "3h"}
        ]

    def test_scurve_single_day_is_empty(self, web_env):
        resp = web_env.get("/api/scurve", params={"package": "P1"})
        assert resp.status_code == 200
        assert resp.json() == []
