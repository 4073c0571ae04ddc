"""Tests for SQLite persistence of the store."""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from turnaround_tracker.core import activities as activities_mod
from turnaround_tracker.core import packages as packages_mod
from turnaround_tracker.core import transitions as transitions_mod
from turnaround_tracker.db.engine import get_db, init_db, open_store
from turnaround_tracker.db.models import Activity, Package
from turnaround_tracker.errors import InvalidTransition

T0 = datetime(2024, 8, 15, 8, 0)


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "test.db"
        with open_store(path) as store:
            packages_mod.upsert_package(store, Package("P", "Exchangers", T0, T0, priority="High"))
            activities_mod.upsert_activity(
                store, Activity("A", "Blinding", "P", "HE-101A", T0, T0 + timedelta(hours=2))
            )
        yield path


class TestSchema:
    def test_tables_created(self, db_path):
        with get_db(db_path) as conn:
            names = {
                r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        assert {"packages", "activities", "hold_events", "activity_events"} <= names

    def test_init_is_idempotent(self, db_path):
        init_db(db_path).close()
        init_db(db_path).close()


class TestSnapshots:
    def test_round_trip(self, db_path):
        with open_store(db_path) as store:
            transitions_mod.set_activity_status(store, "A", "In Progress", now=T0)
            transitions_mod.set_activity_status(
                store, "A", "On Hold", reason="Tooling", remarks="Crane", now=T0 + timedelta(hours=1)
            )

        with open_store(db_path) as store:
            pkg = store.get_package("P")
            assert pkg.priority == "High"
            assert pkg.end_date == T0 + timedelta(hours=2)
            a = store.get_activity("A")
            assert a.status == "On Hold"
            assert a.start_time == T0
            assert len(a.hold_history) == 1
            assert a.hold_history[0].remarks == "Crane"
            assert a.hold_history[0].end_time is None
            types = [e.event_type for e in activities_mod.get_activity_events(store, "A")]
            assert types == ["created", "status_changed", "status_changed"]
            assert all(e.id is not None for e in store.events)

    def test_failed_command_writes_nothing(self, db_path):
        with pytest.raises(InvalidTransition):
            with open_store(db_path) as store:
                store.get_package("P").name = "Changed"
                store.dirty = True
                transitions_mod.set_activity_status(store, "A", "Completed")

        with open_store(db_path) as store:
            assert store.get_package("P").name == "Exchangers"

    def test_delete_removes_events(self, db_path):
        with open_store(db_path) as store:
            packages_mod.delete_package(store, "P")

        with get_db(db_path) as conn:
            assert conn.execute("SELECT COUNT(*) FROM activities").fetchone()[0] == 0
            assert conn.execute("SELECT COUNT(*) FROM activity_events").fetchone()[0] == 0

    def test_clean_store_is_not_saved(self, db_path):
        with open_store(db_path) as store:
            assert not store.dirty
