"""SQLite connection management, schema initialization and store snapshots."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from turnaround_tracker.core.store import Store
from turnaround_tracker.db.models import Activity, ActivityEvent, HoldEvent, Package

SCHEMA = """
CREATE TABLE IF NOT EXISTS packages (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    priority TEXT DEFAULT 'Medium' CHECK (priority IN ('High', 'Medium', 'Low')),
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    supervisor TEXT
);

CREATE TABLE IF NOT EXISTS activities (
    id TEXT PRIMARY KEY,
    package_id TEXT NOT NULL REFERENCES packages(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    tag TEXT NOT NULL,
    status TEXT DEFAULT 'Not Started'
        CHECK (status IN ('Not Started', 'In Progress', 'Completed', 'On Hold')),
    priority TEXT DEFAULT 'Medium' CHECK (priority IN ('High', 'Medium', 'Low')),
    assignee TEXT,
    deadline TEXT NOT NULL,
    planned_end_date TEXT NOT NULL,
    start_time TEXT,
    end_time TEXT,
    remark TEXT,
    status_updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_activities_lineage ON activities(package_id, tag, deadline);

CREATE TABLE IF NOT EXISTS hold_events (
    activity_id TEXT NOT NULL REFERENCES activities(id) ON DELETE CASCADE,
    seq INTEGER NOT NULL,
    reason TEXT NOT NULL,
    remarks TEXT,
    start_time TEXT NOT NULL,
    end_time TEXT,
    PRIMARY KEY (activity_id, seq)
);

CREATE TABLE IF NOT EXISTS activity_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    activity_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    old_value TEXT,
    new_value TEXT,
    created_at TEXT DEFAULT (datetime('now'))
);
"""


def _run_migrations(conn: sqlite3.Connection):
    """Run schema migrations idempotently."""
    migrations = [
        "ALTER TABLE activities ADD COLUMN remark TEXT",
        "ALTER TABLE activities ADD COLUMN status_updated_at TEXT",
    ]
    for sql in migrations:
        try:
            conn.execute(sql)
        except sqlite3.OperationalError:
            pass  # Column already exists
    conn.commit()


def init_db(db_path: Path) -> sqlite3.Connection:
    """Initialize the database, creating tables if needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA)
    _run_migrations(conn)
    conn.commit()
    return conn


@contextmanager
def get_db(db_path: Path):
    """Context manager for database connections."""
    conn = init_db(db_path)
    try:
        yield conn
    finally:
        conn.close()


# ── Snapshots ────────────────────────────────────────────────────────────────


def load_store(conn: sqlite3.Connection) -> Store:
    """Read every package, activity, hold and event into a Store."""
    holds: dict[str, list[HoldEvent]] = {}
    for r in conn.execute("SELECT * FROM hold_events ORDER BY activity_id, seq"):
        holds.setdefault(r["activity_id"], []).append(
            HoldEvent(
                reason=r["reason"],
                remarks=r["remarks"],
                start_time=_parse_dt(r["start_time"]),
                end_time=_parse_dt(r["end_time"]),
            )
        )

    packages = [_row_to_package(r) for r in conn.execute("SELECT * FROM packages ORDER BY rowid")]
    activities = []
    for r in conn.execute("SELECT * FROM activities ORDER BY rowid"):
        activity = _row_to_activity(r)
        activity.hold_history = holds.get(activity.id, [])
        activities.append(activity)
    events = [_row_to_event(r) for r in conn.execute("SELECT * FROM activity_events ORDER BY id")]
    return Store(packages, activities, events)


def save_store(conn: sqlite3.Connection, store: Store):
    """Write the store back as a full snapshot keyed by entity id.

    Packages, activities and holds are replaced wholesale; events are
    append-only, so only those not yet saved are inserted.
    """
    with conn:
        conn.execute("DELETE FROM hold_events")
        conn.execute("DELETE FROM activities")
        conn.execute("DELETE FROM packages")
        conn.executemany(
            """INSERT INTO packages (id, name, description, priority, start_date, end_date, supervisor)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            [
                (p.id, p.name, p.description, p.priority,
                 _fmt_dt(p.start_date), _fmt_dt(p.end_date), p.supervisor)
                for p in store.packages.values()
            ],
        )
        conn.executemany(
            """INSERT INTO activities (id, package_id, title, tag, status, priority, assignee,
                                       deadline, planned_end_date, start_time, end_time,
                                       remark, status_updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (a.id, a.package_name, a.title, a.tag, a.status, a.priority, a.assignee,
                 _fmt_dt(a.deadline), _fmt_dt(a.planned_end_date),
                 _fmt_dt(a.start_time), _fmt_dt(a.end_time),
                 a.remark, _fmt_dt(a.status_updated_at))
                for a in store.activities.values()
            ],
        )
        conn.executemany(
            """INSERT INTO hold_events (activity_id, seq, reason, remarks, start_time, end_time)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (a.id, seq, h.reason, h.remarks, _fmt_dt(h.start_time), _fmt_dt(h.end_time))
                for a in store.activities.values()
                for seq, h in enumerate(a.hold_history)
            ],
        )
        conn.execute(
            "DELETE FROM activity_events WHERE activity_id NOT IN (SELECT id FROM activities)"
        )
        for event in store.events:
            if event.id is not None:
                continue
            cur = conn.execute(
                """INSERT INTO activity_events (activity_id, event_type, old_value, new_value, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (event.activity_id, event.event_type, event.old_value, event.new_value,
                 _fmt_dt(event.created_at or datetime.now())),
            )
            event.id = cur.lastrowid
    store.dirty = False


@contextmanager
def open_store(db_path: Path):
    """Load a Store, yield it, and save it back if a mutation succeeded.

    Nothing is written when the block raises, so a rejected command leaves
    the database untouched.
    """
    conn = init_db(db_path)
    try:
        store = load_store(conn)
        yield store
        if store.dirty:
            save_store(conn, store)
    finally:
        conn.close()


# ── Row-to-model helpers ────────────────────────────────────────────────────


def _row_to_package(row: sqlite3.Row) -> Package:
    return Package(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        priority=row["priority"],
        start_date=_parse_dt(row["start_date"]),
        end_date=_parse_dt(row["end_date"]),
        supervisor=row["supervisor"],
    )


def _row_to_activity(row: sqlite3.Row) -> Activity:
    return Activity(
        id=row["id"],
        title=row["title"],
        package_name=row["package_id"],
        tag=row["tag"],
        status=row["status"],
        priority=row["priority"],
        assignee=row["assignee"],
        deadline=_parse_dt(row["deadline"]),
        planned_end_date=_parse_dt(row["planned_end_date"]),
        start_time=_parse_dt(row["start_time"]),
        end_time=_parse_dt(row["end_time"]),
        remark=row["remark"],
        status_updated_at=_parse_dt(row["status_updated_at"]),
    )


def _row_to_event(row: sqlite3.Row) -> ActivityEvent:
    return ActivityEvent(
        id=row["id"],
        activity_id=row["activity_id"],
        event_type=row["event_type"],
        old_value=row["old_value"],
        new_value=row["new_value"],
        created_at=_parse_dt(row["created_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)


def _fmt_dt(val: datetime | None) -> str | None:
    if val is None:
        return None
    return val.isoformat()
