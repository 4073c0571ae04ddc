"""In-memory state container for packages, activities and their event log.

All mutations go through the functions in ``core.packages``, ``core.activities``
and ``core.transitions``; read operations take plain lists so they can be
called on any snapshot.
"""

import re
from datetime import datetime

from turnaround_tracker.db.models import Activity, ActivityEvent, Package


class Store:
    """Process-local collection of packages and activities keyed by id."""

    def __init__(
        self,
        packages: list[Package] | None = None,
        activities: list[Activity] | None = None,
        events: list[ActivityEvent] | None = None,
    ):
        self.packages: dict[str, Package] = {p.id: p for p in packages or []}
        self.activities: dict[str, Activity] = {a.id: a for a in activities or []}
        self.events: list[ActivityEvent] = list(events or [])
        self.dirty = False

    def get_package(self, package_id: str) -> Package | None:
        return self.packages.get(package_id)

    def get_activity(self, activity_id: str) -> Activity | None:
        return self.activities.get(activity_id)

    def list_packages(self) -> list[Package]:
        return list(self.packages.values())

    def list_activities(
        self,
        package_id: str | None = None,
        tag: str | None = None,
        status: str | None = None,
    ) -> list[Activity]:
        """List activities with optional filters, in insertion order."""
        result = []
        for activity in self.activities.values():
            if package_id is not None and activity.package_name != package_id:
                continue
            if tag is not None and activity.tag != tag:
                continue
            if status is not None and activity.status != status:
                continue
            result.append(activity)
        return result

    def lineage(self, package_id: str, tag: str) -> list[Activity]:
        """Activities sharing (package, tag), ordered by planned start."""
        members = self.list_activities(package_id=package_id, tag=tag)
        return sorted(members, key=lambda a: a.deadline)

    def log_event(
        self,
        activity_id: str,
        event_type: str,
        old_value: str | None,
        new_value: str | None,
        created_at: datetime | None = None,
    ) -> ActivityEvent:
        event = ActivityEvent(
            activity_id=activity_id,
            event_type=event_type,
            old_value=old_value,
            new_value=new_value,
            created_at=created_at or datetime.now(),
        )
        self.events.append(event)
        self.dirty = True
        return event


def slugify(title: str) -> str:
    """Convert a title to an id-friendly slug."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60]


def unique_id(existing, base: str) -> str:
    """Return ``base`` or ``base-N`` so that it is not a key of ``existing``."""
    if base not in existing:
        return base
    i = 2
    while f"{base}-{i}" in existing:
        i += 1
    return f"{base}-{i}"
