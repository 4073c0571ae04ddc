"""Cascade rescheduling of planned windows along a (package, tag) lineage."""

import logging
from datetime import datetime

from turnaround_tracker.core.store import Store
from turnaround_tracker.db.models import Activity, Package

logger = logging.getLogger(__name__)


def package_window(activities: list[Activity]) -> tuple[datetime, datetime] | None:
    """Planned (start, end) covering the given activities, or None if empty."""
    if not activities:
        return None
    start = min(a.deadline for a in activities)
    end = max(a.planned_end_date for a in activities)
    return start, end


def refresh_package_window(store: Store, package_id: str) -> Package | None:
    """Recompute a package's planned window from its current activities.

    A package without activities keeps whatever dates it already has.
    """
    package = store.get_package(package_id)
    if not package:
        return None
    window = package_window(store.list_activities(package_id=package_id))
    if window is None:
        return package
    if (package.start_date, package.end_date) != window:
        package.start_date, package.end_date = window
        store.dirty = True
    return package


def _chain_from(store: Store, lineage: list[Activity], index: int) -> list[Activity]:
    """Make every member after ``index`` start when its predecessor ends."""
    shifted = []
    for j in range(index + 1, len(lineage)):
        previous, current = lineage[j - 1], lineage[j]
        duration = current.planned_duration
        new_deadline = previous.planned_end_date
        if current.deadline == new_deadline:
            continue
        old_deadline = current.deadline
        current.deadline = new_deadline
        current.planned_end_date = new_deadline + duration
        store.log_event(
            current.id, "rescheduled", old_deadline.isoformat(), new_deadline.isoformat()
        )
        shifted.append(current)
    return shifted


def reschedule_following(store: Store, activity: Activity) -> list[Activity]:
    """Shift all later lineage members of ``activity`` and refresh its package.

    Each downstream activity keeps its own planned duration. Actual times and
    statuses are never touched. Returns the activities whose window moved.
    """
    lineage = store.lineage(activity.package_name, activity.tag)
    index = next((i for i, a in enumerate(lineage) if a.id == activity.id), None)
    shifted = _chain_from(store, lineage, index) if index is not None else []
    refresh_package_window(store, activity.package_name)
    if shifted:
        logger.info(
            "Rescheduled %d activities after '%s' in %s/%s",
            len(shifted), activity.id, activity.package_name, activity.tag,
        )
    return shifted


def reschedule_lineage(
    store: Store, package_id: str, tag: str, from_index: int = 0
) -> list[Activity]:
    """Re-chain a lineage starting after the member at ``from_index``."""
    lineage = store.lineage(package_id, tag)
    shifted = _chain_from(store, lineage, max(0, from_index)) if lineage else []
    refresh_package_window(store, package_id)
    if shifted:
        logger.info("Re-chained %d activities in %s/%s", len(shifted), package_id, tag)
    return shifted
