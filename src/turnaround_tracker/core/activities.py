"""Activity management operations."""

import logging
from datetime import datetime

from turnaround_tracker.core.schedule import (
    refresh_package_window,
    reschedule_following,
    reschedule_lineage,
)
from turnaround_tracker.core.store import Store, slugify, unique_id
from turnaround_tracker.db.models import PRIORITIES, STATUSES, Activity, ActivityEvent
from turnaround_tracker.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def validate_activity(activity: Activity) -> list[str]:
    """Return a list of problems with an activity record (empty when valid)."""
    errors = []
    for attr, label in (
        ("id", "Activity ID"),
        ("title", "Title"),
        ("package_name", "Package ID"),
        ("tag", "Tag"),
    ):
        value = getattr(activity, attr)
        if not value or not str(value).strip():
            errors.append(f"{label} is required")
    if activity.priority not in PRIORITIES:
        errors.append(f"Invalid priority '{activity.priority}'")
    if activity.status not in STATUSES:
        errors.append(f"Invalid status '{activity.status}'")
    if not isinstance(activity.deadline, datetime) or not isinstance(
        activity.planned_end_date, datetime
    ):
        errors.append("Planned start and end dates are required")
    elif activity.deadline >= activity.planned_end_date:
        errors.append("Planned start must be before the planned end")
    return errors


def new_activity_id(store: Store, title: str) -> str:
    """Generate an unused activity id from a title."""
    return unique_id(store.activities, "ACT-" + (slugify(title).upper() or "NEW"))


def upsert_activity(store: Store, activity: Activity) -> Activity:
    """Create or replace an activity, then cascade its lineage.

    Later activities in the same (package, tag) lineage are shifted so each
    starts when its predecessor is planned to end, and the package window is
    re-derived. If the activity moved out of another lineage, that lineage is
    re-chained as though the activity had been deleted from it.
    """
    errors = validate_activity(activity)
    if errors:
        raise ValidationError(errors[0], errors)
    if activity.package_name not in store.packages:
        raise NotFoundError(f"Package not found: {activity.package_name}")

    previous = store.get_activity(activity.id)
    old_index = None
    if previous and (previous.package_name, previous.tag) != (activity.package_name, activity.tag):
        old_lineage = store.lineage(previous.package_name, previous.tag)
        old_index = next(i for i, a in enumerate(old_lineage) if a.id == activity.id)

    store.activities[activity.id] = activity
    store.dirty = True

    if previous:
        store.log_event(
            activity.id,
            "updated",
            f"{previous.deadline.isoformat()} -> {previous.planned_end_date.isoformat()}",
            f"{activity.deadline.isoformat()} -> {activity.planned_end_date.isoformat()}",
        )
    else:
        store.log_event(activity.id, "created", None, activity.status)

    reschedule_following(store, activity)

    if old_index is not None:
        reschedule_lineage(store, previous.package_name, previous.tag, old_index - 1)
        refresh_package_window(store, previous.package_name)

    logger.info("Activity %s: %s", "updated" if previous else "created", activity.id)
    return activity


def delete_activity(store: Store, activity_id: str) -> bool:
    """Delete an activity and close the gap it leaves in its lineage."""
    activity = store.get_activity(activity_id)
    if not activity:
        return False

    lineage = store.lineage(activity.package_name, activity.tag)
    index = next(i for i, a in enumerate(lineage) if a.id == activity_id)

    del store.activities[activity_id]
    store.events = [e for e in store.events if e.activity_id != activity_id]
    store.dirty = True

    reschedule_lineage(store, activity.package_name, activity.tag, index - 1)
    logger.info("Activity deleted: %s", activity_id)
    return True


def retag_activities(store: Store, activity_ids: list[str], new_tag: str) -> list[Activity]:
    """Move activities to another tag. Planned windows are left as they are."""
    if not new_tag or not new_tag.strip():
        raise ValidationError("Tag is required")

    updated = []
    for activity_id in activity_ids:
        activity = store.get_activity(activity_id)
        if not activity:
            continue
        old_tag = activity.tag
        activity.tag = new_tag
        store.log_event(activity_id, "retagged", old_tag, new_tag)
        updated.append(activity)
    if updated:
        logger.info("Retagged %d activities to '%s'", len(updated), new_tag)
    return updated


def get_activity_events(store: Store, activity_id: str) -> list[ActivityEvent]:
    """Get the event history for an activity in the order it was logged."""
    return [e for e in store.events if e.activity_id == activity_id]
