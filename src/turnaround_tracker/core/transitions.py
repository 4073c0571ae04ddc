"""Activity status transitions.

Statuses move Not Started -> In Progress -> Completed, with In Progress <->
On Hold, and any status may be reset to Not Started. A reset is destructive:
actual times and hold history are cleared.
"""

import logging
from datetime import datetime

from turnaround_tracker.core.store import Store
from turnaround_tracker.db.models import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    ON_HOLD,
    STATUSES,
    Activity,
    HoldEvent,
)
from turnaround_tracker.errors import InvalidTransition, PrerequisiteNotMet, ValidationError

logger = logging.getLogger(__name__)


def blocking_predecessor(store: Store, activity: Activity) -> Activity | None:
    """Earliest activity ahead of ``activity`` in its lineage that is not completed."""
    for member in store.lineage(activity.package_name, activity.tag):
        if member.id == activity.id:
            return None
        if member.status != COMPLETED:
            return member
    return None


def close_open_hold(activity: Activity, now: datetime) -> HoldEvent | None:
    """Close the most recent hold event if it is still open.

    Returns the closed event, or None when there was nothing to close. An
    already closed event keeps its original end time.
    """
    hold = activity.open_hold
    if hold is None:
        return None
    hold.end_time = now
    return hold


def set_activity_status(
    store: Store,
    activity_id: str,
    new_status: str,
    reason: str | None = None,
    remarks: str | None = None,
    now: datetime | None = None,
) -> Activity | None:
    """Apply a status change to one activity. Returns None if it does not exist.

    Raises ValidationError, InvalidTransition or PrerequisiteNotMet without
    touching the activity when the change is not allowed.
    """
    activity = store.get_activity(activity_id)
    if not activity:
        return None

    if new_status not in STATUSES:
        raise ValidationError(f"Invalid status '{new_status}'")

    old_status = activity.status

    if new_status == COMPLETED and old_status == NOT_STARTED:
        logger.warning("Rejected %s -> %s for %s", old_status, new_status, activity_id)
        raise InvalidTransition(
            f"Cannot complete '{activity.title}': start the activity first"
        )

    if new_status == ON_HOLD and not (reason and reason.strip()):
        raise ValidationError("A reason is required to put an activity on hold")

    if new_status == IN_PROGRESS:
        blocking = blocking_predecessor(store, activity)
        if blocking:
            logger.warning(
                "Rejected start of %s: waiting on %s (%s)",
                activity_id, blocking.id, blocking.status,
            )
            raise PrerequisiteNotMet(activity_id, blocking)

    now = now or datetime.now()

    if old_status == ON_HOLD:
        close_open_hold(activity, now)

    if new_status == ON_HOLD:
        activity.hold_history.append(
            HoldEvent(reason=reason.strip(), remarks=remarks or None, start_time=now)
        )

    activity.status = new_status
    activity.status_updated_at = now

    if new_status == IN_PROGRESS and activity.start_time is None:
        activity.start_time = now

    if new_status == COMPLETED and activity.end_time is None:
        if activity.start_time is None:
            activity.start_time = now
        activity.end_time = now

    if new_status == NOT_STARTED:
        activity.start_time = None
        activity.end_time = None
        activity.hold_history = []

    store.log_event(activity_id, "status_changed", old_status, new_status, now)
    logger.info("Activity %s: %s -> %s", activity_id, old_status, new_status)
    return activity
