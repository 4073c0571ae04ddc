"""Derived progress metrics for packages and the whole project.

Everything here is a pure function of the activities, packages and an
explicit ``as_of`` instant. Nothing is cached between calls.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from turnaround_tracker.db.models import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    ON_HOLD,
    Activity,
    Package,
)


@dataclass
class ProjectStats:
    actual_progress: float = 0.0
    planned_progress: float = 0.0
    completed_activities: list[Activity] = field(default_factory=list)
    delayed_activities: list[Activity] = field(default_factory=list)
    on_track_activities: list[Activity] = field(default_factory=list)
    upcoming_activities: list[Activity] = field(default_factory=list)
    schedule_variance_hours: float = 0.0
    planned_start_date: datetime | None = None
    planned_end_date: datetime | None = None
    actual_start_date: datetime | None = None
    estimated_end_date: datetime | None = None


@dataclass
class PackageMetrics:
    status: str = NOT_STARTED
    progress: float = 0.0
    actual_start_date: datetime | None = None
    actual_end_date: datetime | None = None


@dataclass
class SCurvePoint:
    day: date
    planned: float
    completed: float


def package_status(activities: list[Activity]) -> str:
    """Roll activity statuses up into a single package status.

    All completed wins, then any hold, then any progress (a started or
    completed activity), otherwise not started.
    """
    if not activities:
        return NOT_STARTED
    completed = sum(1 for a in activities if a.status == COMPLETED)
    if completed == len(activities):
        return COMPLETED
    if any(a.status == ON_HOLD for a in activities):
        return ON_HOLD
    if completed > 0 or any(a.status == IN_PROGRESS for a in activities):
        return IN_PROGRESS
    return NOT_STARTED


def compute_package_metrics(package: Package, activities: list[Activity]) -> PackageMetrics:
    """Status, progress and actual dates for one package's activities."""
    total = len(activities)
    if total == 0:
        return PackageMetrics()

    completed = sum(1 for a in activities if a.status == COMPLETED)
    start_times = [a.start_time for a in activities if a.start_time]
    end_times = [a.end_time for a in activities if a.end_time]

    actual_end = None
    if completed == total and end_times:
        actual_end = max(end_times)

    return PackageMetrics(
        status=package_status(activities),
        progress=completed / total * 100,
        actual_start_date=min(start_times) if start_times else None,
        actual_end_date=actual_end,
    )


def planned_window(packages: list[Package]) -> tuple[datetime, datetime] | None:
    """Project planned (start, end) taken over all packages' derived windows."""
    starts = [p.start_date for p in packages if p.start_date]
    ends = [p.end_date for p in packages if p.end_date]
    if not starts or not ends:
        return None
    return min(starts), max(ends)


def planned_progress(start: datetime, end: datetime, as_of: datetime) -> float:
    """Share of the planned window elapsed at ``as_of``, clamped to [0, 100]."""
    total = end - start
    if total > timedelta(0):
        elapsed = as_of - start
        return max(0.0, min(100.0, elapsed / total * 100))
    return 100.0 if as_of > end else 0.0


def formula_end_date(
    activities: list[Activity],
    planned_start: datetime,
    planned_end: datetime,
    as_of: datetime,
) -> datetime | None:
    """Run-rate projection of the project's completion date.

    At 100 % this is the last actual finish. With partial progress the time
    since the first actual start is scaled by the completed share. Otherwise
    the planned end is returned unchanged.
    """
    total = len(activities)
    if total == 0:
        return planned_end

    completed = [a for a in activities if a.status == COMPLETED]
    progress = len(completed) / total * 100
    start_times = [a.start_time for a in activities if a.start_time]
    actual_start = min(start_times) if start_times else None

    if progress == 100:
        end_times = [a.end_time for a in completed if a.end_time]
        return max(end_times) if end_times else None

    if progress > 0 and planned_end - planned_start > timedelta(0) and actual_start:
        elapsed = as_of - actual_start
        return actual_start + elapsed / (progress / 100)

    return planned_end


def compute_project_stats(
    activities: list[Activity],
    packages: list[Package],
    as_of: datetime,
) -> ProjectStats:
    """Project-wide progress, activity buckets, estimate and schedule variance."""
    if not activities or not packages:
        return ProjectStats()

    window = planned_window(packages)
    if window is None:
        return ProjectStats()
    planned_start, planned_end = window

    completed = [a for a in activities if a.status == COMPLETED]
    delayed = [a for a in activities if a.deadline < as_of and a.status != COMPLETED]
    on_track = [a for a in activities if a.status == IN_PROGRESS]
    on_track += [a for a in activities if a.status == ON_HOLD]
    today = as_of.date()
    upcoming = [
        a for a in activities
        if a.status == NOT_STARTED and a.deadline.date() >= today
    ]

    start_times = [a.start_time for a in activities if a.start_time]
    estimated_end = formula_end_date(activities, planned_start, planned_end, as_of)

    variance = 0.0
    if estimated_end is not None:
        variance = (planned_end - estimated_end).total_seconds() / 3600

    return ProjectStats(
        actual_progress=len(completed) / len(activities) * 100,
        planned_progress=planned_progress(planned_start, planned_end, as_of),
        completed_activities=completed,
        delayed_activities=delayed,
        on_track_activities=on_track,
        upcoming_activities=upcoming,
        schedule_variance_hours=variance,
        planned_start_date=planned_start,
        planned_end_date=planned_end,
        actual_start_date=min(start_times) if start_times else None,
        estimated_end_date=estimated_end,
    )


def s_curve(
    activities: list[Activity],
    packages: list[Package],
    package_id: str | None = None,
) -> list[SCurvePoint]:
    """Planned vs. completed percentage sampled across the planned window."""
    if package_id is not None:
        packages = [p for p in packages if p.id == package_id]
        activities = [a for a in activities if a.package_name == package_id]
    if not packages or not activities:
        return []

    window = planned_window(packages)
    if window is None:
        return []
    start, end = window
    days = (end - start).days
    if days <= 0:
        return []

    total = len(activities)
    step = max(1, int(days / 30 + 0.5))
    points = []
    for offset in range(0, days + 1, step):
        day = (start + timedelta(days=offset)).date()
        planned = sum(1 for a in activities if a.deadline.date() <= day)
        done = sum(
            1 for a in activities
            if a.status == COMPLETED and a.end_time and a.end_time.date() <= day
        )
        points.append(SCurvePoint(day, planned / total * 100, done / total * 100))

    if points[-1].day != end.date():
        done = sum(1 for a in activities if a.status == COMPLETED)
        points.append(SCurvePoint(end.date(), 100.0, done / total * 100))
    return points


def due_label(activity: Activity, as_of: datetime) -> str:
    if activity.status == ON_HOLD:
        return "On Hold"
    planned_day, today = activity.deadline.date(), as_of.date()
    if planned_day < today:
        return "Overdue"
    if planned_day == today:
        return "Today"
    return "Upcoming"


def in_progress_feed(activities: list[Activity], as_of: datetime) -> list[tuple[Activity, str]]:
    """Active work ordered by planned start, each with its due label."""
    active = [a for a in activities if a.status in (IN_PROGRESS, ON_HOLD)]
    active.sort(key=lambda a: a.deadline)
    return [(a, due_label(a, as_of)) for a in active]
