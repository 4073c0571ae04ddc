"""Hold log and per-reason hold summaries."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from turnaround_tracker.db.models import Activity, HoldEvent


@dataclass
class HoldLogEntry:
    activity: Activity
    hold: HoldEvent

    def duration(self, now: datetime) -> timedelta:
        return hold_duration(self.hold, now)


@dataclass
class HoldReasonSummary:
    reason: str
    total_duration: timedelta
    count: int


def hold_duration(hold: HoldEvent, now: datetime) -> timedelta:
    """Length of a hold; an open hold runs up to ``now``."""
    return (hold.end_time or now) - hold.start_time


def build_hold_log(activities: list[Activity]) -> list[HoldLogEntry]:
    """Every hold event tagged with its activity, most recent first."""
    log = [
        HoldLogEntry(activity=activity, hold=hold)
        for activity in activities
        for hold in activity.hold_history
    ]
    log.sort(key=lambda entry: entry.hold.start_time, reverse=True)
    return log


def summarize_hold_reasons(activities: list[Activity], now: datetime) -> list[HoldReasonSummary]:
    """Total time lost and occurrence count per hold reason.

    Reasons are grouped by exact string. Open holds count up to ``now``, so
    the result changes between calls while a hold stays open.
    """
    summary: dict[str, HoldReasonSummary] = {}
    for activity in activities:
        for hold in activity.hold_history:
            row = summary.get(hold.reason)
            if row is None:
                row = summary[hold.reason] = HoldReasonSummary(hold.reason, timedelta(0), 0)
            row.total_duration += hold_duration(hold, now)
            row.count += 1
    return sorted(summary.values(), key=lambda r: r.total_duration, reverse=True)


def format_duration(duration: timedelta) -> str:
    """Render a duration as e.g. ``1d 2h 5m``."""
    total_seconds = max(0, int(duration.total_seconds()))
    days, rem = divmod(total_seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)
