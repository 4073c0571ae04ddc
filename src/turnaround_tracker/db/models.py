"""Data models for the turnaround tracker."""

from dataclasses import dataclass, field
from datetime import datetime

NOT_STARTED = "Not Started"
IN_PROGRESS = "In Progress"
COMPLETED = "Completed"
ON_HOLD = "On Hold"

STATUSES = (NOT_STARTED, IN_PROGRESS, COMPLETED, ON_HOLD)
PRIORITIES = ("High", "Medium", "Low")


@dataclass
class Package:
    id: str
    name: str
    start_date: datetime
    end_date: datetime
    priority: str = "Medium"
    description: str | None = None
    supervisor: str | None = None


@dataclass
class HoldEvent:
    reason: str
    start_time: datetime
    remarks: str | None = None
    end_time: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass
class Activity:
    id: str
    title: str
    package_name: str
    tag: str
    deadline: datetime
    planned_end_date: datetime
    status: str = NOT_STARTED
    priority: str = "Medium"
    assignee: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    remark: str | None = None
    status_updated_at: datetime | None = None
    hold_history: list[HoldEvent] = field(default_factory=list)

    @property
    def planned_duration(self):
        return self.planned_end_date - self.deadline

    @property
    def open_hold(self) -> HoldEvent | None:
        """The last hold event, if it is still open."""
        if self.hold_history and self.hold_history[-1].is_open:
            return self.hold_history[-1]
        return None


@dataclass
class ActivityEvent:
    id: int | None = None
    activity_id: str = ""
    event_type: str = ""
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime | None = None
