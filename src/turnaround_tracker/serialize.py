"""JSON-ready dict conversions shared by the CLI, web API and MCP server."""

from datetime import datetime

from turnaround_tracker.core.estimators import EndDateEstimate
from turnaround_tracker.core.holds import HoldLogEntry, HoldReasonSummary, format_duration
from turnaround_tracker.core.metrics import PackageMetrics, ProjectStats, SCurvePoint
from turnaround_tracker.db.models import Activity, ActivityEvent, HoldEvent, Package


def _iso(val: datetime | None) -> str | None:
    return val.isoformat() if val else None


def package_dict(p: Package) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "priority": p.priority,
        "start_date": _iso(p.start_date),
        "end_date": _iso(p.end_date),
        "supervisor": p.supervisor,
    }


def hold_dict(h: HoldEvent) -> dict:
    return {
        "reason": h.reason,
        "remarks": h.remarks,
        "start_time": _iso(h.start_time),
        "end_time": _iso(h.end_time),
    }


def activity_dict(a: Activity) -> dict:
    return {
        "id": a.id,
        "title": a.title,
        "package_id": a.package_name,
        "tag": a.tag,
        "status": a.status,
        "priority": a.priority,
        "assignee": a.assignee,
        "deadline": _iso(a.deadline),
        "planned_end_date": _iso(a.planned_end_date),
        "start_time": _iso(a.start_time),
        "end_time": _iso(a.end_time),
        "remark": a.remark,
        "status_updated_at": _iso(a.status_updated_at),
        "hold_history": [hold_dict(h) for h in a.hold_history],
    }


def event_dict(e: ActivityEvent) -> dict:
    return {
        "id": e.id,
        "event_type": e.event_type,
        "old_value": e.old_value,
        "new_value": e.new_value,
        "created_at": _iso(e.created_at),
    }


def metrics_dict(m: PackageMetrics) -> dict:
    return {
        "status": m.status,
        "progress": round(m.progress, 1),
        "actual_start_date": _iso(m.actual_start_date),
        "actual_end_date": _iso(m.actual_end_date),
    }


def stats_dict(s: ProjectStats, estimate: EndDateEstimate | None = None) -> dict:
    """Project stats with bucket counts and ids rather than whole records."""
    result = {
        "actual_progress": round(s.actual_progress, 1),
        "planned_progress": round(s.planned_progress, 1),
        "counts": {
            "completed": len(s.completed_activities),
            "delayed": len(s.delayed_activities),
            "on_track": len(s.on_track_activities),
            "upcoming": len(s.upcoming_activities),
        },
        "completed": [a.id for a in s.completed_activities],
        "delayed": [a.id for a in s.delayed_activities],
        "on_track": [a.id for a in s.on_track_activities],
        "upcoming": [a.id for a in s.upcoming_activities],
        "schedule_variance_hours": round(s.schedule_variance_hours, 2),
        "planned_start_date": _iso(s.planned_start_date),
        "planned_end_date": _iso(s.planned_end_date),
        "actual_start_date": _iso(s.actual_start_date),
        "estimated_end_date": _iso(s.estimated_end_date),
    }
    if estimate is not None:
        result["display_estimate"] = {
            "date": _iso(estimate.date),
            "reasoning": estimate.reasoning,
            "source": estimate.source,
        }
    return result


def hold_log_dict(entry: HoldLogEntry, now: datetime) -> dict:
    return {
        "activity_id": entry.activity.id,
        "activity_title": entry.activity.title,
        "package_id": entry.activity.package_name,
        **hold_dict(entry.hold),
        "duration": format_duration(entry.duration(now)),
        "ongoing": entry.hold.end_time is None,
    }


def hold_summary_dict(row: HoldReasonSummary) -> dict:
    return {
        "reason": row.reason,
        "count": row.count,
        "total_hours": round(row.total_duration.total_seconds() / 3600, 2),
        "total_duration": format_duration(row.total_duration),
    }


def scurve_dict(point: SCurvePoint) -> dict:
    return {
        "day": point.day.isoformat(),
        "planned": round(point.planned, 2),
        "completed": round(point.completed, 2),
    }
