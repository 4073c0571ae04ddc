"""MCP server exposing the turnaround tracker tools."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from mcp.server.fastmcp import Context, FastMCP

from turnaround_tracker import serialize
from turnaround_tracker.config import Config, get_config
from turnaround_tracker.core import activities as activities_mod
from turnaround_tracker.core import holds as holds_mod
from turnaround_tracker.core import metrics as metrics_mod
from turnaround_tracker.core import packages as packages_mod
from turnaround_tracker.core import transitions as transitions_mod
from turnaround_tracker.core.clock import ClockTicker, SimulationClock, parse_timestamp
from turnaround_tracker.core.estimators import (
    ExternalEstimator,
    choose_estimate,
    variance_hours,
)
from turnaround_tracker.db.engine import open_store
from turnaround_tracker.db.models import Activity, Package
from turnaround_tracker.errors import TrackerError
from turnaround_tracker.integrations import slack as slack_mod

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    db_path: Path
    config: Config
    clock: SimulationClock
    ticker: ClockTicker | None = None


def _stats_listener(db_path: Path):
    """Recompute project stats on every clock tick; nothing is written."""

    def on_tick(now: datetime):
        with open_store(db_path) as store:
            stats = metrics_mod.compute_project_stats(
                store.list_activities(), store.list_packages(), now
            )
        logger.debug(
            "Tick %s: actual %.1f%% planned %.1f%% delayed %d",
            now.isoformat(),
            stats.actual_progress,
            stats.planned_progress,
            len(stats.delayed_activities),
        )

    return on_tick


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Start the clock ticker on startup, stop it on shutdown."""
    config = get_config()
    clock = SimulationClock(pinned=config.simulation_date)
    clock.subscribe(_stats_listener(config.db_path))

    ticker = ClockTicker(clock, interval=config.clock_interval)
    ticker.start()

    try:
        yield AppContext(db_path=config.db_path, config=config, clock=clock, ticker=ticker)
    finally:
        ticker.stop()


mcp = FastMCP("turnaround-tracker", lifespan=app_lifespan)


def _ctx(ctx: Context) -> AppContext:
    """Extract AppContext from MCP Context."""
    return ctx.request_context.lifespan_context


def _parse_dt(value: str | None, field: str) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        raise ValueError(f"{field} must be an ISO datetime, got '{value}'") from None


def _now(ctx: Context, as_of: str | None) -> datetime:
    return _parse_dt(as_of, "as_of") or _ctx(ctx).clock.now()


# ── Package Tools ─────────────────────────────────────────────────────────────


@mcp.tool()
def list_packages(ctx: Context) -> list[dict]:
    """List all packages with derived status and progress."""
    with open_store(_ctx(ctx).db_path) as store:
        result = []
        for p in store.list_packages():
            m = metrics_mod.compute_package_metrics(p, store.list_activities(package_id=p.id))
            result.append({**serialize.package_dict(p), "metrics": serialize.metrics_dict(m)})
        return result


@mcp.tool()
def get_package(ctx: Context, package_id: str) -> dict:
    """Get a package with its metrics and activities."""
    with open_store(_ctx(ctx).db_path) as store:
        package = store.get_package(package_id)
        if not package:
            return {"error": f"Package not found: {package_id}"}
        activities = sorted(
            store.list_activities(package_id=package_id), key=lambda a: (a.tag, a.deadline)
        )
        m = metrics_mod.compute_package_metrics(package, activities)
        return {
            **serialize.package_dict(package),
            "metrics": serialize.metrics_dict(m),
            "activities": [serialize.activity_dict(a) for a in activities],
        }


@mcp.tool()
def upsert_package(
    ctx: Context,
    name: str,
    start_date: str,
    end_date: str,
    package_id: str | None = None,
    priority: str = "Medium",
    description: str | None = None,
    supervisor: str | None = None,
) -> dict:
    """Create or replace a package. Dates are ISO datetimes; priority is High, Medium or Low.

    A package that already has activities keeps the window derived from them.
    """
    try:
        start = _parse_dt(start_date, "start_date")
        end = _parse_dt(end_date, "end_date")
        with open_store(_ctx(ctx).db_path) as store:
            package = Package(
                id=package_id or packages_mod.new_package_id(store, name),
                name=name,
                start_date=start,
                end_date=end,
                priority=priority,
                description=description,
                supervisor=supervisor,
            )
            package = packages_mod.upsert_package(store, package)
            return serialize.package_dict(package)
    except (TrackerError, ValueError) as e:
        return {"error": str(e)}


@mcp.tool()
def delete_package(ctx: Context, package_id: str) -> dict:
    """Delete a package and every activity in it."""
    with open_store(_ctx(ctx).db_path) as store:
        if not packages_mod.delete_package(store, package_id):
            return {"error": f"Package not found: {package_id}"}
    return {"deleted": package_id}


# ── Activity Tools ────────────────────────────────────────────────────────────


@mcp.tool()
def list_activities(
    ctx: Context,
    package_id: str | None = None,
    tag: str | None = None,
    status: str | None = None,
) -> list[dict]:
    """List activities, optionally filtered by package, tag and status."""
    with open_store(_ctx(ctx).db_path) as store:
        activities = store.list_activities(package_id=package_id, tag=tag, status=status)
        activities.sort(key=lambda a: (a.package_name, a.tag, a.deadline))
        return [serialize.activity_dict(a) for a in activities]


@mcp.tool()
def upsert_activity(
    ctx: Context,
    activity_id: str | None = None,
    title: str | None = None,
    package_id: str | None = None,
    tag: str | None = None,
    deadline: str | None = None,
    planned_end_date: str | None = None,
    priority: str | None = None,
    assignee: str | None = None,
    remark: str | None = None,
) -> dict:
    """Create an activity, or update the given fields of an existing one.

    Later activities with the same package and tag are shifted to follow the
    saved activity. The response lists every activity whose dates moved.
    """
    try:
        start = _parse_dt(deadline, "deadline")
        end = _parse_dt(planned_end_date, "planned_end_date")
        with open_store(_ctx(ctx).db_path) as store:
            existing = store.get_activity(activity_id) if activity_id else None
            if existing:
                changes = {
                    "title": title,
                    "package_name": package_id,
                    "tag": tag,
                    "deadline": start,
                    "planned_end_date": end,
                    "priority": priority,
                    "assignee": assignee,
                    "remark": remark,
                }
                activity = dataclasses.replace(
                    existing,
                    hold_history=list(existing.hold_history),
                    **{k: v for k, v in changes.items() if v is not None},
                )
            else:
                missing = [
                    name
                    for name, value in (
                        ("title", title),
                        ("package_id", package_id),
                        ("tag", tag),
                        ("deadline", start),
                        ("planned_end_date", end),
                    )
                    if value is None
                ]
                if missing:
                    return {"error": f"Missing fields for a new activity: {', '.join(missing)}"}
                activity = Activity(
                    id=activity_id or activities_mod.new_activity_id(store, title),
                    title=title,
                    package_name=package_id,
                    tag=tag,
                    deadline=start,
                    planned_end_date=end,
                    priority=priority or "Medium",
                    assignee=assignee,
                    remark=remark,
                )

            before = {a.id: a.deadline for a in store.list_activities()}
            activity = activities_mod.upsert_activity(store, activity)
            shifted = [
                a.id
                for a in store.list_activities()
                if a.id != activity.id and a.id in before and before[a.id] != a.deadline
            ]
            result = serialize.activity_dict(activity)
            result["rescheduled"] = shifted
            return result
    except (TrackerError, ValueError) as e:
        return {"error": str(e)}


@mcp.tool()
def delete_activity(ctx: Context, activity_id: str) -> dict:
    """Delete an activity; the rest of its tag is re-chained to close the gap."""
    with open_store(_ctx(ctx).db_path) as store:
        if not activities_mod.delete_activity(store, activity_id):
            return {"error": f"Activity not found: {activity_id}"}
    return {"deleted": activity_id}


@mcp.tool()
def set_activity_status(
    ctx: Context,
    activity_id: str,
    status: str,
    reason: str | None = None,
    remarks: str | None = None,
) -> dict:
    """Change an activity's status: Not Started, In Progress, Completed or On Hold.

    On Hold requires a reason. In Progress requires every earlier activity on
    the same tag to be Completed.
    """
    try:
        with open_store(_ctx(ctx).db_path) as store:
            activity = transitions_mod.set_activity_status(
                store, activity_id, status, reason=reason, remarks=remarks,
                now=_ctx(ctx).clock.now(),
            )
            if not activity:
                return {"error": f"Activity not found: {activity_id}"}
            return serialize.activity_dict(activity)
    except TrackerError as e:
        return {"error": str(e)}


# ── Metrics Tools ─────────────────────────────────────────────────────────────


@mcp.tool()
def project_stats(
    ctx: Context,
    as_of: str | None = None,
    predicted_end: str | None = None,
    reasoning: str | None = None,
) -> dict:
    """Project progress, activity buckets and schedule variance.

    ``predicted_end`` supplies an outside completion estimate. It is shown in
    ``display_estimate`` only while actual progress is between 5% and 95%;
    otherwise the formula estimate is shown.
    """
    try:
        now = _now(ctx, as_of)
    except ValueError as e:
        return {"error": str(e)}

    with open_store(_ctx(ctx).db_path) as store:
        activities = store.list_activities()
        packages = store.list_packages()

    stats = metrics_mod.compute_project_stats(activities, packages, now)
    external = None
    if predicted_end:
        external = ExternalEstimator(lambda *_: (predicted_end, reasoning or ""))
    estimate = choose_estimate(stats, activities, packages, now, external=external)

    result = serialize.stats_dict(stats, estimate)
    result["as_of"] = now.isoformat()
    result["display_variance_hours"] = round(variance_hours(stats.planned_end_date, estimate), 2)
    return result


@mcp.tool()
def hold_log(ctx: Context, as_of: str | None = None) -> list[dict] | dict:
    """Every hold across all activities, most recent first."""
    try:
        now = _now(ctx, as_of)
    except ValueError as e:
        return {"error": str(e)}

    with open_store(_ctx(ctx).db_path) as store:
        log = holds_mod.build_hold_log(store.list_activities())
    return [serialize.hold_log_dict(entry, now) for entry in log]


@mcp.tool()
def hold_summary(ctx: Context, as_of: str | None = None) -> list[dict] | dict:
    """Total time lost per hold reason, largest first."""
    try:
        now = _now(ctx, as_of)
    except ValueError as e:
        return {"error": str(e)}

    with open_store(_ctx(ctx).db_path) as store:
        summary = holds_mod.summarize_hold_reasons(store.list_activities(), now)
    return [serialize.hold_summary_dict(row) for row in summary]


# ── Slack Tools ───────────────────────────────────────────────────────────────


@mcp.tool()
def notify_status(ctx: Context, channel: str | None = None) -> dict:
    """Post the current project status and top hold reasons to Slack."""
    app = _ctx(ctx)
    channel = channel or app.config.slack_channel
    if not channel:
        return {"error": "No channel given and TT_SLACK_CHANNEL is not set"}

    now = app.clock.now()
    with open_store(app.db_path) as store:
        activities = store.list_activities()
        stats = metrics_mod.compute_project_stats(activities, store.list_packages(), now)
        summary = holds_mod.summarize_hold_reasons(activities, now)

    blocks = slack_mod.format_status_update(stats, summary)
    try:
        result = slack_mod.send_message(
            app.config.slack_bot_token, channel, "Turnaround status", blocks
        )
        return {"channel": result.channel, "ts": result.ts}
    except slack_mod.SlackError as e:
        return {"error": str(e)}
