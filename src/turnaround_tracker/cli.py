"""CLI entry point for the turnaround tracker."""

import dataclasses
import json
import sys
from datetime import timedelta

import click

from turnaround_tracker import serialize
from turnaround_tracker.config import get_config, setup_logging
from turnaround_tracker.core import activities as activities_mod
from turnaround_tracker.core import holds as holds_mod
from turnaround_tracker.core import importer as importer_mod
from turnaround_tracker.core import metrics as metrics_mod
from turnaround_tracker.core import packages as packages_mod
from turnaround_tracker.core import transitions as transitions_mod
from turnaround_tracker.core.clock import SimulationClock
from turnaround_tracker.db.engine import init_db, open_store
from turnaround_tracker.db.models import (
    COMPLETED,
    IN_PROGRESS,
    NOT_STARTED,
    ON_HOLD,
    PRIORITIES,
    STATUSES,
    Activity,
    Package,
)
from turnaround_tracker.errors import TrackerError
from turnaround_tracker.integrations import slack as slack_mod

DATETIME = click.DateTime(formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d"])
PRIORITY = click.Choice(PRIORITIES, case_sensitive=False)

STATUS_ALIASES = {
    "not-started": NOT_STARTED,
    "reset": NOT_STARTED,
    "in-progress": IN_PROGRESS,
    "start": IN_PROGRESS,
    "resume": IN_PROGRESS,
    "completed": COMPLETED,
    "done": COMPLETED,
    "on-hold": ON_HOLD,
    "hold": ON_HOLD,
}

STATUS_ICONS = {
    NOT_STARTED: "○",
    IN_PROGRESS: "●",
    COMPLETED: "✓",
    ON_HOLD: "‖",
}


def _open_store():
    config = get_config()
    return open_store(config.db_path)


def _as_of(as_of=None):
    if as_of:
        return as_of
    return SimulationClock(pinned=get_config().simulation_date).now()


def _fail(message: str):
    click.echo(message, err=True)
    sys.exit(1)


def _fmt(val) -> str:
    return val.strftime("%Y-%m-%d %H:%M") if val else "N/A"


def _parse_status(value: str) -> str:
    for status in STATUSES:
        if value.lower() == status.lower():
            return status
    status = STATUS_ALIASES.get(value.lower())
    if status is None:
        raise click.BadParameter(
            f"'{value}' is not one of: {', '.join(sorted(STATUS_ALIASES))}"
        )
    return status


def _priority(value: str | None) -> str | None:
    return value.capitalize() if value else None


@click.group()
def main():
    """tt - Turnaround Tracker CLI"""
    setup_logging(get_config().log_level)


@main.command("init-db")
def init_db_command():
    """Create the database and its tables."""
    config = get_config()
    init_db(config.db_path).close()
    click.echo(f"Database ready: {config.db_path}")


# ── Package Commands ──────────────────────────────────────────────────────────


@main.group("package")
def package_group():
    """Manage work packages."""
    pass


@package_group.command("add")
@click.argument("name")
@click.option("--id", "package_id", default=None, help="Package ID (generated if omitted)")
@click.option("--start", required=True, type=DATETIME, help="Planned start")
@click.option("--end", required=True, type=DATETIME, help="Planned end")
@click.option("--priority", "-p", default="Medium", type=PRIORITY)
@click.option("--description", "-d", default=None)
@click.option("--supervisor", default=None)
def package_add(name, package_id, start, end, priority, description, supervisor):
    """Create a new package."""
    with _open_store() as store:
        package = Package(
            id=package_id or packages_mod.new_package_id(store, name),
            name=name,
            start_date=start,
            end_date=end,
            priority=_priority(priority),
            description=description,
            supervisor=supervisor,
        )
        try:
            package = packages_mod.upsert_package(store, package)
        except TrackerError as e:
            _fail(f"Error: {e}")
        click.echo(f"Created package: {package.id}")
        click.echo(f"  Name: {package.name}")
        click.echo(f"  Window: {_fmt(package.start_date)} -> {_fmt(package.end_date)}")


@package_group.command("edit")
@click.argument("package_id")
@click.option("--name", default=None)
@click.option("--start", default=None, type=DATETIME)
@click.option("--end", default=None, type=DATETIME)
@click.option("--priority", "-p", default=None, type=PRIORITY)
@click.option("--description", "-d", default=None)
@click.option("--supervisor", default=None)
def package_edit(package_id, name, start, end, priority, description, supervisor):
    """Edit a package's fields."""
    with _open_store() as store:
        package = store.get_package(package_id)
        if not package:
            _fail(f"Package not found: {package_id}")
        changes = {
            "name": name,
            "start_date": start,
            "end_date": end,
            "priority": _priority(priority),
            "description": description,
            "supervisor": supervisor,
        }
        updated = dataclasses.replace(
            package, **{k: v for k, v in changes.items() if v is not None}
        )
        try:
            updated = packages_mod.upsert_package(store, updated)
        except TrackerError as e:
            _fail(f"Error: {e}")
        click.echo(f"Updated package: {updated.id}")
        click.echo(f"  Window: {_fmt(updated.start_date)} -> {_fmt(updated.end_date)}")


@package_group.command("list")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def package_list(json_output):
    """List packages with their derived status and progress."""
    with _open_store() as store:
        packages = store.list_packages()
        rows = []
        for p in packages:
            m = metrics_mod.compute_package_metrics(p, store.list_activities(package_id=p.id))
            rows.append((p, m))

        if json_output:
            click.echo(json.dumps(
                [{**serialize.package_dict(p), "metrics": serialize.metrics_dict(m)} for p, m in rows],
                indent=2,
            ))
            return

        if not rows:
            click.echo("No packages found.")
            return

        for p, m in rows:
            icon = STATUS_ICONS.get(m.status, "?")
            click.echo(
                f"  {icon} {p.id}: {p.name} [{p.priority}] ({m.status}, {m.progress:.0f}%) "
                f"{_fmt(p.start_date)} -> {_fmt(p.end_date)}"
            )


@package_group.command("show")
@click.argument("package_id")
def package_show(package_id):
    """Show package details with activities grouped by tag."""
    with _open_store() as store:
        package = store.get_package(package_id)
        if not package:
            _fail(f"Package not found: {package_id}")

        activities = store.list_activities(package_id=package_id)
        m = metrics_mod.compute_package_metrics(package, activities)
        click.echo(f"Package: {package.id}")
        click.echo(f"  Name: {package.name}")
        click.echo(f"  Priority: {package.priority}")
        if package.description:
            click.echo(f"  Description: {package.description}")
        if package.supervisor:
            click.echo(f"  Supervisor: {package.supervisor}")
        click.echo(f"  Status: {m.status} ({m.progress:.1f}%)")
        click.echo(f"  Planned: {_fmt(package.start_date)} -> {_fmt(package.end_date)}")
        click.echo(f"  Actual: {_fmt(m.actual_start_date)} -> {_fmt(m.actual_end_date)}")

        for tag in sorted({a.tag for a in activities}):
            click.echo(f"  {tag}:")
            for a in store.lineage(package_id, tag):
                icon = STATUS_ICONS.get(a.status, "?")
                click.echo(
                    f"    {icon} {a.id}: {a.title} ({a.status}) "
                    f"{_fmt(a.deadline)} -> {_fmt(a.planned_end_date)}"
                )


@package_group.command("delete")
@click.argument("package_id")
def package_delete(package_id):
    """Delete a package and all of its activities."""
    with _open_store() as store:
        count = len(store.list_activities(package_id=package_id))
        if not packages_mod.delete_package(store, package_id):
            _fail(f"Package not found: {package_id}")
        click.echo(f"Deleted package {package_id} and {count} activities")


# ── Activity Commands ─────────────────────────────────────────────────────────


@main.group("activity")
def activity_group():
    """Manage activities."""
    pass


@activity_group.command("add")
@click.argument("title")
@click.option("--package", "package_id", required=True, help="Package ID")
@click.option("--tag", required=True, help="Equipment tag")
@click.option("--start", required=True, type=DATETIME, help="Planned start")
@click.option("--end", default=None, type=DATETIME, help="Planned end")
@click.option("--hours", default=None, type=float, help="Planned duration instead of --end")
@click.option("--id", "activity_id", default=None, help="Activity ID (generated if omitted)")
@click.option("--priority", "-p", default="Medium", type=PRIORITY)
@click.option("--assignee", default=None)
@click.option("--remark", default=None)
def activity_add(title, package_id, tag, start, end, hours, activity_id, priority, assignee, remark):
    """Create an activity and reschedule the rest of its tag."""
    if end is None and hours is None:
        _fail("Either --end or --hours is required.")
    if end is None:
        end = start + timedelta(hours=hours)

    with _open_store() as store:
        activity = Activity(
            id=activity_id or activities_mod.new_activity_id(store, title),
            title=title,
            package_name=package_id,
            tag=tag,
            deadline=start,
            planned_end_date=end,
            priority=_priority(priority),
            assignee=assignee,
            remark=remark,
        )
        try:
            activity = activities_mod.upsert_activity(store, activity)
        except TrackerError as e:
            _fail(f"Error: {e}")
        click.echo(f"Created activity: {activity.id}")
        click.echo(f"  Planned: {_fmt(activity.deadline)} -> {_fmt(activity.planned_end_date)}")


@activity_group.command("edit")
@click.argument("activity_id")
@click.option("--title", default=None)
@click.option("--tag", default=None)
@click.option("--start", default=None, type=DATETIME)
@click.option("--end", default=None, type=DATETIME)
@click.option("--priority", "-p", default=None, type=PRIORITY)
@click.option("--assignee", default=None)
@click.option("--remark", default=None)
def activity_edit(activity_id, title, tag, start, end, priority, assignee, remark):
    """Edit an activity; later activities in its tag are shifted to follow it."""
    with _open_store() as store:
        activity = store.get_activity(activity_id)
        if not activity:
            _fail(f"Activity not found: {activity_id}")
        changes = {
            "title": title,
            "tag": tag,
            "deadline": start,
            "planned_end_date": end,
            "priority": _priority(priority),
            "assignee": assignee,
            "remark": remark,
        }
        updated = dataclasses.replace(
            activity,
            hold_history=list(activity.hold_history),
            **{k: v for k, v in changes.items() if v is not None},
        )
        before = {a.id: a.deadline for a in store.list_activities()}
        try:
            updated = activities_mod.upsert_activity(store, updated)
        except TrackerError as e:
            _fail(f"Error: {e}")
        click.echo(f"Updated activity: {updated.id}")
        click.echo(f"  Planned: {_fmt(updated.deadline)} -> {_fmt(updated.planned_end_date)}")
        for a in store.list_activities():
            if a.id != updated.id and a.id in before and before[a.id] != a.deadline:
                click.echo(f"  Shifted {a.id}: {_fmt(a.deadline)} -> {_fmt(a.planned_end_date)}")


@activity_group.command("list")
@click.option("--package", "package_id", default=None, help="Filter by package")
@click.option("--tag", default=None, help="Filter by tag")
@click.option("--status", default=None, help="Filter by status")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def activity_list(package_id, tag, status, json_output):
    """List activities in planned order."""
    status = _parse_status(status) if status else None
    with _open_store() as store:
        activities = store.list_activities(package_id=package_id, tag=tag, status=status)
        activities.sort(key=lambda a: (a.package_name, a.tag, a.deadline))

        if json_output:
            click.echo(json.dumps([serialize.activity_dict(a) for a in activities], indent=2))
            return

        if not activities:
            click.echo("No activities found.")
            return

        for a in activities:
            icon = STATUS_ICONS.get(a.status, "?")
            click.echo(
                f"  {icon} {a.id}: {a.title} [{a.package_name}/{a.tag}] ({a.status}) "
                f"{_fmt(a.deadline)} -> {_fmt(a.planned_end_date)}"
            )


@activity_group.command("show")
@click.argument("activity_id")
def activity_show(activity_id):
    """Show activity details and hold history."""
    with _open_store() as store:
        a = store.get_activity(activity_id)
        if not a:
            _fail(f"Activity not found: {activity_id}")

        click.echo(f"Activity: {a.id}")
        click.echo(f"  Title: {a.title}")
        click.echo(f"  Package: {a.package_name}")
        click.echo(f"  Tag: {a.tag}")
        click.echo(f"  Priority: {a.priority}")
        click.echo(f"  Status: {a.status}")
        if a.assignee:
            click.echo(f"  Assignee: {a.assignee}")
        click.echo(f"  Planned: {_fmt(a.deadline)} -> {_fmt(a.planned_end_date)}")
        click.echo(f"  Actual: {_fmt(a.start_time)} -> {_fmt(a.end_time)}")
        if a.remark:
            click.echo(f"  Remark: {a.remark}")
        if a.hold_history:
            click.echo("  Holds:")
            for h in a.hold_history:
                end = _fmt(h.end_time) if h.end_time else "ongoing"
                remarks = f" - {h.remarks}" if h.remarks else ""
                click.echo(f"    {_fmt(h.start_time)} -> {end}: {h.reason}{remarks}")


@activity_group.command("status")
@click.argument("activity_id")
@click.argument("status")
@click.option("--reason", default=None, help="Hold reason (required for on-hold)")
@click.option("--remarks", default=None, help="Hold remarks")
@click.option("--notify", default=None, help="Slack channel to notify")
def activity_status(activity_id, status, reason, remarks, notify):
    """Change an activity's status (start, hold, resume, done, reset)."""
    new_status = _parse_status(status)
    config = get_config()
    with _open_store() as store:
        try:
            activity = transitions_mod.set_activity_status(
                store, activity_id, new_status, reason=reason, remarks=remarks, now=_as_of()
            )
        except TrackerError as e:
            _fail(f"Error: {e}")
        if not activity:
            _fail(f"Activity not found: {activity_id}")
        click.echo(f"{activity.id}: {activity.status}")
        if activity.start_time:
            click.echo(f"  Started: {_fmt(activity.start_time)}")
        if activity.end_time:
            click.echo(f"  Finished: {_fmt(activity.end_time)}")

    if notify:
        blocks = slack_mod.format_activity_notification(
            activity.id, activity.title, activity.status, activity.package_name, reason
        )
        try:
            slack_mod.send_message(
                config.slack_bot_token, notify, f"{activity.title}: {activity.status}", blocks
            )
            click.echo(f"  Slack notification sent to {notify}")
        except slack_mod.SlackError as e:
            click.echo(f"  Slack notification failed: {e}", err=True)


@activity_group.command("delete")
@click.argument("activity_id")
def activity_delete(activity_id):
    """Delete an activity and close the gap in its tag."""
    with _open_store() as store:
        if not activities_mod.delete_activity(store, activity_id):
            _fail(f"Activity not found: {activity_id}")
        click.echo(f"Deleted activity: {activity_id}")


@activity_group.command("retag")
@click.argument("new_tag")
@click.argument("activity_ids", nargs=-1, required=True)
def activity_retag(new_tag, activity_ids):
    """Move activities to another equipment tag."""
    with _open_store() as store:
        try:
            updated = activities_mod.retag_activities(store, list(activity_ids), new_tag)
        except TrackerError as e:
            _fail(f"Error: {e}")
        click.echo(f"Retagged {len(updated)} activities to '{new_tag}'")


@activity_group.command("history")
@click.argument("activity_id")
def activity_history(activity_id):
    """Show the event history of an activity."""
    with _open_store() as store:
        if not store.get_activity(activity_id):
            _fail(f"Activity not found: {activity_id}")
        for e in activities_mod.get_activity_events(store, activity_id):
            click.echo(f"  [{_fmt(e.created_at)}] {e.event_type}: {e.old_value} -> {e.new_value}")


# ── Metrics Commands ──────────────────────────────────────────────────────────


@main.command("stats")
@click.option("--as-of", default=None, type=DATETIME, help="Evaluate at this instant")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def stats_command(as_of, json_output):
    """Show project progress, buckets and schedule variance."""
    as_of = _as_of(as_of)
    with _open_store() as store:
        stats = metrics_mod.compute_project_stats(
            store.list_activities(), store.list_packages(), as_of
        )
    if json_output:
        click.echo(json.dumps(serialize.stats_dict(stats), indent=2))
        return
    _echo_stats(stats, as_of)


def _echo_stats(stats, as_of):
    variance = stats.schedule_variance_hours
    trend = "ahead" if variance > 0 else "behind" if variance < 0 else "on plan"
    click.echo(f"As of {_fmt(as_of)}")
    click.echo(f"  Actual progress: {stats.actual_progress:.1f}%")
    click.echo(f"  Planned progress: {stats.planned_progress:.1f}%")
    click.echo(f"  Completed: {len(stats.completed_activities)}")
    click.echo(f"  Delayed: {len(stats.delayed_activities)}")
    click.echo(f"  On track: {len(stats.on_track_activities)}")
    click.echo(f"  Upcoming: {len(stats.upcoming_activities)}")
    click.echo(f"  Planned: {_fmt(stats.planned_start_date)} -> {_fmt(stats.planned_end_date)}")
    click.echo(f"  Actual start: {_fmt(stats.actual_start_date)}")
    click.echo(f"  Estimated end: {_fmt(stats.estimated_end_date)}")
    click.echo(f"  Variance: {abs(variance):.1f}h {trend}")


@main.group("holds")
def holds_group():
    """Hold log and reason summary."""
    pass


@holds_group.command("log")
@click.option("--as-of", default=None, type=DATETIME)
def holds_log(as_of):
    """List every hold, most recent first."""
    now = _as_of(as_of)
    with _open_store() as store:
        log = holds_mod.build_hold_log(store.list_activities())
    if not log:
        click.echo("No holds recorded.")
        return
    for entry in log:
        end = _fmt(entry.hold.end_time) if entry.hold.end_time else "ongoing"
        click.echo(
            f"  {entry.activity.id}: {entry.hold.reason} "
            f"{_fmt(entry.hold.start_time)} -> {end} "
            f"({holds_mod.format_duration(entry.duration(now))})"
        )


@holds_group.command("summary")
@click.option("--as-of", default=None, type=DATETIME)
def holds_summary(as_of):
    """Total time lost per hold reason."""
    now = _as_of(as_of)
    with _open_store() as store:
        summary = holds_mod.summarize_hold_reasons(store.list_activities(), now)
    if not summary:
        click.echo("No holds recorded.")
        return
    for row in summary:
        click.echo(f"  {row.reason}: {holds_mod.format_duration(row.total_duration)} ({row.count}x)")


@main.command("scurve")
@click.option("--package", "package_id", default=None, help="Limit to one package")
def scurve_command(package_id):
    """Planned vs. completed progress over the planned window."""
    with _open_store() as store:
        points = metrics_mod.s_curve(store.list_activities(), store.list_packages(), package_id)
    if not points:
        click.echo("No data to display.")
        return
    for p in points:
        click.echo(f"  {p.day.isoformat()}  planned {p.planned:5.1f}%  completed {p.completed:5.1f}%")


@main.command("report")
@click.option("--as-of", default=None, type=DATETIME)
def report_command(as_of):
    """Print the dashboard report: project summary and per-package metrics."""
    as_of = _as_of(as_of)
    with _open_store() as store:
        stats = metrics_mod.compute_project_stats(
            store.list_activities(), store.list_packages(), as_of
        )
        _echo_stats(stats, as_of)
        click.echo("Packages:")
        for p in store.list_packages():
            m = metrics_mod.compute_package_metrics(p, store.list_activities(package_id=p.id))
            click.echo(
                f"  {p.id}: {p.name} ({m.status}, {m.progress:.0f}%) "
                f"actual {_fmt(m.actual_start_date)} -> {_fmt(m.actual_end_date)}"
            )
        feed = metrics_mod.in_progress_feed(store.list_activities(), as_of)
        if feed:
            click.echo("Active work:")
            for a, label in feed:
                click.echo(f"  [{label}] {a.id}: {a.title} ({a.package_name}/{a.tag})")


# ── Import Commands ───────────────────────────────────────────────────────────


@main.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--commit", is_flag=True, help="Merge the rows (otherwise preview only)")
def import_command(path, commit):
    """Preview or import packages and activities from an Excel workbook."""
    try:
        preview = importer_mod.read_workbook(path)
    except TrackerError as e:
        _fail(f"Error: {e}")

    click.echo(f"Packages: {len(preview.packages)}")
    click.echo(f"Activities: {len(preview.activities)}")
    if preview.errors:
        click.echo("Validation errors:", err=True)
        for error in preview.errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    if not commit:
        click.echo("Preview only; re-run with --commit to import.")
        return

    with _open_store() as store:
        packages, activities = importer_mod.commit_import(store, preview)
    click.echo(f"Imported {packages} packages and {activities} activities")


@main.command("template")
@click.argument("path", type=click.Path(dir_okay=False))
def template_command(path):
    """Write a bulk-import workbook template with example rows."""
    importer_mod.generate_template(path)
    click.echo(f"Template written to {path}")


# ── Slack Commands ────────────────────────────────────────────────────────────


@main.group("slack")
def slack_group():
    """Slack integration commands."""
    pass


@slack_group.command("status")
@click.option("--channel", default=None, help="Slack channel (uses TT_SLACK_CHANNEL if not set)")
@click.option("--as-of", default=None, type=DATETIME)
def slack_status(channel, as_of):
    """Post project status to Slack."""
    config = get_config()
    channel = channel or config.slack_channel
    if not channel:
        _fail("No channel specified and TT_SLACK_CHANNEL is not set.")

    now = _as_of(as_of)
    with _open_store() as store:
        activities = store.list_activities()
        stats = metrics_mod.compute_project_stats(activities, store.list_packages(), now)
        summary = holds_mod.summarize_hold_reasons(activities, now)
    blocks = slack_mod.format_status_update(stats, summary)
    try:
        result = slack_mod.send_message(config.slack_bot_token, channel, "Turnaround status", blocks)
        click.echo(f"Status posted to {result.channel}")
    except slack_mod.SlackError as e:
        _fail(f"Error: {e}")


# ── Dashboard Command ────────────────────────────────────────────────────────


@main.command("ui")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8788, type=int, help="Port to listen on")
@click.option("--open/--no-open", default=True, help="Open browser automatically")
def ui_command(host, port, open):
    """Launch the web dashboard."""
    import webbrowser

    from turnaround_tracker.web.app import run_server

    url = f"http://{host}:{port}"
    click.echo(f"Starting dashboard at {url}")
    if open:
        webbrowser.open(url)
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from turnaround_tracker.mcp.server import mcp

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
