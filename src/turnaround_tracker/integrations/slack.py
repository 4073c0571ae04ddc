"""Slack Web API integration."""

from dataclasses import dataclass

from turnaround_tracker.core.holds import HoldReasonSummary, format_duration
from turnaround_tracker.core.metrics import ProjectStats


class SlackError(Exception):
    """Raised when a Slack operation fails."""


@dataclass
class SlackMessage:
    channel: str
    ts: str
    text: str


def get_client(token: str | None):
    """Get a Slack WebClient. Returns None if no token provided."""
    if not token:
        return None
    from slack_sdk import WebClient
    return WebClient(token=token)


def send_message(
    token: str | None,
    channel: str,
    text: str,
    blocks: list[dict] | None = None,
) -> SlackMessage:
    """Send a message to a Slack channel."""
    client = get_client(token)
    if not client:
        raise SlackError("Slack not configured: SLACK_BOT_TOKEN not set")

    from slack_sdk.errors import SlackApiError

    try:
        response = client.chat_postMessage(channel=channel, text=text, blocks=blocks)
    except SlackApiError as e:
        raise SlackError(f"Slack API error: {e.response.get('error', e)}") from e

    return SlackMessage(
        channel=response["channel"],
        ts=response["ts"],
        text=text,
    )


STATUS_EMOJI = {
    "Not Started": ":white_circle:",
    "In Progress": ":large_blue_circle:",
    "Completed": ":white_check_mark:",
    "On Hold": ":double_vertical_bar:",
}


def format_activity_notification(
    activity_id: str,
    title: str,
    status: str,
    package_id: str,
    reason: str | None = None,
) -> list[dict]:
    """Format an activity status change as Slack blocks."""
    emoji = STATUS_EMOJI.get(status, ":grey_question:")
    hold = f"\nReason: {reason}" if reason else ""
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"{emoji} *Activity Update*\n*{title}* (`{activity_id}`)\n"
                    f"Status: *{status}* | Package: {package_id}{hold}"
                ),
            },
        }
    ]


def format_status_update(
    stats: ProjectStats,
    hold_summary: list[HoldReasonSummary] | None = None,
) -> list[dict]:
    """Format project progress (and top hold reasons) as Slack blocks."""
    variance = stats.schedule_variance_hours
    trend = "ahead" if variance > 0 else "behind" if variance < 0 else "on plan"
    blocks = [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f":bar_chart: *Turnaround Status*\n"
                    f"Actual: {stats.actual_progress:.0f}% | Planned: {stats.planned_progress:.0f}%\n"
                    f":white_check_mark: Completed: {len(stats.completed_activities)} | "
                    f":red_circle: Delayed: {len(stats.delayed_activities)} | "
                    f":large_blue_circle: On Track: {len(stats.on_track_activities)} | "
                    f":white_circle: Upcoming: {len(stats.upcoming_activities)}\n"
                    f"Variance: {abs(variance):.1f}h {trend}"
                ),
            },
        }
    ]
    if hold_summary:
        lines = [
            f"• {row.reason}: {format_duration(row.total_duration)} ({row.count}x)"
            for row in hold_summary[:3]
        ]
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": "*Top hold reasons*\n" + "\n".join(lines)},
            }
        )
    return blocks
