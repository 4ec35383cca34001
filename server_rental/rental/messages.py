"""Notification message builders for rental events."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from server_rental.connectors.panel import PanelResource
from server_rental.models.application import Application
from server_rental.services.notification import (
    COLOR_INFO,
    COLOR_URGENT,
    COLOR_WARNING,
    Notice,
)

EXPIRY_SUMMARY_LIMIT = 10


def _mention(discord_id: str) -> str:
    return f"<@{discord_id}>"


def _format_date(value: datetime | None) -> str:
    return f"{value:%Y-%m-%d %H:%M} UTC" if value else "-"


def _grantee_mentions(application: Application) -> str:
    return ", ".join(_mention(user.discord_id) for user in application.grantees) or "none"


def assignment_notice(application: Application, resource: PanelResource) -> Notice:
    return Notice(
        title="Server assigned",
        description=f"Your rental request #{application.id} was approved.",
        fields=[
            ("Server", f"{resource.name} ({resource.identifier})"),
            ("Version", application.requested_version),
            ("Ends", _format_date(application.end_date)),
            ("Panel users", _grantee_mentions(application)),
        ],
        color=COLOR_INFO,
    )


def is_urgent(days_until_expiry: int) -> bool:
    return days_until_expiry <= 1


def reminder_notice(application: Application, days_until_expiry: int) -> Notice:
    urgent = is_urgent(days_until_expiry)
    return Notice(
        title="Server expiry reminder",
        description=(
            "A server you organize is about to expire.\n"
            f"It expires in **{days_until_expiry} day(s)**."
        ),
        fields=[
            ("Application", str(application.id)),
            ("Server", application.assigned_resource_id or "unassigned"),
            ("Description", application.description),
            ("Ends", _format_date(application.end_date)),
            ("Panel users", _grantee_mentions(application)),
        ],
        color=COLOR_URGENT if urgent else COLOR_WARNING,
        footer=(
            "The server is returned automatically after it expires."
            if urgent
            else "Consider requesting an extension if you need more time."
        ),
    )


def reminder_channel_notice(application: Application, days_until_expiry: int) -> Notice:
    notice = reminder_notice(application, days_until_expiry)
    notice.content = (
        f"Expiry notice: the server of {_mention(application.organizer_id)} "
        f"(application {application.id}) expires in **{days_until_expiry} day(s)**"
    )
    return notice


def expiry_summary_notice(applications: Sequence[Application]) -> Notice:
    """Channel summary of newly expired rentals (first ten listed)."""
    return Notice(
        title="Expired servers detected",
        description=(
            f"{len(applications)} server(s) have expired.\n"
            "Select a backup and run the return procedure."
        ),
        fields=[
            (
                f"Application {application.id}",
                f"Server: {application.assigned_resource_id}\n"
                f"Description: {application.description[:50]}",
            )
            for application in applications[:EXPIRY_SUMMARY_LIMIT]
        ],
        color=COLOR_URGENT,
    )


def reclaimed_notice(application: Application, archive_path: str) -> Notice:
    return Notice(
        title="Server returned",
        description=(
            f"The rental for application #{application.id} has ended and the "
            "server has been reclaimed. Panel access was removed."
        ),
        fields=[
            ("Server", application.assigned_resource_id or "-"),
            ("Archive", archive_path),
        ],
        color=COLOR_INFO,
    )


def access_granted_notice(
    application: Application, resource: PanelResource, username: str | None
) -> Notice:
    return Notice(
        title="Server access granted",
        description=f"You now have panel access for rental request #{application.id}.",
        fields=[
            ("Server", f"{resource.name} ({resource.identifier})"),
            ("Panel username", username or "-"),
            ("Ends", _format_date(application.end_date)),
        ],
        color=COLOR_INFO,
    )
