"""Submission, approval and rejection of rental applications.

Input is validated before any I/O. Approval captures the panel usernames
for the grantees and hands over to the assignment orchestrator.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import structlog

from server_rental.models.application import Application, ApplicationStatus
from server_rental.rental.assignment import assign
from server_rental.rental.context import RentalContext
from server_rental.rental.errors import (
    GranteeCountMismatch,
    InvalidTransition,
    ValidationError,
)

log = structlog.get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 500
MAX_VERSION_LENGTH = 20


def parse_id_list(text: str) -> list[str]:
    """Split newline separated ids, trimming whitespace and dropping blanks."""
    return [line.strip() for line in text.splitlines() if line.strip()]


def _dedupe(values: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


async def submit_application(
    ctx: RentalContext,
    *,
    applicant_id: str,
    organizer_id: str,
    description: str,
    requested_version: str,
    requested_period_days: int,
    grantee_ids: Sequence[str],
) -> Application:
    """Create a PENDING application with its grantees.

    Raises:
        ValidationError: empty or oversized fields, a non-positive period,
            or no grantees after trimming and de-duplication.
    """
    description = description.strip()
    requested_version = requested_version.strip()
    grantees = _dedupe(grantee_ids)

    if not description:
        raise ValidationError("Description must not be empty")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )
    if not requested_version or len(requested_version) > MAX_VERSION_LENGTH:
        raise ValidationError(
            f"Version must be 1 to {MAX_VERSION_LENGTH} characters"
        )
    if requested_period_days <= 0:
        raise ValidationError("Rental period must be a positive number of days")
    if not grantees:
        raise ValidationError("At least one panel user is required")

    application = await ctx.store.create_application(
        applicant_id=applicant_id,
        organizer_id=organizer_id,
        description=description,
        requested_version=requested_version,
        requested_period_days=requested_period_days,
        grantee_ids=grantees,
    )
    log.info(
        "submission.created",
        application_id=application.id,
        organizer_id=organizer_id,
        grantees=len(grantees),
    )
    return application


async def approve_application(
    ctx: RentalContext,
    application_id: int,
    usernames: Sequence[str],
    *,
    now: datetime | None = None,
) -> Application:
    """Capture panel usernames positionally, then assign a resource.

    Grantees that already have a panel account keep their recorded
    username and email.
    """
    names = [name.strip() for name in usernames if name.strip()]
    if not names:
        raise ValidationError("At least one panel username is required")

    application = await ctx.store.require_application(application_id)
    if application.status != ApplicationStatus.PENDING:
        raise InvalidTransition(application.status, ApplicationStatus.ACTIVE)

    grantees = application.grantees
    if len(names) != len(grantees):
        raise GranteeCountMismatch(len(names), len(grantees))

    for grantee, username in zip(grantees, names, strict=True):
        if grantee.is_provisioned:
            continue
        await ctx.store.set_panel_identity(
            grantee.id, username, f"{username}@{ctx.settings.panel_email_domain}"
        )

    log.info("submission.approved", application_id=application_id, usernames=len(names))
    return await assign(ctx, application_id, now=now)


async def reject_application(ctx: RentalContext, application_id: int) -> Application:
    application = await ctx.store.transition(application_id, ApplicationStatus.REJECTED)
    log.info("submission.rejected", application_id=application_id)
    return application
