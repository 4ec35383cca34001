"""Application lifecycle state machine.

    PENDING ──approve──> ACTIVE ──expire──> NEEDS_BACKUP ──return──> RETURNED
       │
       └──reject──> REJECTED

Pure validation and apply functions over an application's status. No I/O
happens here: orchestrators perform their side effects first and request
the transition as the last step, which makes the transition the commit
point of the operation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta

from server_rental.models.application import Application, ApplicationStatus
from server_rental.rental.errors import InvalidTransition

TRANSITIONS: Mapping[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset(
        {ApplicationStatus.ACTIVE, ApplicationStatus.REJECTED}
    ),
    ApplicationStatus.ACTIVE: frozenset({ApplicationStatus.NEEDS_BACKUP}),
    ApplicationStatus.NEEDS_BACKUP: frozenset({ApplicationStatus.RETURNED}),
    ApplicationStatus.RETURNED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
}

TERMINAL_STATES = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)


def can_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def validate_transition(current: ApplicationStatus, target: ApplicationStatus) -> None:
    """Raise InvalidTransition unless current -> target is an edge."""
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def apply_transition(
    application: Application,
    target: ApplicationStatus,
    *,
    now: datetime | None = None,
) -> None:
    """Move ``application`` to ``target``.

    PENDING -> ACTIVE also starts the rental period: ``start_date`` is set to
    ``now`` and ``end_date`` to ``now + requested_period_days``. An invalid
    transition raises before anything on the entity is touched.
    """
    validate_transition(application.status, target)

    if target == ApplicationStatus.ACTIVE:
        started = now or datetime.now(UTC)
        application.start_date = started
        application.end_date = started + timedelta(days=application.requested_period_days)

    application.status = target


def is_valid_path(statuses: Iterable[ApplicationStatus]) -> bool:
    """True if ``statuses`` is a subsequence of some path from PENDING.

    Consecutive duplicates are ignored (an observer may sample the same
    status twice); any backward or sideways move makes the path invalid.
    """
    reachable = _reachable_from(ApplicationStatus.PENDING) | {ApplicationStatus.PENDING}
    previous: ApplicationStatus | None = None
    for status in statuses:
        if previous is None:
            if status not in reachable:
                return False
        elif status != previous and status not in _reachable_from(previous):
            return False
        previous = status
    return True


def _reachable_from(status: ApplicationStatus) -> set[ApplicationStatus]:
    seen: set[ApplicationStatus] = set()
    frontier = list(TRANSITIONS[status])
    while frontier:
        nxt = frontier.pop()
        if nxt not in seen:
            seen.add(nxt)
            frontier.extend(TRANSITIONS[nxt])
    return seen
