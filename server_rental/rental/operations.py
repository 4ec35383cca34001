"""Operation dispatch for front-end adapters.

Adapters (the HTTP API, a chat bot, a CLI) name what they want with an
Operation member and pass keyword parameters; dispatch() routes the call
to the plain async function implementing it.

    await dispatch(ctx, Operation.APPROVE, application_id=7, usernames=["alice"])
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from server_rental.rental.assignment import assign
from server_rental.rental.context import RentalContext
from server_rental.rental.expiry import ExpiryScanner
from server_rental.rental.queries import get_status_summary
from server_rental.rental.returns import (
    get_backup_options,
    process_return,
    revoke_application_access,
)
from server_rental.rental.submission import (
    approve_application,
    reject_application,
    submit_application,
)


class Operation(StrEnum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    ASSIGN = "assign"
    LIST_BACKUPS = "list_backups"
    PROCESS_RETURN = "process_return"
    REVOKE_ACCESS = "revoke_access"
    RUN_EXPIRY_CYCLE = "run_expiry_cycle"
    STATUS = "status"


async def _run_expiry_cycle(
    ctx: RentalContext, *, scanner: ExpiryScanner | None = None, **params: Any
) -> Any:
    return await (scanner or ExpiryScanner(ctx)).run_cycle(**params)


HANDLERS: dict[Operation, Callable[..., Awaitable[Any]]] = {
    Operation.SUBMIT: submit_application,
    Operation.APPROVE: approve_application,
    Operation.REJECT: reject_application,
    Operation.ASSIGN: assign,
    Operation.LIST_BACKUPS: get_backup_options,
    Operation.PROCESS_RETURN: process_return,
    Operation.REVOKE_ACCESS: revoke_application_access,
    Operation.RUN_EXPIRY_CYCLE: _run_expiry_cycle,
    Operation.STATUS: get_status_summary,
}


async def dispatch(ctx: RentalContext, operation: Operation | str, **params: Any) -> Any:
    """Run ``operation`` with ``params`` and return its result.

    Raises:
        ValueError: ``operation`` is not a known Operation.
    """
    try:
        handler = HANDLERS[Operation(operation)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown operation: {operation!r}") from exc
    return await handler(ctx, **params)
