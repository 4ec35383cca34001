"""Error taxonomy for the rental lifecycle.

Families map onto how the triggering layer reacts:

- ValidationError: caller input is malformed; rejected before any I/O
- NotFound: an application, resource or backup does not exist
- Capacity: no resource is free; the application stays PENDING
- ExternalFailure: a panel or archive call failed; already committed
  steps are not rolled back
- InvalidTransition: the requested status change is not in the graph

Best-effort steps (notifications, role grants, backup unlocks, individual
revocations) never raise; they are logged where they happen.
"""

from __future__ import annotations

from server_rental.models.application import ApplicationStatus


class RentalError(Exception):
    """Base class for all rental lifecycle errors."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(RentalError, ValueError):
    """Caller input failed validation before any I/O was performed."""


class GranteeCountMismatch(ValidationError):
    """Number of panel usernames differs from the number of grantees."""

    def __init__(self, usernames: int, grantees: int) -> None:
        super().__init__(
            f"Number of usernames ({usernames}) does not match "
            f"number of panel users ({grantees})"
        )
        self.usernames = usernames
        self.grantees = grantees


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFound(RentalError):
    """A referenced entity does not exist."""


class ApplicationNotFound(NotFound):
    def __init__(self, application_id: int) -> None:
        super().__init__(f"Application not found: {application_id}")
        self.application_id = application_id


class NotAssigned(NotFound):
    def __init__(self, application_id: int) -> None:
        super().__init__(f"Application {application_id} has no assigned resource")
        self.application_id = application_id


class ResourceNotFound(NotFound):
    def __init__(self, resource_identifier: str) -> None:
        super().__init__(f"Resource not found on panel: {resource_identifier}")
        self.resource_identifier = resource_identifier


class BackupNotFound(NotFound):
    def __init__(self, backup_id: str) -> None:
        super().__init__(f"Backup not found: {backup_id}")
        self.backup_id = backup_id


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------


class Capacity(RentalError):
    """No resource can be allocated."""


class NoCapacity(Capacity):
    def __init__(self, message: str = "No available resource on the panel") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# External failures
# ---------------------------------------------------------------------------


class ExternalFailure(RentalError):
    """A call to the panel or the archive failed."""


class ProvisioningFailed(ExternalFailure):
    """Panel account creation or access grant failed during assignment."""

    def __init__(self, discord_id: str, step: str, reason: str) -> None:
        super().__init__(f"Provisioning failed for {discord_id} at {step}: {reason}")
        self.discord_id = discord_id
        self.step = step


# ---------------------------------------------------------------------------
# Workflow state
# ---------------------------------------------------------------------------


class InvalidTransition(RentalError):
    """The requested status change is not an edge of the lifecycle graph."""

    def __init__(self, current: ApplicationStatus, target: ApplicationStatus) -> None:
        super().__init__(f"Invalid transition: {current} -> {target}")
        self.current = current
        self.target = target


class AlreadyAssigned(RentalError):
    """The application already holds a resource; assignment is not retried."""

    def __init__(self, application_id: int, resource_identifier: str) -> None:
        super().__init__(
            f"Application {application_id} is already assigned to {resource_identifier}"
        )
        self.application_id = application_id
        self.resource_identifier = resource_identifier
