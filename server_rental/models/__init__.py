"""ORM models package.

Import all models here so that SQLAlchemy's metadata is fully populated
when Alembic runs autogenerate. The order of imports matters for foreign
key resolution.
"""

from server_rental.models.panel_user import PanelUser
from server_rental.models.application import (
    DATED_STATUSES,
    Application,
    ApplicationPanelUser,
    ApplicationStatus,
)
from server_rental.models.backup_record import BackupRecord

__all__ = [
    "DATED_STATUSES",
    "Application",
    "ApplicationPanelUser",
    "ApplicationStatus",
    "BackupRecord",
    "PanelUser",
]
