"""Application model - one rental request and, once approved, one rental.

An application is submitted in PENDING, moves to ACTIVE when a panel
resource has been assigned, to NEEDS_BACKUP when its rental period ends,
and to RETURNED once its backup has been archived and the resource
reclaimed. PENDING applications may instead be REJECTED.

Status, assigned resource and rental dates are written only by the rental
orchestrators (see server_rental.rental).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import (
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from server_rental.database import Base, UTCDateTime


class ApplicationStatus(StrEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    NEEDS_BACKUP = "NEEDS_BACKUP"
    RETURNED = "RETURNED"
    REJECTED = "REJECTED"


# Statuses in which a rental period has started and end_date is defined
DATED_STATUSES = frozenset(
    {
        ApplicationStatus.ACTIVE,
        ApplicationStatus.NEEDS_BACKUP,
        ApplicationStatus.RETURNED,
    }
)


class Application(Base):
    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
        index=True,
    )

    # Discord user IDs
    applicant_id: Mapped[str] = mapped_column(String(32), nullable=False)
    organizer_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    requested_version: Mapped[str] = mapped_column(String(20), nullable=False)
    requested_period_days: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, index=True
    )

    # Panel resource identifier (short server identifier, not the numeric id)
    assigned_resource_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Set once by the assignment orchestrator; never reassigned",
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    # Relationships
    panel_users: Mapped[list[ApplicationPanelUser]] = relationship(
        "ApplicationPanelUser",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationPanelUser.position",
        lazy="selectin",
    )
    backup_records: Mapped[list[BackupRecord]] = relationship(  # type: ignore[name-defined]
        "BackupRecord",
        back_populates="application",
        order_by="BackupRecord.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("requested_period_days > 0", name="ck_applications_period_positive"),
        # A resource can be held by at most one application
        UniqueConstraint("assigned_resource_id", name="uq_applications_assigned_resource"),
        Index("ix_applications_status_end_date", "status", "end_date"),
    )

    @property
    def grantees(self) -> list[PanelUser]:  # type: ignore[name-defined]
        """Panel users of this application in submission order."""
        return [link.panel_user for link in self.panel_users]

    def has_consistent_dates(self) -> bool:
        """end_date is set exactly when the rental period has started."""
        return (self.end_date is not None) == (self.status in DATED_STATUSES)

    def __repr__(self) -> str:
        return (
            f"<Application id={self.id} status={self.status} "
            f"resource={self.assigned_resource_id!r}>"
        )


class ApplicationPanelUser(Base):
    """Join row between an application and one of its panel users.

    Created once at submission time and never modified. ``position`` keeps
    the submission order so usernames supplied at approval map onto grantees
    positionally.
    """

    __tablename__ = "application_panel_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    panel_user_id: Mapped[int] = mapped_column(
        ForeignKey("panel_users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    application: Mapped[Application] = relationship(
        "Application", back_populates="panel_users"
    )
    panel_user: Mapped[PanelUser] = relationship(  # type: ignore[name-defined]
        "PanelUser", back_populates="applications", lazy="selectin"
    )

    __table_args__ = (
        UniqueConstraint(
            "application_id", "panel_user_id", name="uq_application_panel_users_pair"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ApplicationPanelUser application={self.application_id} "
            f"panel_user={self.panel_user_id}>"
        )
