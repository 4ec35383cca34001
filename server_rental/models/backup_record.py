"""Backup record model - append-only audit of archived backups.

One row is written for every successful archive copy, before the resource
that produced the backup is reinstalled. Rows are never updated or deleted.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from server_rental.database import Base, UTCDateTime


class BackupRecord(Base):
    __tablename__ = "backup_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("applications.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    external_backup_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Backup UUID on the panel",
    )
    archive_path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Path of the archived artifact on the archive remote",
    )
    backup_date: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        comment="Creation time of the backup on the panel",
    )
    comment: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    application: Mapped[Application] = relationship(  # type: ignore[name-defined]
        "Application", back_populates="backup_records"
    )

    def __repr__(self) -> str:
        return (
            f"<BackupRecord id={self.id} application={self.application_id} "
            f"backup={self.external_backup_id!r}>"
        )
