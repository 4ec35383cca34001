"""Panel user model - a person eligible for access to a rented resource.

Rows are created lazily (upsert on discord_id) the first time a Discord user
is named as a grantee. The panel account fields are filled in at approval
time and external_user_id once the account has been created on the panel.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from server_rental.database import Base, UTCDateTime


class PanelUser(Base):
    __tablename__ = "panel_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discord_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
        comment="Discord user ID (external identity)",
    )

    external_username: Mapped[str | None] = mapped_column(String(191), nullable=True)
    external_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    external_user_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Panel user id; null until the account has been provisioned",
    )
    has_external_role: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Set once the panel Discord role has been granted",
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

    applications: Mapped[list[ApplicationPanelUser]] = relationship(  # type: ignore[name-defined]
        "ApplicationPanelUser", back_populates="panel_user"
    )

    @property
    def is_provisioned(self) -> bool:
        return self.external_user_id is not None

    def __repr__(self) -> str:
        return (
            f"<PanelUser id={self.id} discord={self.discord_id!r} "
            f"external_user_id={self.external_user_id}>"
        )
