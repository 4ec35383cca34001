"""Create the rental tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17

Tables:
  applications             - one rental request / rental
  panel_users              - grantees, upserted on discord_id
  application_panel_users  - ordered application <-> panel user links
  backup_records           - append-only archive audit

Notes:
  - applications.assigned_resource_id is UNIQUE: a panel resource can be
    held by at most one application, ever.
  - status uses a native enum on PostgreSQL (application_status).
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

application_status = sa.Enum(
    "PENDING",
    "ACTIVE",
    "NEEDS_BACKUP",
    "RETURNED",
    "REJECTED",
    name="application_status",
)


def upgrade() -> None:
    op.create_table(
        "panel_users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("discord_id", sa.String(32), nullable=False, comment="Discord user ID (external identity)"),
        sa.Column("external_username", sa.String(191), nullable=True),
        sa.Column("external_email", sa.String(320), nullable=True),
        sa.Column(
            "external_user_id",
            sa.Integer(),
            nullable=True,
            comment="Panel user id; null until the account has been provisioned",
        ),
        sa.Column(
            "has_external_role",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
            comment="Set once the panel Discord role has been granted",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_panel_users_discord_id", "panel_users", ["discord_id"], unique=True)

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("status", application_status, nullable=False, server_default="PENDING"),
        sa.Column("applicant_id", sa.String(32), nullable=False),
        sa.Column("organizer_id", sa.String(32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("requested_version", sa.String(20), nullable=False),
        sa.Column("requested_period_days", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "assigned_resource_id",
            sa.String(64),
            nullable=True,
            comment="Set once by the assignment orchestrator; never reassigned",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("requested_period_days > 0", name="ck_applications_period_positive"),
        sa.UniqueConstraint("assigned_resource_id", name="uq_applications_assigned_resource"),
    )
    op.create_index("ix_applications_status", "applications", ["status"])
    op.create_index("ix_applications_organizer_id", "applications", ["organizer_id"])
    op.create_index("ix_applications_end_date", "applications", ["end_date"])
    op.create_index("ix_applications_status_end_date", "applications", ["status", "end_date"])

    op.create_table(
        "application_panel_users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "panel_user_id",
            sa.Integer(),
            sa.ForeignKey("panel_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint(
            "application_id", "panel_user_id", name="uq_application_panel_users_pair"
        ),
    )
    op.create_index(
        "ix_application_panel_users_application_id",
        "application_panel_users",
        ["application_id"],
    )
    op.create_index(
        "ix_application_panel_users_panel_user_id",
        "application_panel_users",
        ["panel_user_id"],
    )

    op.create_table(
        "backup_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("external_backup_id", sa.String(64), nullable=False, comment="Backup UUID on the panel"),
        sa.Column(
            "archive_path",
            sa.Text(),
            nullable=False,
            comment="Path of the archived artifact on the archive remote",
        ),
        sa.Column(
            "backup_date",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Creation time of the backup on the panel",
        ),
        sa.Column("comment", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_backup_records_application_id", "backup_records", ["application_id"])


def downgrade() -> None:
    op.drop_index("ix_backup_records_application_id", table_name="backup_records")
    op.drop_table("backup_records")
    op.drop_index("ix_application_panel_users_panel_user_id", table_name="application_panel_users")
    op.drop_index("ix_application_panel_users_application_id", table_name="application_panel_users")
    op.drop_table("application_panel_users")
    op.drop_index("ix_applications_status_end_date", table_name="applications")
    op.drop_index("ix_applications_end_date", table_name="applications")
    op.drop_index("ix_applications_organizer_id", table_name="applications")
    op.drop_index("ix_applications_status", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_panel_users_discord_id", table_name="panel_users")
    op.drop_table("panel_users")
    application_status.drop(op.get_bind(), checkfirst=True)
