"""Create clients, reminders and reminder_attempts tables

Revision ID: b7e2c91d4a10
Revises:
Create Date: 2026-10-17 21:40:12.118204

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b7e2c91d4a10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

REMINDER_CHANNEL = sa.Enum("email", "sms", name="reminderchannel")
REMINDER_STATUS = sa.Enum("pending", "sent", "failed", "canceled", name="reminderstatus")


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("reminder_opt_out", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "email", name="uq_clients_project_email"),
    )
    op.create_index(op.f("ix_clients_project_id"), "clients", ["project_id"], unique=False)

    op.create_table(
        "reminders",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("project_id", sa.String(length=36), nullable=False),
        sa.Column("client_id", sa.String(length=36), nullable=False),
        sa.Column("channel", REMINDER_CHANNEL, nullable=False),
        sa.Column("template_key", sa.String(length=100), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", REMINDER_STATUS, nullable=False, server_default="pending"),
        sa.Column("attempt_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("parent_reminder_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("claim_token", sa.String(length=36), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recurrence_halted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parent_reminder_id"),
    )
    op.create_index("ix_reminders_status_scheduled_at", "reminders", ["status", "scheduled_at"])
    op.create_index("ix_reminders_project_status", "reminders", ["project_id", "status"])
    op.create_index("ix_reminders_client_project", "reminders", ["client_id", "project_id"])

    op.create_table(
        "reminder_attempts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reminder_id", sa.String(length=36), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_code", sa.String(length=100), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("actor", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["reminder_id"], ["reminders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_reminder_attempts_id"), "reminder_attempts", ["id"], unique=False)
    op.create_index(
        op.f("ix_reminder_attempts_reminder_id"), "reminder_attempts", ["reminder_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_reminder_attempts_reminder_id"), table_name="reminder_attempts")
    op.drop_index(op.f("ix_reminder_attempts_id"), table_name="reminder_attempts")
    op.drop_table("reminder_attempts")
    op.drop_index("ix_reminders_client_project", table_name="reminders")
    op.drop_index("ix_reminders_project_status", table_name="reminders")
    op.drop_index("ix_reminders_status_scheduled_at", table_name="reminders")
    op.drop_table("reminders")
    op.drop_index(op.f("ix_clients_project_id"), table_name="clients")
    op.drop_table("clients")
    REMINDER_STATUS.drop(op.get_bind(), checkfirst=True)
    REMINDER_CHANNEL.drop(op.get_bind(), checkfirst=True)
