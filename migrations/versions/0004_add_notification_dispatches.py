"""add notification_dispatches table

Revision ID: 0004
Revises: 0003
Create Date: 2026-10-19

One row per (user_id, local_day): the reminder state machine.
Unique constraint (user_id, local_day) enforces at-most-once dispatch.
"""
from alembic import op
import sqlalchemy as sa

revision = "0004"
down_revision = "0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    dispatch_status_enum = sa.Enum(
        "pending", "composing", "failed", "dispatched", "dropped", "cancelled",
        name="dispatch_status_enum",
    )

    op.create_table(
        "notification_dispatches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("local_day", sa.Date(), nullable=False),
        sa.Column("status", dispatch_status_enum, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.Column("last_error", sa.String(512), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "local_day", name="uq_dispatch_user_day"),
    )
    op.create_index("ix_notification_dispatches_user_id", "notification_dispatches", ["user_id"])
    op.create_index("ix_notification_dispatches_local_day", "notification_dispatches", ["local_day"])
    op.create_index("ix_notification_dispatches_status", "notification_dispatches", ["status"])


def downgrade() -> None:
    op.drop_index("ix_notification_dispatches_status", table_name="notification_dispatches")
    op.drop_index("ix_notification_dispatches_local_day", table_name="notification_dispatches")
    op.drop_index("ix_notification_dispatches_user_id", table_name="notification_dispatches")
    op.drop_table("notification_dispatches")
    sa.Enum(name="dispatch_status_enum").drop(op.get_bind(), checkfirst=True)
