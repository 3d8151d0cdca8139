"""add notification_preferences and daily_verses

Revision ID: 0003
Revises: 0002
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = "0003"
down_revision = "0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notification_time", sa.Time(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("include_verse_preview", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("include_streak_reminder", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_notification_preferences_enabled", "notification_preferences", ["enabled"]
    )

    op.create_table(
        "daily_verses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("verse_text", sa.Text(), nullable=False),
        sa.Column("verse_ref", sa.String(128), nullable=False),
        sa.Column("theme", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_daily_verses_day", "daily_verses", ["day"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_daily_verses_day", table_name="daily_verses")
    op.drop_table("daily_verses")
    op.drop_index("ix_notification_preferences_enabled", table_name="notification_preferences")
    op.drop_table("notification_preferences")
