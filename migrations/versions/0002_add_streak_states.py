"""add streak_states cache

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

Per-user cache of the run ending at last_engaged_day plus the longest run.
Rebuildable from check_ins at any time.
"""
from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "streak_states",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("run_length", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_engaged_day", sa.Date(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )


def downgrade() -> None:
    op.drop_table("streak_states")
