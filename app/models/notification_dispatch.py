"""
NotificationDispatch: state machine row for one reminder per (user, local day).

    pending ─► composing ─► dispatched
                   │  ▲
                   ▼  │ retry (attempts < max)
                 failed ─► dropped
    composing ─► cancelled   (engaged already, or reminders disabled)

The unique constraint on (user_id, local_day) is the at-most-once guard:
a second trigger for the same day finds the row and cannot win the
pending → composing compare-and-set.

payload: JSON-encoded dict stored as Text.
"""
from datetime import datetime, date
import enum

from sqlalchemy import (
    Integer, String, Text, DateTime, Date, Enum, ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class DispatchStatus(str, enum.Enum):
    pending = "pending"
    composing = "composing"
    failed = "failed"
    dispatched = "dispatched"
    dropped = "dropped"
    cancelled = "cancelled"


class NotificationDispatch(Base):
    __tablename__ = "notification_dispatches"
    __table_args__ = (
        UniqueConstraint("user_id", "local_day", name="uq_dispatch_user_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    local_day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        Enum(DispatchStatus, name="dispatch_status_enum"),
        nullable=False,
        default=DispatchStatus.pending,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(String(512), nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
