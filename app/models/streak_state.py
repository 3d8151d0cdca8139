"""
StreakState: per-user cache derived from the check-in log.

Stores the run ending at `last_engaged_day` rather than the "current" streak:
whether that run is still current depends on the reader's local today, so it
is derived at read time and the row never goes stale across midnight.

`longest_streak` only ever grows.
"""
from datetime import datetime, date
from sqlalchemy import Integer, Date, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class StreakState(Base):
    __tablename__ = "streak_states"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    run_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_engaged_day: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
