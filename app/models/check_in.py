"""
CheckIn: one row per (user, local calendar day).

Append-only log of engagement. A later action on the same local day ORs its
flag into the existing row; the unique constraint on (user_id, day) is what
the recorder's conditional upsert targets.

Rows are only ever deleted together with their user.
"""
from datetime import datetime, date
import enum

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, UniqueConstraint, false, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class EngagementAction(str, enum.Enum):
    prayed = "prayed"
    read_scripture = "read_scripture"
    logged_service = "logged_service"
    completed_devotional = "completed_devotional"
    studied = "studied"


# Each action sets the boolean column of the same name.
ACTION_FLAGS: tuple[str, ...] = tuple(a.value for a in EngagementAction)


class CheckIn(Base):
    __tablename__ = "check_ins"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_check_in_user_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    prayed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    read_scripture: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    logged_service: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    completed_devotional: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    studied: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def actions(self) -> list[str]:
        return [flag for flag in ACTION_FLAGS if getattr(self, flag)]

    @property
    def is_engaged(self) -> bool:
        return bool(self.actions)
