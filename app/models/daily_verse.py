from datetime import datetime, date
from sqlalchemy import Integer, String, Text, DateTime, Date, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class DailyVerse(Base):
    """Verse of the day. Written by the content layer, read for reminder previews."""

    __tablename__ = "daily_verses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False, unique=True, index=True)
    verse_text: Mapped[str] = mapped_column(Text, nullable=False)
    verse_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    theme: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
