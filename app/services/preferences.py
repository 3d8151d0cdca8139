"""
Notification preference service.

A user who never saved preferences gets a transient default with reminders
disabled; nothing is scheduled until settings are stored.
"""
from __future__ import annotations

import logging
from datetime import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.dialect import insert_for
from app.models.notification_preference import NotificationPreference
from app.services import clock
from app.services.users import get_user

logger = logging.getLogger(__name__)


def get_stored_preference(db: Session, user_id: int) -> Optional[NotificationPreference]:
    return db.execute(
        select(NotificationPreference)
        .where(NotificationPreference.user_id == user_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def get_notification_preference(db: Session, user_id: int) -> NotificationPreference:
    user = get_user(db, user_id)
    stored = get_stored_preference(db, user_id)
    if stored is not None:
        return stored
    return NotificationPreference(
        user_id=user_id,
        enabled=False,
        notification_time=settings.NOTIFICATION_DEFAULT_TIME,
        timezone=user.timezone,
        include_verse_preview=True,
        include_streak_reminder=True,
    )


def set_notification_preference(
    db: Session,
    user_id: int,
    enabled: Optional[bool] = None,
    notification_time: Optional[time] = None,
    timezone: Optional[str] = None,
    include_verse_preview: Optional[bool] = None,
    include_streak_reminder: Optional[bool] = None,
) -> NotificationPreference:
    """Upsert preferences. Fields left as None keep their current value."""
    current = get_notification_preference(db, user_id)
    values = {
        "enabled": current.enabled if enabled is None else enabled,
        "notification_time": (
            current.notification_time if notification_time is None
            else notification_time.replace(tzinfo=None, microsecond=0)
        ),
        "timezone": clock.validate_timezone(timezone or current.timezone),
        "include_verse_preview": (
            current.include_verse_preview if include_verse_preview is None
            else include_verse_preview
        ),
        "include_streak_reminder": (
            current.include_streak_reminder if include_streak_reminder is None
            else include_streak_reminder
        ),
        "updated_at": clock.utcnow(),
    }

    table = NotificationPreference.__table__
    stmt = insert_for(db, table).values(user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=[table.c.user_id], set_=values)
    db.execute(stmt)
    db.commit()

    logger.info(
        "Saved notification preference for user %s: enabled=%s at %s %s",
        user_id, values["enabled"], values["notification_time"], values["timezone"],
    )
    return get_stored_preference(db, user_id)
