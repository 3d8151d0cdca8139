"""
User service: the engagement-side account record and its timezone.

Deleting a user is the only path that removes check-ins.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import UserNotFoundError
from app.models.check_in import CheckIn
from app.models.notification_dispatch import NotificationDispatch
from app.models.notification_preference import NotificationPreference
from app.models.streak_state import StreakState
from app.models.user import User
from app.services.clock import validate_timezone

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def create_user(
    db: Session,
    timezone: Optional[str] = None,
    external_id: Optional[str] = None,
) -> User:
    user = User(
        timezone=validate_timezone(timezone or settings.DEFAULT_TIMEZONE),
        external_id=external_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s (timezone=%s)", user.id, user.timezone)
    return user


def update_timezone(db: Session, user_id: int, timezone: str) -> User:
    """
    Change the user's home timezone. Already-recorded check-ins keep the day
    they were credited to; only future actions resolve in the new zone.
    """
    user = get_user(db, user_id)
    user.timezone = validate_timezone(timezone)
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> None:
    """Account deletion: remove the user and everything derived from them."""
    user = get_user(db, user_id)
    for model in (NotificationDispatch, NotificationPreference, StreakState, CheckIn):
        db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s and all engagement data", user_id)
