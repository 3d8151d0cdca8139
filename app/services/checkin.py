"""
Check-in Recorder.

record_engagement(db, user_id, action, timestamp)
    1. Validate the action and the timestamp.
    2. Resolve the local calendar day in the user's timezone at `timestamp`.
    3. One conditional upsert keyed by (user_id, day):

         INSERT … VALUES (<flag> = true)
         ON CONFLICT (user_id, day)
         DO UPDATE SET <flag> = true, updated_at = :now
         WHERE check_ins.<flag> = false
         RETURNING id

       No row back means the flag was already set: an idempotent replay that
       leaves the row (updated_at included) untouched.
    4. When the row changed, fold the day into the streak cache in the same
       transaction, then commit.

Database errors raised by competing transactions are retried as
ConcurrencyConflict up to CHECKIN_UPSERT_ATTEMPTS; only exhaustion is
caller-visible.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy import false, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    ConcurrencyConflict,
    ImplausibleTimestampError,
    UnknownActionError,
)
from app.db.dialect import insert_for
from app.models.check_in import ACTION_FLAGS, CheckIn, EngagementAction
from app.models.user import User
from app.services import clock
from app.services.streak import StreakTransition, register_engagement_day
from app.services.users import get_user

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class CheckInResult:
    check_in: CheckIn
    day: date
    action: str
    changed: bool                   # False for an idempotent replay
    milestone: Optional[int] = None
    streak_restarted: bool = False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def parse_action(action: Union[str, EngagementAction]) -> EngagementAction:
    try:
        return EngagementAction(action)
    except ValueError:
        raise UnknownActionError(str(action), list(ACTION_FLAGS)) from None


def resolve_check_in_day(user: User, timestamp: datetime, now: datetime) -> date:
    """
    Local day credited for an action at `timestamp`, rejecting timestamps
    beyond the clock-skew tolerance or older than the offline sync window.
    """
    timestamp = clock.ensure_aware(timestamp)
    if timestamp > now + timedelta(seconds=settings.CHECKIN_CLOCK_SKEW_SECONDS):
        raise ImplausibleTimestampError(timestamp, "too far in the future")

    day = clock.local_day(timestamp, user.timezone)
    today = clock.local_day(now, user.timezone)
    if day < today - timedelta(days=settings.CHECKIN_MAX_BACKDATE_DAYS):
        raise ImplausibleTimestampError(
            timestamp,
            f"older than the {settings.CHECKIN_MAX_BACKDATE_DAYS}-day sync window",
        )
    return day


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------

def _upsert_check_in(
    db: Session,
    user_id: int,
    day: date,
    flag: str,
    now: datetime,
) -> Optional[int]:
    """Run the conditional upsert. Returns the row id if it changed, else None."""
    table = CheckIn.__table__
    stmt = insert_for(db, table).values(
        user_id=user_id,
        day=day,
        created_at=now,
        updated_at=now,
        **{flag: True},
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.user_id, table.c.day],
        set_={flag: True, "updated_at": now},
        where=(table.c[flag] == false()),
    ).returning(table.c.id)
    row = db.execute(stmt).first()
    return row.id if row is not None else None


def _load_check_in(db: Session, user_id: int, day: date) -> CheckIn:
    return db.execute(
        select(CheckIn)
        .where(CheckIn.user_id == user_id, CheckIn.day == day)
        .execution_options(populate_existing=True)
    ).scalar_one()


def _record_once(
    db: Session,
    user_id: int,
    day: date,
    action: EngagementAction,
    now: datetime,
) -> tuple[bool, Optional[StreakTransition]]:
    try:
        changed_id = _upsert_check_in(db, user_id, day, action.value, now)
        transition = None
        if changed_id is not None:
            transition = register_engagement_day(db, user_id, day)
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise ConcurrencyConflict(user_id, day, attempts=1) from exc
    return changed_id is not None, transition


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def record_engagement(
    db: Session,
    user_id: int,
    action: Union[str, EngagementAction],
    timestamp: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> CheckInResult:
    """
    Record one engagement action for `user_id`.
    `timestamp` is the client-side action time (defaults to `now`).
    """
    parsed = parse_action(action)
    user = get_user(db, user_id)
    now = clock.ensure_aware(now or clock.utcnow())
    day = resolve_check_in_day(user, timestamp or now, now)

    attempts = max(1, settings.CHECKIN_UPSERT_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            changed, transition = _record_once(db, user_id, day, parsed, now)
            break
        except ConcurrencyConflict as conflict:
            if attempt == attempts:
                raise ConcurrencyConflict(user_id, day, attempts) from conflict.__cause__
            logger.warning(
                "Check-in upsert conflict for user %s on %s (attempt %s/%s), retrying",
                user_id, day, attempt, attempts,
            )

    if changed:
        logger.info("Recorded %s for user %s on %s", parsed.value, user_id, day)

    return CheckInResult(
        check_in=_load_check_in(db, user_id, day),
        day=day,
        action=parsed.value,
        changed=changed,
        milestone=transition.milestone if transition else None,
        streak_restarted=transition.streak_restarted if transition else False,
    )


def get_check_in(db: Session, user_id: int, day: date) -> Optional[CheckIn]:
    return (
        db.query(CheckIn)
        .filter(CheckIn.user_id == user_id, CheckIn.day == day)
        .first()
    )


def has_engaged_on(db: Session, user_id: int, day: date) -> bool:
    return get_check_in(db, user_id, day) is not None


def list_check_ins(
    db: Session,
    user_id: int,
    limit: int = 30,
    offset: int = 0,
) -> tuple[int, list[CheckIn]]:
    """Return (total, page) of a user's check-ins, newest day first."""
    get_user(db, user_id)
    q = db.query(CheckIn).filter(CheckIn.user_id == user_id)
    total = q.count()
    items = q.order_by(CheckIn.day.desc()).offset(offset).limit(limit).all()
    return total, items
