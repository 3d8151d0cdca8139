"""
Risk Evaluator.

A streak is at risk when all three hold:
  1. current streak > 0            (something to protect)
  2. no check-in for the local day (not protected yet)
  3. elapsed share of the local day >= STREAK_RISK_THRESHOLD

Always evaluated on read; the answer changes at local midnight and the
instant today's check-in lands, so it is never cached.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.services import clock
from app.services.checkin import has_engaged_on
from app.services.streak import compute_streak_for_user
from app.services.users import get_user


def evaluate_risk(
    current_streak: int,
    engaged_today: bool,
    elapsed_fraction: float,
    threshold: Optional[float] = None,
) -> bool:
    if engaged_today or current_streak <= 0:
        return False
    limit = settings.STREAK_RISK_THRESHOLD if threshold is None else threshold
    return elapsed_fraction >= limit


def is_at_risk(
    db: Session,
    user_id: int,
    now: Optional[datetime] = None,
    threshold: Optional[float] = None,
) -> bool:
    now = now or clock.utcnow()
    user = get_user(db, user_id)
    streak = compute_streak_for_user(db, user_id, now)
    today = clock.local_day(now, user.timezone)
    return evaluate_risk(
        current_streak=streak.current,
        engaged_today=has_engaged_on(db, user_id, today),
        elapsed_fraction=clock.day_elapsed_fraction(now, user.timezone),
        threshold=threshold,
    )
