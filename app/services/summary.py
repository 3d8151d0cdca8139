"""
Streak summary for dashboard widgets: {current, longest, has_engaged_today, at_risk}.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.services import clock
from app.services.checkin import has_engaged_on
from app.services.risk import evaluate_risk
from app.services.streak import current_from_state, get_streak_state
from app.services.users import get_user


@dataclass(frozen=True)
class StreakSummary:
    user_id: int
    local_day: date
    current: int
    longest: int
    last_engaged_day: Optional[date]
    has_engaged_today: bool
    at_risk: bool


def get_streak_summary(
    db: Session,
    user_id: int,
    now: Optional[datetime] = None,
) -> StreakSummary:
    now = now or clock.utcnow()
    user = get_user(db, user_id)
    today = clock.local_day(now, user.timezone)
    state = get_streak_state(db, user_id)

    last = state.last_engaged_day
    if last is None or last < today:
        engaged_today = False
    elif last == today:
        engaged_today = True
    else:
        engaged_today = has_engaged_on(db, user_id, today)

    current = current_from_state(state, today)
    return StreakSummary(
        user_id=user_id,
        local_day=today,
        current=current,
        longest=state.longest_streak,
        last_engaged_day=last,
        has_engaged_today=engaged_today,
        at_risk=evaluate_risk(
            current_streak=current,
            engaged_today=engaged_today,
            elapsed_fraction=clock.day_elapsed_fraction(now, user.timezone),
        ),
    )
