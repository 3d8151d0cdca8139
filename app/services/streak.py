"""
Streak Calculator.

Definitions
-----------
  run      maximal sequence of consecutive local days that each have a
           non-empty check-in
  current  length of the run that includes today, else of the run ending
           yesterday, else 0 (no grace day)
  longest  maximum run length over the whole history; never reported lower
           than a value reported before

Strategy
--------
`compute_streak` is the pure definition over a set of days. The per-user
`StreakState` row caches (run_length, last_engaged_day, longest) so reads are
O(1); "current" is derived at read time from the cached run and the caller's
local today. Writes extend the cache incrementally; a backdated day (older
than the cached last day) triggers a rebuild from the log.

Public API
----------
compute_streak(days, today)                  -> StreakResult   (pure)
current_from_state(state, today)             -> int            (pure)
apply_new_day(state, day)                    -> bool           (pure mutation)
rebuild_streak_state(db, user_id)            -> StreakState
register_engagement_day(db, user_id, day)    -> StreakTransition
get_streak_state(db, user_id)                -> StreakState    (lazy build)
compute_streak_for_user(db, user_id, now)    -> StreakResult
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.dialect import insert_for
from app.models.check_in import CheckIn
from app.models.streak_state import StreakState
from app.services import clock
from app.services.users import get_user

logger = logging.getLogger(__name__)

# Current-streak values worth celebrating: 7, 30 and every multiple of 10.
_MILESTONES = (7, 30)
_MILESTONE_EVERY = 10


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreakResult:
    current: int
    longest: int
    last_engaged_day: Optional[date]


@dataclass(frozen=True)
class StreakTransition:
    """What a newly recorded day did to the cached run."""
    before_run: int
    after_run: int
    longest: int
    rebuilt: bool
    milestone: Optional[int]
    streak_restarted: bool


# ---------------------------------------------------------------------------
# Pure core
# ---------------------------------------------------------------------------

def find_runs(days: Iterable[date]) -> list[tuple[date, int]]:
    """Return (last_day, length) for every run, oldest first."""
    runs: list[tuple[date, int]] = []
    previous: Optional[date] = None
    length = 0
    for day in sorted(set(days)):
        if previous is not None and day == previous + timedelta(days=1):
            length += 1
        else:
            if previous is not None:
                runs.append((previous, length))
            length = 1
        previous = day
    if previous is not None:
        runs.append((previous, length))
    return runs


def _is_current(last_day: Optional[date], today: date) -> bool:
    # A run is current when it reaches yesterday or later. "Later" covers an
    # action credited to tomorrow by an early client clock near midnight.
    return last_day is not None and last_day >= today - timedelta(days=1)


def compute_streak(days: Iterable[date], today: date) -> StreakResult:
    runs = find_runs(days)
    if not runs:
        return StreakResult(current=0, longest=0, last_engaged_day=None)
    last_day, last_length = runs[-1]
    return StreakResult(
        current=last_length if _is_current(last_day, today) else 0,
        longest=max(length for _, length in runs),
        last_engaged_day=last_day,
    )


def current_from_state(state: StreakState, today: date) -> int:
    if _is_current(state.last_engaged_day, today):
        return state.run_length
    return 0


def milestone_for(current: int) -> Optional[int]:
    if current in _MILESTONES or (current > 0 and current % _MILESTONE_EVERY == 0):
        return current
    return None


def apply_new_day(state: StreakState, day: date) -> bool:
    """
    Fold one engaged day into the cached run.
    Returns False when `day` predates the cached run's end; the caller must
    rebuild from the log because the day may bridge or extend older runs.
    """
    last = state.last_engaged_day
    if last is not None and day < last:
        return False
    if last is None or day > last + timedelta(days=1):
        state.run_length = 1
    elif day == last + timedelta(days=1):
        state.run_length += 1
    # day == last: already counted
    state.last_engaged_day = day
    state.longest_streak = max(state.longest_streak or 0, state.run_length)
    return True


# ---------------------------------------------------------------------------
# Cache maintenance
# ---------------------------------------------------------------------------

def _engaged_days(db: Session, user_id: int) -> list[date]:
    rows = (
        db.query(CheckIn)
        .filter(CheckIn.user_id == user_id)
        .order_by(CheckIn.day)
        .all()
    )
    return [r.day for r in rows if r.is_engaged]


def _fill_from_history(db: Session, state: StreakState) -> None:
    runs = find_runs(_engaged_days(db, state.user_id))
    if runs:
        last_day, last_length = runs[-1]
        computed_longest = max(length for _, length in runs)
    else:
        last_day, last_length, computed_longest = None, 0, 0
    state.run_length = last_length
    state.last_engaged_day = last_day
    state.longest_streak = max(state.longest_streak or 0, computed_longest)


def rebuild_streak_state(db: Session, user_id: int) -> StreakState:
    """Recompute the cache row from the full check-in log. Flushes, no commit."""
    state = db.get(StreakState, user_id)
    if state is None:
        state = StreakState(user_id=user_id, run_length=0, longest_streak=0)
        db.add(state)
    _fill_from_history(db, state)
    db.flush()
    logger.info(
        "Rebuilt streak state for user %s: run=%s longest=%s last=%s",
        user_id, state.run_length, state.longest_streak, state.last_engaged_day,
    )
    return state


def _insert_empty_state(db: Session, user_id: int) -> bool:
    """
    Create the user's cache row if it is missing. True when this call created
    it. A concurrent first write waits on the primary key instead of failing.
    """
    table = StreakState.__table__
    stmt = (
        insert_for(db, table)
        .values(user_id=user_id, run_length=0, longest_streak=0, updated_at=clock.utcnow())
        .on_conflict_do_nothing(index_elements=[table.c.user_id])
        .returning(table.c.user_id)
    )
    return db.execute(stmt).first() is not None


def register_engagement_day(db: Session, user_id: int, day: date) -> StreakTransition:
    """
    Update the cache for a check-in written on `day`, inside the caller's
    transaction. Safe to call more than once for the same day.
    """
    created = _insert_empty_state(db, user_id)
    state = (
        db.query(StreakState)
        .filter(StreakState.user_id == user_id)
        .with_for_update()
        .populate_existing()
        .one()
    )
    if created:
        _fill_from_history(db, state)
        db.flush()
        return StreakTransition(
            before_run=0,
            after_run=state.run_length,
            longest=state.longest_streak,
            rebuilt=True,
            milestone=None,
            streak_restarted=False,
        )

    before_run = state.run_length
    had_history = state.last_engaged_day is not None
    previous_last = state.last_engaged_day

    rebuilt = False
    if not apply_new_day(state, day):
        _fill_from_history(db, state)
        rebuilt = True
    db.flush()

    extended = state.last_engaged_day != previous_last or state.run_length != before_run
    return StreakTransition(
        before_run=before_run,
        after_run=state.run_length,
        longest=state.longest_streak,
        rebuilt=rebuilt,
        milestone=milestone_for(state.run_length) if extended and not rebuilt else None,
        streak_restarted=(
            had_history and not rebuilt and extended and state.run_length == 1
        ),
    )


def get_streak_state(db: Session, user_id: int) -> StreakState:
    """Return the cache row, building and committing it on first read."""
    state = db.get(StreakState, user_id)
    if state is not None:
        return state
    try:
        state = rebuild_streak_state(db, user_id)
        db.commit()
    except IntegrityError:
        # Another request built it first
        db.rollback()
        state = db.get(StreakState, user_id)
    return state


# ---------------------------------------------------------------------------
# Public: per user
# ---------------------------------------------------------------------------

def compute_streak_for_user(
    db: Session,
    user_id: int,
    now: Optional[datetime] = None,
) -> StreakResult:
    """Current and longest streak as of `now`, in the user's timezone."""
    user = get_user(db, user_id)
    today = clock.local_day(now or clock.utcnow(), user.timezone)
    state = get_streak_state(db, user_id)
    return StreakResult(
        current=current_from_state(state, today),
        longest=state.longest_streak,
        last_engaged_day=state.last_engaged_day,
    )
