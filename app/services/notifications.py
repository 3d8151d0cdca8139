"""
Notification Scheduler: one daily reminder per user, at their local time.

Flow per (user, local day)
--------------------------
  1. claim       INSERT … ON CONFLICT DO NOTHING a `pending` dispatch row.
  2. take        compare-and-set pending → composing. Only one trigger can
                 win; every other trigger for the same day is a no-op.
  3. re-validate reminders still enabled AND no check-in for the user's own
                 local day (their profile timezone), otherwise → cancelled.
  4. compose     greeting (+ verse preview) (+ streak callout).
  5. send        transport.dispatch_reminder(); DeliveryError → failed, retry
                 with exponential backoff; after NOTIFICATION_MAX_ATTEMPTS
                 → dropped and logged. Success → dispatched.

The dispatch key includes the local day, so a dropped day never blocks the
next one.

Public API
----------
dispatch_instant(pref, local_day)                       -> datetime (UTC)
compose_payload(db, user_id, pref, local_day, now)      -> ReminderPayload
process_reminder(db, user_id, local_day, now, ...)      -> str   (outcome)
find_due_reminders(db, now)                             -> list[DueReminder]
run_due_reminders(session_factory, now, ...)            -> RunSummary
list_dispatches(db, user_id, limit, offset)             -> (total, page)
"""
from __future__ import annotations

import json
import logging
import time as _time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.errors import DeliveryError
from app.db.base import SessionLocal
from app.db.dialect import insert_for
from app.models.daily_verse import DailyVerse
from app.models.notification_dispatch import DispatchStatus, NotificationDispatch
from app.models.notification_preference import NotificationPreference
from app.models.user import User
from app.services import clock
from app.services.checkin import has_engaged_on
from app.services.preferences import get_stored_preference
from app.services.summary import StreakSummary, get_streak_summary
from app.services.transports import ReminderPayload, ReminderTransport, build_transport
from app.services.users import get_user

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class ReminderOutcome:
    DISPATCHED = "dispatched"
    CANCELLED  = "cancelled"
    DROPPED    = "dropped"
    SKIPPED    = "skipped"    # another trigger owns this (user, day)
    NOT_DUE    = "not_due"


_VERSE_PREVIEW_MAX = 140


@dataclass
class DueReminder:
    user_id: int
    local_day: date
    scheduled_for: datetime


@dataclass
class RunSummary:
    """Counts for one scheduler tick."""
    processed: int = 0
    dispatched: int = 0
    cancelled: int = 0
    dropped: int = 0
    skipped: int = 0
    errors: int = 0
    outcomes: dict[int, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

def dispatch_instant(pref: NotificationPreference, local_day: date) -> datetime:
    """Absolute UTC instant of the preferred local time on `local_day`."""
    return clock.local_instant(local_day, pref.notification_time, pref.timezone)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def greeting_for(local_time: time) -> str:
    if local_time.hour < 12:
        return "Good Morning"
    if local_time.hour < 17:
        return "Good Afternoon"
    return "Good Evening"


def streak_text_for(summary: StreakSummary) -> str:
    n = summary.current
    if summary.at_risk:
        return f"Don't break your {n}-day streak! A few minutes with God today keeps it alive."
    if n <= 0:
        return "Start your day with God and begin a new streak today."
    if n >= 30:
        motivation = "Incredible consistency!"
    elif n >= 7:
        motivation = "One week strong! Keep the momentum!"
    else:
        remaining = 7 - n
        motivation = f"{remaining} more {'day' if remaining == 1 else 'days'} to your first week streak!"
    return f"{n}-day streak. {motivation}"


def verse_preview_for(db: Session, local_day: date) -> Optional[str]:
    verse = db.query(DailyVerse).filter(DailyVerse.day == local_day).first()
    if verse is None:
        return None
    text = verse.verse_text.strip()
    if len(text) > _VERSE_PREVIEW_MAX:
        text = text[: _VERSE_PREVIEW_MAX - 1].rstrip() + "…"
    return f"{text} ({verse.verse_ref})"


def compose_payload(
    db: Session,
    user_id: int,
    pref: NotificationPreference,
    local_day: date,
    now: datetime,
) -> ReminderPayload:
    local_time = clock.local_now(now, pref.timezone).time()
    verse_preview = None
    if pref.include_verse_preview:
        verse_preview = verse_preview_for(db, local_day)
    streak_text = None
    if pref.include_streak_reminder:
        streak_text = streak_text_for(get_streak_summary(db, user_id, now))
    return ReminderPayload(
        greeting=greeting_for(local_time),
        verse_preview=verse_preview,
        streak_text=streak_text,
    )


# ---------------------------------------------------------------------------
# Dispatch row state transitions
# ---------------------------------------------------------------------------

def _claim(
    db: Session,
    user_id: int,
    local_day: date,
    scheduled_for: Optional[datetime],
) -> NotificationDispatch:
    table = NotificationDispatch.__table__
    now = clock.utcnow()
    stmt = insert_for(db, table).values(
        user_id=user_id,
        local_day=local_day,
        status=DispatchStatus.pending,
        attempts=0,
        scheduled_for=scheduled_for,
        created_at=now,
        updated_at=now,
    ).on_conflict_do_nothing(index_elements=[table.c.user_id, table.c.local_day])
    db.execute(stmt)
    db.commit()
    return (
        db.query(NotificationDispatch)
        .filter(
            NotificationDispatch.user_id == user_id,
            NotificationDispatch.local_day == local_day,
        )
        .one()
    )


def _compare_and_set(
    db: Session,
    dispatch: NotificationDispatch,
    expected: DispatchStatus,
    new: DispatchStatus,
) -> bool:
    """Move `dispatch` from `expected` to `new`. False if someone else moved it."""
    updated = (
        db.query(NotificationDispatch)
        .filter(
            NotificationDispatch.id == dispatch.id,
            NotificationDispatch.status == expected,
        )
        .update(
            {"status": new, "updated_at": clock.utcnow()},
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(dispatch)
    return updated == 1


def _finish(
    db: Session,
    dispatch: NotificationDispatch,
    status: DispatchStatus,
    last_error: Optional[str] = None,
) -> None:
    dispatch.status = status
    dispatch.last_error = last_error[:512] if last_error else None
    dispatch.updated_at = clock.utcnow()
    if status == DispatchStatus.dispatched:
        dispatch.dispatched_at = dispatch.updated_at
    db.commit()


def _revalidate(
    db: Session,
    user: User,
    now: datetime,
) -> tuple[Optional[NotificationPreference], Optional[str]]:
    """
    Fresh preference plus the reason to cancel, if any. Check-ins are keyed
    by the user's own timezone, which can differ from the reminder's.
    """
    pref = get_stored_preference(db, user.id)
    if pref is None or not pref.enabled:
        return pref, "notifications disabled"
    if has_engaged_on(db, user.id, clock.local_day(now, user.timezone)):
        return pref, "already engaged today"
    return pref, None


# ---------------------------------------------------------------------------
# Public: single user
# ---------------------------------------------------------------------------

def process_reminder(
    db: Session,
    user_id: int,
    local_day: Optional[date] = None,
    now: Optional[datetime] = None,
    transport: Optional[ReminderTransport] = None,
    sleep: Callable[[float], None] = _time.sleep,
) -> str:
    """
    Run the reminder state machine for (user_id, local_day).
    Never raises DeliveryError: failures end in `dropped` and are logged.
    """
    now = clock.ensure_aware(now or clock.utcnow())
    user = get_user(db, user_id)
    pref = get_stored_preference(db, user_id)
    if pref is None:
        return ReminderOutcome.SKIPPED

    if local_day is None:
        local_day = clock.local_day(now, pref.timezone)
    scheduled_for = dispatch_instant(pref, local_day)
    if now < scheduled_for:
        return ReminderOutcome.NOT_DUE

    dispatch = _claim(db, user_id, local_day, scheduled_for)
    if not _compare_and_set(db, dispatch, DispatchStatus.pending, DispatchStatus.composing):
        logger.debug("Reminder for user %s on %s already taken", user_id, local_day)
        return ReminderOutcome.SKIPPED

    pref, reason = _revalidate(db, user, now)
    if reason:
        _finish(db, dispatch, DispatchStatus.cancelled, last_error=reason)
        logger.info("Cancelled reminder for user %s on %s: %s", user_id, local_day, reason)
        return ReminderOutcome.CANCELLED

    payload = compose_payload(db, user_id, pref, local_day, now)
    dispatch.payload = json.dumps(payload.to_dict())
    db.commit()

    transport = transport or build_transport()
    max_attempts = max(1, settings.NOTIFICATION_MAX_ATTEMPTS)
    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            # The user may have engaged or opted out during the backoff.
            _, reason = _revalidate(db, user, now)
            if reason:
                _finish(db, dispatch, DispatchStatus.cancelled, last_error=reason)
                logger.info(
                    "Cancelled reminder retry for user %s on %s: %s",
                    user_id, local_day, reason,
                )
                return ReminderOutcome.CANCELLED
        dispatch.attempts = attempt
        db.commit()

        try:
            transport.dispatch_reminder(user_id, payload)
        except DeliveryError as exc:
            if attempt == max_attempts:
                _finish(db, dispatch, DispatchStatus.dropped, last_error=exc.message)
                logger.error(
                    "Dropped reminder for user %s on %s after %s attempts: %s",
                    user_id, local_day, attempt, exc.message,
                )
                return ReminderOutcome.DROPPED
            _finish(db, dispatch, DispatchStatus.failed, last_error=exc.message)
            delay = settings.NOTIFICATION_BACKOFF_SECONDS * (2 ** (attempt - 1))
            logger.warning(
                "Reminder delivery failed for user %s on %s (attempt %s/%s), retrying in %.1fs: %s",
                user_id, local_day, attempt, max_attempts, delay, exc.message,
            )
            sleep(delay)
            continue

        _finish(db, dispatch, DispatchStatus.dispatched)
        logger.info("Dispatched reminder for user %s on %s", user_id, local_day)
        return ReminderOutcome.DISPATCHED

    return ReminderOutcome.DROPPED


# ---------------------------------------------------------------------------
# Public: scheduler tick
# ---------------------------------------------------------------------------

def find_due_reminders(db: Session, now: Optional[datetime] = None) -> list[DueReminder]:
    """
    Enabled preferences whose dispatch instant for their current local day has
    passed and whose day has no dispatch row yet. Preferences are grouped into
    (timezone, time-of-day) buckets so each bucket resolves its instant once.
    """
    now = clock.ensure_aware(now or clock.utcnow())
    prefs = (
        db.query(NotificationPreference)
        .filter(NotificationPreference.enabled == True)  # noqa
        .all()
    )
    buckets: dict[tuple[str, time], list[int]] = defaultdict(list)
    for pref in prefs:
        buckets[(pref.timezone, pref.notification_time)].append(pref.user_id)

    candidates: list[DueReminder] = []
    for (tz_name, at), user_ids in buckets.items():
        day = clock.local_day(now, tz_name)
        instant = clock.local_instant(day, at, tz_name)
        if instant > now:
            continue
        candidates.extend(DueReminder(uid, day, instant) for uid in user_ids)

    if not candidates:
        return []

    taken = {
        (row.user_id, row.local_day)
        for row in db.query(NotificationDispatch.user_id, NotificationDispatch.local_day)
        .filter(
            NotificationDispatch.user_id.in_(sorted({c.user_id for c in candidates})),
            NotificationDispatch.local_day.in_(sorted({c.local_day for c in candidates})),
        )
        .all()
    }
    return [c for c in candidates if (c.user_id, c.local_day) not in taken]


def _process_in_own_session(
    session_factory: sessionmaker,
    due: DueReminder,
    now: datetime,
    transport: ReminderTransport,
    sleep: Callable[[float], None],
) -> str:
    with session_factory() as db:
        return process_reminder(
            db, due.user_id, local_day=due.local_day, now=now,
            transport=transport, sleep=sleep,
        )


def run_due_reminders(
    session_factory: sessionmaker = SessionLocal,
    now: Optional[datetime] = None,
    transport: Optional[ReminderTransport] = None,
    max_workers: Optional[int] = None,
    sleep: Callable[[float], None] = _time.sleep,
) -> RunSummary:
    """
    One scheduler tick: find due reminders and process them concurrently,
    one database session per user.
    """
    now = clock.ensure_aware(now or clock.utcnow())
    transport = transport or build_transport()
    with session_factory() as db:
        due = find_due_reminders(db, now)

    summary = RunSummary()
    if not due:
        return summary

    workers = max(1, max_workers or settings.NOTIFICATION_WORKERS)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(_process_in_own_session, session_factory, item, now, transport, sleep): item
            for item in due
        }
        for future in as_completed(futures):
            item = futures[future]
            summary.processed += 1
            try:
                outcome = future.result()
            except Exception:
                logger.exception(
                    "Reminder processing failed for user %s on %s", item.user_id, item.local_day
                )
                summary.errors += 1
                continue
            summary.outcomes[item.user_id] = outcome
            if outcome == ReminderOutcome.DISPATCHED:
                summary.dispatched += 1
            elif outcome == ReminderOutcome.CANCELLED:
                summary.cancelled += 1
            elif outcome == ReminderOutcome.DROPPED:
                summary.dropped += 1
            else:
                summary.skipped += 1

    logger.info(
        "Reminder run: processed=%s dispatched=%s cancelled=%s dropped=%s skipped=%s errors=%s",
        summary.processed, summary.dispatched, summary.cancelled,
        summary.dropped, summary.skipped, summary.errors,
    )
    return summary


# ---------------------------------------------------------------------------
# Public: query helpers
# ---------------------------------------------------------------------------

def list_dispatches(
    db: Session,
    user_id: int,
    limit: int = 30,
    offset: int = 0,
) -> tuple[int, list[NotificationDispatch]]:
    """Return (total, page) of a user's dispatch records, newest day first."""
    get_user(db, user_id)
    q = db.query(NotificationDispatch).filter(NotificationDispatch.user_id == user_id)
    total = q.count()
    items = (
        q.order_by(NotificationDispatch.local_day.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return total, items
