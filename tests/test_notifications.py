"""
Tests for the notification scheduler: timing, payload composition and the
per-(user, local day) dispatch state machine.
"""
import json
import threading
import time as _time
from datetime import date, datetime, time, timedelta, timezone

import pytest

from app.core.config import settings
from app.models.daily_verse import DailyVerse
from app.models.notification_dispatch import DispatchStatus, NotificationDispatch
from app.models.notification_preference import NotificationPreference
from app.services import notifications as notifications_service
from app.services.checkin import record_engagement
from app.services.notifications import (
    ReminderOutcome,
    compose_payload,
    dispatch_instant,
    find_due_reminders,
    greeting_for,
    list_dispatches,
    process_reminder,
    run_due_reminders,
    streak_text_for,
)
from app.services.preferences import get_notification_preference, set_notification_preference
from app.services.summary import StreakSummary


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


NOW = _utc(2026, 3, 10, 7, 30)
TODAY = date(2026, 3, 10)


def _no_sleep(seconds):
    pass


def _enable(db, user_id, at=time(7, 0), tz="UTC", **kwargs):
    return set_notification_preference(
        db, user_id, enabled=True, notification_time=at, timezone=tz, **kwargs
    )


def _dispatch_row(db, user_id, day=TODAY):
    db.expire_all()
    return (
        db.query(NotificationDispatch)
        .filter(NotificationDispatch.user_id == user_id, NotificationDispatch.local_day == day)
        .one_or_none()
    )


def _summary(current, at_risk=False):
    return StreakSummary(
        user_id=1,
        local_day=TODAY,
        current=current,
        longest=current,
        last_engaged_day=TODAY - timedelta(days=1) if current else None,
        has_engaged_today=False,
        at_risk=at_risk,
    )


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

class TestPreferences:
    def test_defaults_are_disabled_and_unsaved(self, db, make_user):
        user = make_user("Europe/Madrid")
        pref = get_notification_preference(db, user.id)
        assert pref.enabled is False
        assert pref.notification_time == settings.NOTIFICATION_DEFAULT_TIME
        assert pref.timezone == "Europe/Madrid"
        assert pref.updated_at is None

    def test_partial_update_keeps_other_fields(self, db, make_user):
        user = make_user()
        _enable(db, user.id, at=time(6, 15), include_verse_preview=False)
        pref = set_notification_preference(db, user.id, include_streak_reminder=False)
        assert pref.enabled is True
        assert pref.notification_time == time(6, 15)
        assert pref.include_verse_preview is False
        assert pref.include_streak_reminder is False


# ---------------------------------------------------------------------------
# Timing and composition
# ---------------------------------------------------------------------------

class TestDispatchInstant:
    def _pref(self, at, tz):
        return NotificationPreference(user_id=1, notification_time=at, timezone=tz)

    def test_daylight_time(self):
        pref = self._pref(time(7, 0), "America/New_York")
        assert dispatch_instant(pref, TODAY) == _utc(2026, 3, 10, 11, 0)

    def test_standard_time(self):
        pref = self._pref(time(7, 0), "America/New_York")
        assert dispatch_instant(pref, date(2026, 3, 6)) == _utc(2026, 3, 6, 12, 0)

    def test_skipped_wall_time(self):
        # 02:30 does not exist on 2026-03-08 in New York.
        pref = self._pref(time(2, 30), "America/New_York")
        assert dispatch_instant(pref, date(2026, 3, 8)) == _utc(2026, 3, 8, 7, 30)


class TestComposition:
    @pytest.mark.parametrize("at,expected", [
        (time(6, 0), "Good Morning"),
        (time(11, 59), "Good Morning"),
        (time(12, 0), "Good Afternoon"),
        (time(16, 59), "Good Afternoon"),
        (time(17, 0), "Good Evening"),
    ])
    def test_greeting(self, at, expected):
        assert greeting_for(at) == expected

    def test_streak_text_variants(self):
        assert streak_text_for(_summary(0)).startswith("Start your day")
        assert streak_text_for(_summary(1)) == "1-day streak. 6 more days to your first week streak!"
        assert streak_text_for(_summary(6)) == "6-day streak. 1 more day to your first week streak!"
        assert "One week strong" in streak_text_for(_summary(12))
        assert "Incredible consistency" in streak_text_for(_summary(30))
        assert streak_text_for(_summary(5, at_risk=True)).startswith("Don't break your 5-day streak!")

    def test_payload_with_verse_and_streak(self, db, make_user):
        user = make_user()
        day = date(2026, 5, 20)
        for back in (3, 2, 1):
            d = day - timedelta(days=back)
            record_engagement(db, user.id, "prayed", now=_utc(d.year, d.month, d.day, 12, 0))
        db.add(DailyVerse(day=day, verse_text="Trust in the Lord with all your heart.", verse_ref="Proverbs 3:5"))
        db.commit()
        pref = _enable(db, user.id)

        payload = compose_payload(db, user.id, pref, day, _utc(2026, 5, 20, 7, 30))
        assert payload.greeting == "Good Morning"
        assert payload.verse_preview == "Trust in the Lord with all your heart. (Proverbs 3:5)"
        assert payload.streak_text == "3-day streak. 4 more days to your first week streak!"

    def test_toggles_leave_out_sections(self, db, make_user):
        user = make_user()
        day = date(2026, 5, 20)
        pref = _enable(db, user.id, include_verse_preview=False, include_streak_reminder=False)
        payload = compose_payload(db, user.id, pref, day, _utc(2026, 5, 20, 7, 30))
        assert payload.verse_preview is None
        assert payload.streak_text is None
        assert payload.to_dict() == {"greeting": "Good Morning"}

    def test_long_verse_is_truncated(self, db, make_user):
        user = make_user()
        day = date(2026, 5, 21)
        db.add(DailyVerse(day=day, verse_text="a" * 300, verse_ref="Ref 1:1"))
        db.commit()
        pref = _enable(db, user.id, include_streak_reminder=False)
        payload = compose_payload(db, user.id, pref, day, _utc(2026, 5, 21, 7, 30))
        assert payload.verse_preview == "a" * 139 + "… (Ref 1:1)"


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class TestProcessReminder:
    def test_dispatched(self, db, make_user, transport):
        user = make_user()
        _enable(db, user.id)
        outcome = process_reminder(db, user.id, now=NOW, transport=transport, sleep=_no_sleep)
        assert outcome == ReminderOutcome.DISPATCHED

        sent = transport.sent_to(user.id)
        assert len(sent) == 1
        assert sent[0].greeting == "Good Morning"

        row = _dispatch_row(db, user.id)
        assert row.status == DispatchStatus.dispatched
        assert row.attempts == 1
        assert row.dispatched_at is not None
        assert json.loads(row.payload)["greeting"] == "Good Morning"

    def test_second_trigger_is_a_noop(self, db, make_user, transport):
        user = make_user()
        _enable(db, user.id)
        process_reminder(db, user.id, now=NOW, transport=transport, sleep=_no_sleep)
        outcome = process_reminder(db, user.id, now=NOW + timedelta(minutes=5), transport=transport)
        assert outcome == ReminderOutcome.SKIPPED
        assert len(transport.sent_to(user.id)) == 1

    def test_not_due_before_preferred_time(self, db, make_user, transport):
        user = make_user()
        _enable(db, user.id)
        outcome = process_reminder(db, user.id, now=_utc(2026, 3, 10, 6, 59), transport=transport)
        assert outcome == ReminderOutcome.NOT_DUE
        assert _dispatch_row(db, user.id) is None

    def test_without_saved_preference(self, db, make_user, transport):
        user = make_user()
        outcome = process_reminder(db, user.id, now=NOW, transport=transport)
        assert outcome == ReminderOutcome.SKIPPED
        assert _dispatch_row(db, user.id) is None

    def test_cancelled_when_already_engaged(self, db, make_user, transport):
        user = make_user()
        _enable(db, user.id)
        record_engagement(db, user.id, "prayed", now=NOW - timedelta(hours=1))
        outcome = process_reminder(db, user.id, now=NOW, transport=transport)
        assert outcome == ReminderOutcome.CANCELLED
        assert transport.sent == []
        row = _dispatch_row(db, user.id)
        assert row.status == DispatchStatus.cancelled
        assert row.last_error == "already engaged today"

    def test_cancelled_when_disabled(self, db, make_user, transport):
        user = make_user()
        _enable(db, user.id)
        set_notification_preference(db, user.id, enabled=False)
        outcome = process_reminder(db, user.id, now=NOW, transport=transport)
        assert outcome == ReminderOutcome.CANCELLED
        assert _dispatch_row(db, user.id).status == DispatchStatus.cancelled

    def test_retries_with_backoff_then_dispatches(self, db, make_user, make_transport):
        user = make_user()
        _enable(db, user.id)
        flaky = make_transport(failures=1)
        sleeps = []
        outcome = process_reminder(db, user.id, now=NOW, transport=flaky, sleep=sleeps.append)
        assert outcome == ReminderOutcome.DISPATCHED
        assert sleeps == [settings.NOTIFICATION_BACKOFF_SECONDS]
        row = _dispatch_row(db, user.id)
        assert row.status == DispatchStatus.dispatched
        assert row.attempts == 2
        assert row.last_error is None

    def test_dropped_after_max_attempts(self, db, make_user, make_transport):
        user = make_user()
        _enable(db, user.id)
        broken = make_transport(failures=100)
        sleeps = []
        outcome = process_reminder(db, user.id, now=NOW, transport=broken, sleep=sleeps.append)
        assert outcome == ReminderOutcome.DROPPED

        attempts = settings.NOTIFICATION_MAX_ATTEMPTS
        assert broken.calls == attempts
        assert sleeps == [settings.NOTIFICATION_BACKOFF_SECONDS * 2 ** i for i in range(attempts - 1)]
        row = _dispatch_row(db, user.id)
        assert row.status == DispatchStatus.dropped
        assert row.attempts == attempts
        assert "push gateway unavailable" in row.last_error

    def test_check_in_during_backoff_cancels_retry(self, db, make_user, make_transport):
        user = make_user()
        _enable(db, user.id)
        broken = make_transport(failures=100)

        def engage_while_waiting(seconds):
            record_engagement(db, user.id, "prayed", now=NOW)

        outcome = process_reminder(db, user.id, now=NOW, transport=broken, sleep=engage_while_waiting)
        assert outcome == ReminderOutcome.CANCELLED
        assert broken.calls == 1
        assert _dispatch_row(db, user.id).status == DispatchStatus.cancelled

    def test_dropped_day_does_not_block_next_day(self, db, make_user, make_transport):
        user = make_user()
        _enable(db, user.id)
        process_reminder(db, user.id, now=NOW, transport=make_transport(failures=100), sleep=_no_sleep)

        working = make_transport()
        outcome = process_reminder(db, user.id, now=NOW + timedelta(days=1), transport=working)
        assert outcome == ReminderOutcome.DISPATCHED
        assert _dispatch_row(db, user.id, TODAY + timedelta(days=1)).status == DispatchStatus.dispatched

        total, items = list_dispatches(db, user.id)
        assert total == 2
        assert [d.local_day for d in items] == [TODAY + timedelta(days=1), TODAY]

    def test_local_day_follows_preference_timezone(self, db, make_user, transport):
        user = make_user()
        _enable(db, user.id, at=time(7, 0), tz="Asia/Tokyo")
        # 22:30 UTC on Mar 9 is 07:30 on Mar 10 in Tokyo.
        outcome = process_reminder(db, user.id, now=_utc(2026, 3, 9, 22, 30), transport=transport)
        assert outcome == ReminderOutcome.DISPATCHED
        assert _dispatch_row(db, user.id, TODAY) is not None


# ---------------------------------------------------------------------------
# Scheduler tick
# ---------------------------------------------------------------------------

class TestFindDue:
    def test_due_selection(self, db, make_user, transport):
        now = _utc(2026, 6, 1, 7, 30)
        due_user = make_user()
        later_user = make_user()
        ny_user = make_user()
        disabled_user = make_user()
        _enable(db, due_user.id)
        _enable(db, later_user.id, at=time(9, 0))
        _enable(db, ny_user.id, tz="America/New_York")
        _enable(db, disabled_user.id)
        set_notification_preference(db, disabled_user.id, enabled=False)

        due = {item.user_id: item for item in find_due_reminders(db, now)}
        assert due_user.id in due
        assert due[due_user.id].local_day == date(2026, 6, 1)
        assert due[due_user.id].scheduled_for == _utc(2026, 6, 1, 7, 0)
        for uid in (later_user.id, ny_user.id, disabled_user.id):
            assert uid not in due

        process_reminder(db, due_user.id, now=now, transport=transport)
        assert due_user.id not in {item.user_id for item in find_due_reminders(db, now)}


class TestRunDueReminders:
    def test_run_processes_each_user_once(self, db, make_user, transport, session_factory):
        now = _utc(2026, 6, 15, 8, 0)
        waiting = make_user()
        engaged = make_user()
        _enable(db, waiting.id)
        _enable(db, engaged.id)
        record_engagement(db, engaged.id, "prayed", now=now - timedelta(hours=1))

        summary = run_due_reminders(
            session_factory=session_factory, now=now, transport=transport,
            max_workers=1, sleep=_no_sleep,
        )
        assert summary.outcomes[waiting.id] == ReminderOutcome.DISPATCHED
        assert summary.outcomes[engaged.id] == ReminderOutcome.CANCELLED
        assert summary.errors == 0

        again = run_due_reminders(
            session_factory=session_factory, now=now + timedelta(minutes=5),
            transport=transport, max_workers=1, sleep=_no_sleep,
        )
        assert waiting.id not in again.outcomes
        assert engaged.id not in again.outcomes
        assert len(transport.sent_to(waiting.id)) == 1
        assert transport.sent_to(engaged.id) == []


class TestTimezoneSplit:
    """Reminder time in one zone, check-ins credited in the user's own zone."""

    def test_engaged_in_own_timezone_cancels(self, db, make_user, transport):
        user = make_user("America/Los_Angeles")
        _enable(db, user.id, at=time(7, 0), tz="Asia/Tokyo")
        # 21:00 UTC Mar 10 is 14:00 Mar 10 in Los Angeles.
        record_engagement(db, user.id, "prayed", now=_utc(2026, 3, 10, 21, 0))

        # 22:30 UTC is 07:30 Mar 11 in Tokyo, still Mar 10 for the user.
        outcome = process_reminder(db, user.id, now=_utc(2026, 3, 10, 22, 30), transport=transport)
        assert outcome == ReminderOutcome.CANCELLED
        assert transport.sent_to(user.id) == []
        assert _dispatch_row(db, user.id, date(2026, 3, 11)).last_error == "already engaged today"

    def test_new_day_in_own_timezone_is_reminded(self, db, make_user, transport):
        user = make_user("Asia/Tokyo")
        _enable(db, user.id, at=time(7, 0), tz="America/Los_Angeles")
        # 14:00 UTC Mar 10 is 23:00 Mar 10 in Tokyo.
        record_engagement(db, user.id, "prayed", now=_utc(2026, 3, 10, 14, 0))

        # 15:00 UTC is 08:00 Mar 10 in Los Angeles but already Mar 11 in Tokyo.
        outcome = process_reminder(db, user.id, now=_utc(2026, 3, 10, 15, 0), transport=transport)
        assert outcome == ReminderOutcome.DISPATCHED
        assert len(transport.sent_to(user.id)) == 1


class TestFreshPreference:
    def test_toggle_saved_after_claim_shapes_payload(self, db, make_user, transport, monkeypatch):
        user = make_user()
        _enable(db, user.id)
        real_claim = notifications_service._claim

        def claim_then_toggle(session, *args, **kwargs):
            dispatch = real_claim(session, *args, **kwargs)
            set_notification_preference(session, user.id, include_streak_reminder=False)
            return dispatch

        monkeypatch.setattr(notifications_service, "_claim", claim_then_toggle)
        outcome = process_reminder(db, user.id, now=NOW, transport=transport)
        assert outcome == ReminderOutcome.DISPATCHED
        assert transport.sent_to(user.id)[0].streak_text is None


class _SlowTransport:
    def __init__(self, delay=0.2):
        self.delay = delay
        self.sent = []
        self._lock = threading.Lock()

    def dispatch_reminder(self, user_id, payload):
        _time.sleep(self.delay)
        with self._lock:
            self.sent.append(user_id)


class TestConcurrentTriggers:
    def test_parallel_triggers_dispatch_once(self, db, make_user, session_factory):
        user = make_user()
        _enable(db, user.id)
        now = _utc(2026, 7, 1, 7, 30)
        transport = _SlowTransport()
        barrier = threading.Barrier(4)
        outcomes = []
        failures = []

        def trigger():
            try:
                with session_factory() as session:
                    barrier.wait()
                    outcomes.append(
                        process_reminder(session, user.id, now=now, transport=transport, sleep=_no_sleep)
                    )
            except Exception as exc:
                failures.append(exc)

        threads = [threading.Thread(target=trigger) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert failures == []
        assert transport.sent == [user.id]
        assert outcomes.count(ReminderOutcome.DISPATCHED) == 1
        assert outcomes.count(ReminderOutcome.SKIPPED) == 3
        assert _dispatch_row(db, user.id, date(2026, 7, 1)).status == DispatchStatus.dispatched
