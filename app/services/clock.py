"""
Local-day arithmetic.

Every "day" in this service is a calendar day in the user's own timezone,
never a UTC date. All helpers take an aware instant and a zone name and are
DST-aware: a local day can be 23, 24 or 25 hours long.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.errors import InvalidTimezoneError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(ts: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


@lru_cache(maxsize=256)
def resolve_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(tz_name) from exc


def validate_timezone(tz_name: str) -> str:
    resolve_zone(tz_name)
    return tz_name


def local_now(ts: datetime, tz_name: str) -> datetime:
    return ensure_aware(ts).astimezone(resolve_zone(tz_name))


def local_day(ts: datetime, tz_name: str) -> date:
    """Calendar day the instant `ts` falls on in `tz_name`."""
    return local_now(ts, tz_name).date()


def day_bounds_utc(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day, as aware UTC instants."""
    zone = resolve_zone(tz_name)
    start_local = datetime.combine(day, time.min, tzinfo=zone)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def day_elapsed_fraction(ts: datetime, tz_name: str) -> float:
    """Share of the local day already elapsed at `ts`, in [0, 1)."""
    ts = ensure_aware(ts)
    start, end = day_bounds_utc(local_day(ts, tz_name), tz_name)
    length = (end - start).total_seconds()
    return (ts - start).total_seconds() / length


def local_instant(day: date, at: time, tz_name: str) -> datetime:
    """
    The UTC instant of wall-clock time `at` on local `day`.

    Wall times skipped by a DST jump resolve to the post-transition instant
    (zoneinfo's fold=0 reading); repeated wall times resolve to the first
    occurrence.
    """
    zone = resolve_zone(tz_name)
    naive = datetime.combine(day, at.replace(tzinfo=None))
    return naive.replace(tzinfo=zone).astimezone(timezone.utc)
