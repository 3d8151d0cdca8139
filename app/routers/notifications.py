"""
Notifications router.

GET  /users/{id}/notification-preference
PUT  /users/{id}/notification-preference
GET  /users/{id}/notification-dispatches   reminder history (newest day first)
POST /notifications/run                    scheduler tick for an external cron
"""
from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.errors import ForbiddenError
from app.db.base import SessionLocal, get_db
from app.models.notification_dispatch import NotificationDispatch
from app.models.notification_preference import NotificationPreference
from app.schemas.notifications import (
    DispatchListResponse,
    DispatchResponse,
    NotificationPreferenceRequest,
    NotificationPreferenceResponse,
    RunSummaryResponse,
)
from app.services.notifications import list_dispatches, run_due_reminders
from app.services.preferences import get_notification_preference, set_notification_preference
from app.services.transports import ReminderTransport, build_transport

router = APIRouter(tags=["notifications"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_transport() -> ReminderTransport:
    return build_transport()


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _ev(v) -> str:
    """Extract bare string value from a str-enum or plain str."""
    return v.value if hasattr(v, "value") else str(v)


def _parse_payload(raw: Optional[str]) -> Optional[dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        return None


def _pref_to_response(pref: NotificationPreference) -> NotificationPreferenceResponse:
    return NotificationPreferenceResponse(
        user_id=pref.user_id,
        enabled=pref.enabled,
        notification_time=pref.notification_time.strftime("%H:%M:%S"),
        timezone=pref.timezone,
        include_verse_preview=pref.include_verse_preview,
        include_streak_reminder=pref.include_streak_reminder,
        stored=pref.updated_at is not None,
    )


def _dispatch_to_response(d: NotificationDispatch) -> DispatchResponse:
    return DispatchResponse(
        id=d.id,
        local_day=str(d.local_day),
        status=_ev(d.status),
        attempts=d.attempts,
        scheduled_for=d.scheduled_for.isoformat() if d.scheduled_for else None,
        dispatched_at=d.dispatched_at.isoformat() if d.dispatched_at else None,
        last_error=d.last_error,
        payload=_parse_payload(d.payload),
    )


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

@router.get(
    "/users/{user_id}/notification-preference",
    response_model=NotificationPreferenceResponse,
    summary="Read reminder preferences",
    responses={404: {"description": "User not found."}},
)
def read_preference(user_id: int, db: Session = Depends(get_db)):
    """Users who never saved preferences get defaults with reminders disabled."""
    return _pref_to_response(get_notification_preference(db, user_id))


@router.put(
    "/users/{user_id}/notification-preference",
    response_model=NotificationPreferenceResponse,
    summary="Save reminder preferences",
    responses={
        404: {"description": "User not found."},
        422: {"description": "Unknown timezone or malformed time."},
    },
)
def write_preference(
    user_id: int,
    payload: NotificationPreferenceRequest,
    db: Session = Depends(get_db),
):
    pref = set_notification_preference(
        db,
        user_id,
        enabled=payload.enabled,
        notification_time=payload.notification_time,
        timezone=payload.timezone,
        include_verse_preview=payload.include_verse_preview,
        include_streak_reminder=payload.include_streak_reminder,
    )
    return _pref_to_response(pref)


# ---------------------------------------------------------------------------
# Dispatch history
# ---------------------------------------------------------------------------

@router.get(
    "/users/{user_id}/notification-dispatches",
    response_model=DispatchListResponse,
    summary="Reminder dispatch history",
    responses={404: {"description": "User not found."}},
)
def read_dispatches(
    user_id: int,
    limit: int = Query(default=30, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    total, items = list_dispatches(db, user_id, limit=limit, offset=offset)
    return DispatchListResponse(
        total=total,
        items=[_dispatch_to_response(d) for d in items],
    )


# ---------------------------------------------------------------------------
# POST /notifications/run
# ---------------------------------------------------------------------------

@router.post(
    "/notifications/run",
    response_model=RunSummaryResponse,
    summary="Send every reminder that is due now",
    responses={403: {"description": "Missing or invalid X-Internal-Token."}},
)
def run_reminders(
    x_internal_token: Optional[str] = Header(default=None),
    session_factory: sessionmaker = Depends(get_session_factory),
    transport: ReminderTransport = Depends(get_transport),
):
    """
    One scheduler tick, meant to be hit by a cron every few minutes.
    Safe to call repeatedly: each (user, local day) is dispatched at most once.
    """
    secret = settings.INTERNAL_TOKEN.strip()
    if secret and (x_internal_token or "").strip() != secret:
        raise ForbiddenError()

    summary = run_due_reminders(session_factory=session_factory, transport=transport)
    return RunSummaryResponse(
        processed=summary.processed,
        dispatched=summary.dispatched,
        cancelled=summary.cancelled,
        dropped=summary.dropped,
        skipped=summary.skipped,
        errors=summary.errors,
    )
