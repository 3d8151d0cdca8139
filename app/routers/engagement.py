"""
Engagement router.

POST /users/{id}/engagements      record one action (idempotent per day)
GET  /users/{id}/check-ins        check-in history, newest first
GET  /users/{id}/check-ins/today  today's check-in in the user's timezone
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models.check_in import CheckIn
from app.schemas.engagement import (
    CheckInListResponse,
    CheckInResponse,
    EngagementRequest,
    EngagementResponse,
    TodayCheckInResponse,
)
from app.schemas.streak import StreakSummaryResponse
from app.services import clock
from app.services.checkin import get_check_in, list_check_ins, record_engagement
from app.services.summary import get_streak_summary
from app.services.users import get_user

router = APIRouter(prefix="/users", tags=["engagement"])


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def check_in_to_response(ci: CheckIn) -> CheckInResponse:
    return CheckInResponse(
        id=ci.id,
        user_id=ci.user_id,
        day=str(ci.day),
        actions=ci.actions,
        prayed=ci.prayed,
        read_scripture=ci.read_scripture,
        logged_service=ci.logged_service,
        completed_devotional=ci.completed_devotional,
        studied=ci.studied,
        created_at=ci.created_at.isoformat() if ci.created_at else None,
        updated_at=ci.updated_at.isoformat() if ci.updated_at else None,
    )


# ---------------------------------------------------------------------------
# POST /users/{user_id}/engagements
# ---------------------------------------------------------------------------

@router.post(
    "/{user_id}/engagements",
    response_model=EngagementResponse,
    summary="Record an engagement action",
    responses={
        200: {"description": "Action recorded (or already recorded for the day)."},
        404: {"description": "User not found."},
        409: {"description": "Check-in kept conflicting with concurrent writes."},
        422: {"description": "Unknown action or implausible timestamp."},
    },
)
def post_engagement(
    user_id: int,
    payload: EngagementRequest,
    db: Session = Depends(get_db),
):
    """
    Credit an action to the user's **local** calendar day and merge it into
    that day's check-in. Replaying the same action for the same day changes
    nothing (`changed: false`).
    """
    result = record_engagement(db, user_id, payload.action, payload.timestamp)
    summary = get_streak_summary(db, user_id)
    return EngagementResponse(
        check_in=check_in_to_response(result.check_in),
        changed=result.changed,
        streak=StreakSummaryResponse.from_summary(summary),
        milestone=result.milestone,
        streak_restarted=result.streak_restarted,
    )


# ---------------------------------------------------------------------------
# GET /users/{user_id}/check-ins
# ---------------------------------------------------------------------------

@router.get(
    "/{user_id}/check-ins",
    response_model=CheckInListResponse,
    summary="List check-ins (newest day first)",
    responses={404: {"description": "User not found."}},
)
def get_check_ins(
    user_id: int,
    limit: int = Query(default=30, ge=1, le=366, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    total, items = list_check_ins(db, user_id, limit=limit, offset=offset)
    return CheckInListResponse(
        total=total,
        items=[check_in_to_response(ci) for ci in items],
    )


@router.get(
    "/{user_id}/check-ins/today",
    response_model=TodayCheckInResponse,
    summary="Today's check-in in the user's timezone",
    responses={404: {"description": "User not found."}},
)
def get_today_check_in(user_id: int, db: Session = Depends(get_db)):
    user = get_user(db, user_id)
    today = clock.local_day(clock.utcnow(), user.timezone)
    ci = get_check_in(db, user_id, today)
    return TodayCheckInResponse(
        day=str(today),
        check_in=check_in_to_response(ci) if ci else None,
    )
