"""
Notification schemas.

GET/PUT /users/{id}/notification-preference   → NotificationPreferenceResponse
GET     /users/{id}/notification-dispatches   → DispatchListResponse
POST    /notifications/run                    → RunSummaryResponse
"""
from datetime import time
from typing import Any, Optional

from pydantic import BaseModel, Field


class NotificationPreferenceRequest(BaseModel):
    """Fields left out keep their stored (or default) value."""

    enabled: Optional[bool] = None
    notification_time: Optional[time] = Field(
        default=None,
        description="Local time of day for the reminder (HH:MM[:SS]).",
        examples=["07:00"],
    )
    timezone: Optional[str] = Field(
        default=None,
        max_length=64,
        description="IANA timezone the reminder time is expressed in.",
        examples=["America/Chicago"],
    )
    include_verse_preview: Optional[bool] = None
    include_streak_reminder: Optional[bool] = None


class NotificationPreferenceResponse(BaseModel):
    user_id: int
    enabled: bool
    notification_time: str
    timezone: str
    include_verse_preview: bool
    include_streak_reminder: bool
    stored: bool = Field(description="False when these are defaults that were never saved.")


class DispatchResponse(BaseModel):
    id: int
    local_day: str
    status: str = Field(
        description='"pending" | "composing" | "failed" | "dispatched" | "dropped" | "cancelled"'
    )
    attempts: int
    scheduled_for: Optional[str] = None
    dispatched_at: Optional[str] = None
    last_error: Optional[str] = None
    payload: Optional[dict[str, Any]] = None


class DispatchListResponse(BaseModel):
    total: int
    items: list[DispatchResponse]


class RunSummaryResponse(BaseModel):
    processed: int
    dispatched: int
    cancelled: int
    dropped: int
    skipped: int
    errors: int
