"""
Engagement / check-in schemas.

POST /users/{id}/engagements      → EngagementRequest → EngagementResponse
GET  /users/{id}/check-ins        → CheckInListResponse
GET  /users/{id}/check-ins/today  → TodayCheckInResponse
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.streak import StreakSummaryResponse


class EngagementRequest(BaseModel):
    """One qualifying action completed in a UI flow."""

    action: Annotated[str, Field(
        min_length=1,
        max_length=64,
        description=(
            'Action type: "prayed", "read_scripture", "logged_service", '
            '"completed_devotional" or "studied".'
        ),
        examples=["prayed"],
    )]
    timestamp: Optional[datetime] = Field(
        default=None,
        description=(
            "Client-side time of the action (ISO 8601, with offset). "
            "Defaults to server time. Naive values are read as UTC."
        ),
        examples=["2026-02-20T23:59:00-05:00"],
    )

    @field_validator("action", mode="before")
    @classmethod
    def normalise_action(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class CheckInResponse(BaseModel):
    id: int
    user_id: int
    day: str = Field(description="Local calendar day the actions were credited to.")
    actions: list[str] = Field(description="Flags set on this day.")
    prayed: bool
    read_scripture: bool
    logged_service: bool
    completed_devotional: bool
    studied: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class EngagementResponse(BaseModel):
    check_in: CheckInResponse
    changed: bool = Field(description="False when the action was already recorded for the day.")
    streak: StreakSummaryResponse
    milestone: Optional[int] = Field(
        default=None,
        description="Set when this action moved the current streak onto 7, 30 or a multiple of 10.",
    )
    streak_restarted: bool = Field(
        default=False,
        description="True when this action started a new streak after a break.",
    )


class CheckInListResponse(BaseModel):
    total: int
    items: list[CheckInResponse]


class TodayCheckInResponse(BaseModel):
    day: str
    check_in: Optional[CheckInResponse] = None
