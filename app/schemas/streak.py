"""
Streak summary schema.

GET /users/{id}/streak → StreakSummaryResponse
"""
from typing import Optional
from pydantic import BaseModel, Field


class StreakSummaryResponse(BaseModel):
    current: int = Field(ge=0, description="Consecutive engaged days ending today or yesterday.")
    longest: int = Field(ge=0, description="Longest run ever observed.")
    has_engaged_today: bool
    at_risk: bool = Field(
        description="Streak > 0, not engaged today, and past the risk point of the local day."
    )
    last_engaged_day: Optional[str] = None
    local_day: str = Field(description="The user's current local calendar day.")

    @classmethod
    def from_summary(cls, summary) -> "StreakSummaryResponse":
        return cls(
            current=summary.current,
            longest=summary.longest,
            has_engaged_today=summary.has_engaged_today,
            at_risk=summary.at_risk,
            last_engaged_day=str(summary.last_engaged_day) if summary.last_engaged_day else None,
            local_day=str(summary.local_day),
        )
