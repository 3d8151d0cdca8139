"""
Streak router.

GET /users/{id}/streak {current, longest, has_engaged_today, at_risk}
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.schemas.streak import StreakSummaryResponse
from app.services.summary import get_streak_summary

router = APIRouter(prefix="/users", tags=["streaks"])


@router.get(
    "/{user_id}/streak",
    response_model=StreakSummaryResponse,
    summary="Streak summary for dashboard widgets",
    responses={404: {"description": "User not found."}},
)
def read_streak(user_id: int, db: Session = Depends(get_db)):
    """
    Evaluated on every call in the user's timezone:

    | Field | Meaning |
    |---|---|
    | `current` | run including today, else the run ending yesterday, else 0 |
    | `longest` | longest run ever observed; never decreases |
    | `has_engaged_today` | a check-in exists for the local day |
    | `at_risk` | `current > 0`, not engaged today, and past the risk point of the day |
    """
    return StreakSummaryResponse.from_summary(get_streak_summary(db, user_id))
