"""
Users router.

POST   /users        register a user with a home timezone
GET    /users/{id}
PATCH  /users/{id}   change timezone
DELETE /users/{id}   account deletion (removes all engagement data)
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models.user import User
from app.schemas.users import UserCreateRequest, UserResponse, UserUpdateRequest
from app.services.users import create_user, delete_user, get_user, update_timezone

router = APIRouter(prefix="/users", tags=["users"])


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        external_id=user.external_id,
        timezone=user.timezone,
        created_at=user.created_at.isoformat() if user.created_at else "",
    )


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a user",
    responses={422: {"description": "Unknown timezone."}},
)
def register_user(payload: UserCreateRequest, db: Session = Depends(get_db)):
    user = create_user(db, timezone=payload.timezone, external_id=payload.external_id)
    return _user_to_response(user)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Fetch a user",
    responses={404: {"description": "User not found."}},
)
def read_user(user_id: int, db: Session = Depends(get_db)):
    return _user_to_response(get_user(db, user_id))


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
    summary="Change a user's timezone",
    responses={404: {"description": "User not found."}, 422: {"description": "Unknown timezone."}},
)
def change_timezone(user_id: int, payload: UserUpdateRequest, db: Session = Depends(get_db)):
    """Check-ins already recorded keep their day; new actions resolve in the new zone."""
    return _user_to_response(update_timezone(db, user_id, payload.timezone))


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a user and all engagement data",
    responses={404: {"description": "User not found."}},
)
def remove_user(user_id: int, db: Session = Depends(get_db)):
    delete_user(db, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
