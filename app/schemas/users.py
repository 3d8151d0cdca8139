"""
User schemas.

POST  /users          → UserCreateRequest → UserResponse
PATCH /users/{id}     → UserUpdateRequest → UserResponse
"""
from typing import Optional
from pydantic import BaseModel, Field


class UserCreateRequest(BaseModel):
    timezone: Optional[str] = Field(
        default=None,
        max_length=64,
        description="IANA timezone name. Defaults to the server's DEFAULT_TIMEZONE.",
        examples=["America/New_York"],
    )
    external_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Identifier issued by the auth provider.",
    )


class UserUpdateRequest(BaseModel):
    timezone: str = Field(
        min_length=1,
        max_length=64,
        description="New IANA timezone name. Affects actions recorded from now on.",
        examples=["Europe/London"],
    )


class UserResponse(BaseModel):
    id: int
    external_id: Optional[str] = None
    timezone: str
    created_at: str
