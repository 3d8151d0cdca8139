"""
Custom exception hierarchy for the engagement service.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Taxonomy
--------
  ValidationError      malformed input; surfaced immediately, never retried
  NotFoundError        unknown user; surfaced immediately
  ConcurrencyConflict  competing upsert on one (user, day); retried internally
  DeliveryError        reminder transport failure; retried with backoff,
                       then logged and dropped (never caller-visible)
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class EngagementException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(EngagementException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class UnknownActionError(ValidationError):
    code = "UNKNOWN_ACTION"

    def __init__(self, action: str, allowed: list[str]):
        super().__init__(
            message=f"Unknown action type '{action}'.",
            details={"action": action, "allowed": allowed},
        )


class ImplausibleTimestampError(ValidationError):
    code = "IMPLAUSIBLE_TIMESTAMP"

    def __init__(self, timestamp: datetime, reason: str):
        super().__init__(
            message=f"Timestamp {timestamp.isoformat()} is {reason}.",
            details={"timestamp": timestamp.isoformat(), "reason": reason},
        )


class InvalidTimezoneError(ValidationError):
    code = "INVALID_TIMEZONE"

    def __init__(self, tz_name: str):
        super().__init__(
            message=f"Unknown timezone '{tz_name}'.",
            details={"timezone": tz_name},
        )


class NotFoundError(EngagementException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: int):
        super().__init__(
            message=f"User {user_id} does not exist.",
            details={"user_id": user_id},
        )


class ConcurrencyConflict(EngagementException):
    http_status = status.HTTP_409_CONFLICT
    code = "CONCURRENCY_CONFLICT"

    def __init__(self, user_id: int, day, attempts: int):
        super().__init__(
            message=(
                f"Check-in for user {user_id} on {day} kept conflicting "
                f"after {attempts} attempts."
            ),
            details={"user_id": user_id, "day": str(day), "attempts": attempts},
        )


class ForbiddenError(EngagementException):
    http_status = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"

    def __init__(self, message: str = "Missing or invalid internal token."):
        super().__init__(message=message)


class DeliveryError(EngagementException):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "DELIVERY_ERROR"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def engagement_exception_handler(
    request: Request, exc: EngagementException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
