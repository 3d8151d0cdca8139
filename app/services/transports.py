"""
Reminder delivery adapters.

The scheduler composes a ReminderPayload and hands it to a transport's
`dispatch_reminder(user_id, payload)`. Push/email/SMS delivery lives outside
this service; a transport only has to raise DeliveryError when the hand-off
fails so the scheduler can retry.

Modes (NOTIFICATION_TRANSPORT):
    - log:     write the payload to the application log (development)
    - webhook: POST the payload as JSON to NOTIFICATION_WEBHOOK_URL
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

import httpx

from app.core.config import settings
from app.core.errors import DeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderPayload:
    greeting: str
    verse_preview: Optional[str] = None
    streak_text: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class ReminderTransport(Protocol):
    def dispatch_reminder(self, user_id: int, payload: ReminderPayload) -> None:
        ...


class LoggingTransport:
    """Writes reminders to the log instead of delivering them."""

    def dispatch_reminder(self, user_id: int, payload: ReminderPayload) -> None:
        logger.info("Reminder for user %s: %s", user_id, payload.to_dict())


class WebhookTransport:
    """
    POSTs `{"user_id": ..., "payload": {...}}` to a delivery endpoint.

    Any transport error or non-2xx status becomes a DeliveryError.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        if not url:
            raise ValueError("webhook transport requires a URL")
        self._url = url
        self._headers = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(timeout=timeout)

    def dispatch_reminder(self, user_id: int, payload: ReminderPayload) -> None:
        body = {"user_id": user_id, "payload": payload.to_dict()}
        try:
            response = self._client.post(self._url, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            raise DeliveryError(
                message=f"Reminder delivery request failed: {exc}",
                details={"user_id": user_id},
            ) from exc
        if response.status_code >= 400:
            raise DeliveryError(
                message=f"Reminder delivery rejected with HTTP {response.status_code}",
                details={"user_id": user_id, "status_code": response.status_code},
            )

    def close(self) -> None:
        self._client.close()


def build_transport(mode: Optional[str] = None) -> ReminderTransport:
    mode = (mode or settings.NOTIFICATION_TRANSPORT).strip().lower()
    if mode == "webhook":
        if settings.NOTIFICATION_WEBHOOK_URL:
            return WebhookTransport(
                url=settings.NOTIFICATION_WEBHOOK_URL,
                token=settings.NOTIFICATION_WEBHOOK_TOKEN or None,
                timeout=settings.NOTIFICATION_WEBHOOK_TIMEOUT,
            )
        logger.warning("Webhook URL not configured, falling back to log transport")
    elif mode != "log":
        logger.warning("Unknown notification transport '%s', using log transport", mode)
    return LoggingTransport()
