"""Client for the outbound notification (email/SMS) service."""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urljoin

import requests
import structlog

from venue_booking.config import NOTIFICATION_SERVICE_URL

logger = structlog.get_logger(__name__)

REQUEST_TIMEOUT_SECONDS = 5


class NotificationServiceClient:
    """
    Posts notification events to `POST {base_url}/notifications`.

    With no base URL configured, events are logged and dropped; this is the
    local development mode.
    """

    def __init__(
        self,
        base_url: Optional[str] = NOTIFICATION_SERVICE_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url
        self.timeout = timeout

    def send(self, event: dict[str, Any]) -> None:
        """
        Deliver one event.

        Raises:
            requests.RequestException: network failure or non-2xx answer
        """
        if not self.base_url:
            logger.info(
                "notification_service_disabled",
                event_type=event.get("type"),
                booking_id=event.get("booking_id"),
                recipient_id=event.get("recipient_id"),
            )
            return

        url = urljoin(self.base_url.rstrip("/") + "/", "notifications")
        res = requests.post(url, json=event, timeout=self.timeout)
        res.raise_for_status()
