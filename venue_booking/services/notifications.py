"""
Notification dispatch for booking lifecycle events.

Delivery is fire-and-forget from the caller's point of view: a failing
notification service is retried a few times and then logged, and never
rolls back or blocks the transition that produced the event.
"""

from __future__ import annotations

import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

import structlog

from venue_booking.config import NOTIFICATION_MAX_ATTEMPTS
from venue_booking.metrics import notifications_sent
from venue_booking.state_machine import BookingAggregate, BookingEvent, BookingTransition

logger = structlog.get_logger(__name__)

INQUIRY_RECEIVED = "inquiry_received"
INQUIRY_ACCEPTED = "inquiry_accepted"
INQUIRY_DECLINED = "inquiry_declined"
PAYMENT_COMPLETED = "payment_completed"
PAYMENT_FAILED = "payment_failed"
PAYMENT_NOT_COMPLETED = "payment_not_completed"
PAYMENT_REMINDER = "payment_reminder"
BOOKING_CANCELLED = "booking_cancelled"


class NotificationSender(Protocol):
    def send(self, event: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    booking_id: str
    recipient_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "booking_id": self.booking_id,
            "recipient_id": self.recipient_id,
            "payload": self.payload,
        }


def _booking_payload(booking: BookingAggregate) -> dict[str, Any]:
    display = booking.pricing.display()
    return {
        "venue_id": booking.venue_id,
        "status": booking.status.value,
        "dates": [d.isoformat() for d in booking.dates],
        "grand_total": display["grand_total"],
        "currency": booking.pricing.currency,
        "payment_deadline": (
            booking.payment_deadline.isoformat() if booking.payment_deadline else None
        ),
    }


def events_for_transition(
    booking: BookingAggregate, transition: BookingTransition
) -> list[NotificationEvent]:
    """
    Notification events produced by one applied transition.

    Args:
        booking: Aggregate after the transition was applied
        transition: The transition record

    Returns:
        list[NotificationEvent]: zero or more events, one per recipient
    """
    payload = _booking_payload(booking)
    event = transition.event

    if event is BookingEvent.SUBMIT:
        return [NotificationEvent(INQUIRY_RECEIVED, booking.id, booking.owner_id, payload)]

    if event is BookingEvent.OWNER_ACCEPT:
        return [NotificationEvent(INQUIRY_ACCEPTED, booking.id, booking.customer_id, payload)]

    if event is BookingEvent.OWNER_DECLINE:
        payload["reason"] = booking.cancellation_reason
        return [NotificationEvent(INQUIRY_DECLINED, booking.id, booking.customer_id, payload)]

    if event is BookingEvent.PAYMENT_VERIFIED:
        payload["payment_id"] = booking.gateway_payment_id
        return [
            NotificationEvent(PAYMENT_COMPLETED, booking.id, recipient, payload)
            for recipient in (booking.customer_id, booking.owner_id)
        ]

    if event is BookingEvent.PAYMENT_FAILED:
        payload["error"] = booking.payment_error_description
        return [NotificationEvent(PAYMENT_FAILED, booking.id, booking.customer_id, payload)]

    if event is BookingEvent.DEADLINE_REACHED:
        payload["reason"] = booking.cancellation_reason
        return [NotificationEvent(PAYMENT_NOT_COMPLETED, booking.id, booking.customer_id, payload)]

    if event is BookingEvent.CANCEL:
        payload["reason"] = booking.cancellation_reason
        payload["cancelled_by"] = booking.cancelled_by
        recipient = booking.other_party(transition.actor_id)
        return [NotificationEvent(BOOKING_CANCELLED, booking.id, recipient, payload)]

    return []


class NotificationDispatcher:
    """
    Sends NotificationEvents through a sender with bounded retries.

    With an executor, delivery runs on the executor's threads; without one it
    runs inline (useful in tests and scripts). dispatch() never raises.
    """

    def __init__(
        self,
        sender: NotificationSender,
        executor: Executor | None = None,
        max_attempts: int = NOTIFICATION_MAX_ATTEMPTS,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._sender = sender
        self._executor = executor
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    def dispatch(self, event: NotificationEvent) -> None:
        if self._executor is None:
            self._deliver(event)
            return
        try:
            self._executor.submit(self._deliver, event)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(
                "notification_not_scheduled",
                event_type=event.type,
                booking_id=event.booking_id,
                error=str(e),
            )

    def close(self) -> None:
        """Wait for queued deliveries and stop the executor."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _deliver(self, event: NotificationEvent) -> bool:
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._sender.send(event.to_dict())
            except Exception as e:
                logger.warning(
                    "notification_attempt_failed",
                    event_type=event.type,
                    booking_id=event.booking_id,
                    recipient_id=event.recipient_id,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < self._max_attempts:
                    self._sleep(self._backoff_seconds * (2 ** (attempt - 1)))
                continue

            notifications_sent.labels(event_type=event.type, outcome="delivered").inc()
            logger.info(
                "notification_sent",
                event_type=event.type,
                booking_id=event.booking_id,
                recipient_id=event.recipient_id,
            )
            return True

        notifications_sent.labels(event_type=event.type, outcome="failed").inc()
        logger.error(
            "notification_dropped",
            event_type=event.type,
            booking_id=event.booking_id,
            recipient_id=event.recipient_id,
            attempts=self._max_attempts,
        )
        return False

    def booking_transitioned(
        self, booking: BookingAggregate, transition: BookingTransition
    ) -> list[NotificationEvent]:
        events = events_for_transition(booking, transition)
        for event in events:
            self.dispatch(event)
        return events

    def payment_reminder(self, booking: BookingAggregate, now: datetime) -> NotificationEvent:
        payload = _booking_payload(booking)
        if booking.payment_deadline is not None:
            remaining = booking.payment_deadline - now
            payload["hours_remaining"] = max(0, int(remaining.total_seconds() // 3600))
        payload["reminder_number"] = booking.payment_reminder_count
        event = NotificationEvent(PAYMENT_REMINDER, booking.id, booking.customer_id, payload)
        self.dispatch(event)
        return event
