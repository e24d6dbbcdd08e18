"""
Booking state machine.

A booking's lifecycle is a single enumerated status plus the transition
table below. BookingAggregate.apply() is the only way to move between
statuses: it validates the (status, event) edge and its guard first, and only
then mutates the aggregate, so a rejected transition leaves it untouched.

    inquiry --submit--> pending_owner_response
    pending_owner_response --owner_accept--> pending_payment
    pending_owner_response --owner_decline--> declined
    pending_payment --payment_verified--> confirmed
    pending_payment --payment_failed--> payment_failed
    payment_failed --payment_verified--> confirmed
    pending_payment | payment_failed --deadline_reached--> expired
    pending_owner_response | pending_payment --cancel--> cancelled
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from venue_booking.exceptions import InvalidTransitionError
from venue_booking.pricing import DateTiming, PricingSnapshot


class BookingStatus(str, enum.Enum):
    INQUIRY = "inquiry"
    PENDING_OWNER_RESPONSE = "pending_owner_response"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_FAILED = "payment_failed"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class BookingEvent(str, enum.Enum):
    SUBMIT = "submit"
    OWNER_ACCEPT = "owner_accept"
    OWNER_DECLINE = "owner_decline"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_FAILED = "payment_failed"
    DEADLINE_REACHED = "deadline_reached"
    CANCEL = "cancel"


TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.INQUIRY, BookingEvent.SUBMIT): BookingStatus.PENDING_OWNER_RESPONSE,
    (BookingStatus.PENDING_OWNER_RESPONSE, BookingEvent.OWNER_ACCEPT): BookingStatus.PENDING_PAYMENT,
    (BookingStatus.PENDING_OWNER_RESPONSE, BookingEvent.OWNER_DECLINE): BookingStatus.DECLINED,
    (BookingStatus.PENDING_PAYMENT, BookingEvent.PAYMENT_VERIFIED): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING_PAYMENT, BookingEvent.PAYMENT_FAILED): BookingStatus.PAYMENT_FAILED,
    (BookingStatus.PAYMENT_FAILED, BookingEvent.PAYMENT_VERIFIED): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING_PAYMENT, BookingEvent.DEADLINE_REACHED): BookingStatus.EXPIRED,
    (BookingStatus.PAYMENT_FAILED, BookingEvent.DEADLINE_REACHED): BookingStatus.EXPIRED,
    (BookingStatus.PENDING_OWNER_RESPONSE, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.PENDING_PAYMENT, BookingEvent.CANCEL): BookingStatus.CANCELLED,
}

TERMINAL_STATUSES = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.EXPIRED,
        BookingStatus.DECLINED,
        BookingStatus.CANCELLED,
    }
)

AWAITING_PAYMENT = frozenset({BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_FAILED})

# Statuses in which the booking owns soft holds in the ledger
HOLDING_STATUSES = frozenset({BookingStatus.PENDING_OWNER_RESPONSE}) | AWAITING_PAYMENT

DEFAULT_PAYMENT_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class BookingTransition:
    """Record of one applied transition; `changes` are the columns it wrote."""

    booking_id: str
    event: BookingEvent
    from_status: BookingStatus
    to_status: BookingStatus
    at: datetime
    actor_id: str | None = None
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass
class BookingAggregate:
    id: str
    venue_id: str
    customer_id: str
    owner_id: str
    dates_timings: list[DateTiming]
    pricing: PricingSnapshot
    status: BookingStatus = BookingStatus.INQUIRY
    version: int = 0
    event_type: str | None = None
    guest_count: int | None = None
    special_requirements: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    payment_deadline: datetime | None = None
    gateway_order_id: str | None = None
    order_amount_minor: int | None = None
    gateway_payment_id: str | None = None
    payment_error_description: str | None = None
    payment_reminder_count: int = 0
    last_payment_reminder_sent_at: datetime | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def dates(self) -> list[date]:
        return [timing.date for timing in self.dates_timings]

    def is_party(self, actor_id: str) -> bool:
        return actor_id in (self.customer_id, self.owner_id)

    def other_party(self, actor_id: str | None) -> str:
        """Recipient for notices about an action taken by `actor_id`."""
        return self.owner_id if actor_id == self.customer_id else self.customer_id

    def deadline_passed(self, now: datetime) -> bool:
        return self.payment_deadline is not None and now > self.payment_deadline

    def _reject(self, event: BookingEvent, reason: str | None = None) -> InvalidTransitionError:
        return InvalidTransitionError(self.id, self.status.value, event.value, reason)

    def apply(
        self,
        event: BookingEvent,
        at: datetime,
        *,
        actor_id: str | None = None,
        reason: str | None = None,
        payment_id: str | None = None,
        payment_window: timedelta = DEFAULT_PAYMENT_WINDOW,
    ) -> BookingTransition:
        """
        Apply `event` at instant `at`.

        Raises:
            InvalidTransitionError: the edge does not exist for the current
                status or its guard fails. The aggregate is not modified.
        """
        target = TRANSITIONS.get((self.status, event))
        if target is None:
            raise self._reject(event)

        changes: dict[str, Any] = {}

        if event is BookingEvent.SUBMIT:
            if not self.dates_timings:
                raise self._reject(event, "booking has no dates")

        elif event is BookingEvent.OWNER_ACCEPT:
            changes["payment_deadline"] = at + payment_window

        elif event is BookingEvent.OWNER_DECLINE:
            changes.update(
                cancelled_at=at,
                cancellation_reason=reason or "Declined by venue owner",
                cancelled_by=actor_id,
            )

        elif event is BookingEvent.PAYMENT_VERIFIED:
            if not payment_id:
                raise self._reject(event, "payment id is required")
            if self.deadline_passed(at):
                raise self._reject(event, "payment deadline has passed")
            if self.order_amount_minor != self.pricing.grand_total_minor:
                raise self._reject(event, "order amount does not match the quoted total")
            changes.update(
                gateway_payment_id=payment_id,
                confirmed_at=at,
                payment_error_description=None,
            )

        elif event is BookingEvent.PAYMENT_FAILED:
            changes["payment_error_description"] = reason or "Payment failed"

        elif event is BookingEvent.DEADLINE_REACHED:
            if not self.deadline_passed(at):
                raise self._reject(event, "payment deadline has not passed yet")
            hours = int(payment_window.total_seconds() // 3600)
            changes.update(
                cancelled_at=at,
                cancellation_reason=f"Payment not completed within {hours} hours",
            )

        elif event is BookingEvent.CANCEL:
            changes.update(
                cancelled_at=at,
                cancellation_reason=reason or "Cancelled",
                cancelled_by=actor_id,
            )

        transition = BookingTransition(
            booking_id=self.id,
            event=event,
            from_status=self.status,
            to_status=target,
            at=at,
            actor_id=actor_id,
            changes=changes,
        )

        for name, value in changes.items():
            setattr(self, name, value)
        self.status = target
        return transition
