"""
Unit tests for notification routing and delivery retries.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from venue_booking.pricing import DateTiming, PricingCalculator
from venue_booking.services.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    events_for_transition,
)
from venue_booking.state_machine import BookingAggregate, BookingEvent, BookingStatus

NOW = datetime(2026, 3, 1, 6, 30, tzinfo=timezone.utc)


def _booking(status: BookingStatus) -> BookingAggregate:
    timings = [DateTiming(date(2026, 3, 10), time(10, 0), time(18, 0))]
    booking = BookingAggregate(
        id="booking-1",
        venue_id="venue-1",
        customer_id="customer-1",
        owner_id="owner-1",
        dates_timings=timings,
        pricing=PricingCalculator().compute(Decimal("45000"), timings, today=date(2026, 3, 1)),
        status=status,
    )
    if status in (BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_FAILED):
        booking.payment_deadline = NOW + timedelta(hours=24)
        booking.order_amount_minor = booking.pricing.grand_total_minor
    return booking


def _routed(status: BookingStatus, event: BookingEvent, **kwargs: Any) -> list[tuple[str, str]]:
    booking = _booking(status)
    at = NOW + timedelta(hours=25) if event is BookingEvent.DEADLINE_REACHED else NOW
    transition = booking.apply(event, at, **kwargs)
    return [(e.type, e.recipient_id) for e in events_for_transition(booking, transition)]


@pytest.mark.unit
@pytest.mark.parametrize(
    "status,event,kwargs,expected",
    [
        (BookingStatus.INQUIRY, BookingEvent.SUBMIT, {}, [("inquiry_received", "owner-1")]),
        (
            BookingStatus.PENDING_OWNER_RESPONSE,
            BookingEvent.OWNER_ACCEPT,
            {"actor_id": "owner-1"},
            [("inquiry_accepted", "customer-1")],
        ),
        (
            BookingStatus.PENDING_OWNER_RESPONSE,
            BookingEvent.OWNER_DECLINE,
            {"actor_id": "owner-1"},
            [("inquiry_declined", "customer-1")],
        ),
        (
            BookingStatus.PENDING_PAYMENT,
            BookingEvent.PAYMENT_VERIFIED,
            {"payment_id": "pay_1"},
            [("payment_completed", "customer-1"), ("payment_completed", "owner-1")],
        ),
        (
            BookingStatus.PENDING_PAYMENT,
            BookingEvent.PAYMENT_FAILED,
            {"reason": "Card declined"},
            [("payment_failed", "customer-1")],
        ),
        (
            BookingStatus.PENDING_PAYMENT,
            BookingEvent.DEADLINE_REACHED,
            {},
            [("payment_not_completed", "customer-1")],
        ),
        (
            BookingStatus.PENDING_PAYMENT,
            BookingEvent.CANCEL,
            {"actor_id": "owner-1"},
            [("booking_cancelled", "customer-1")],
        ),
        (
            BookingStatus.PENDING_OWNER_RESPONSE,
            BookingEvent.CANCEL,
            {"actor_id": "customer-1"},
            [("booking_cancelled", "owner-1")],
        ),
    ],
)
def test_transition_routes_to_expected_recipients(
    status: BookingStatus, event: BookingEvent, kwargs: dict[str, Any], expected: list
) -> None:
    assert _routed(status, event, **kwargs) == expected


@pytest.mark.unit
def test_payload_carries_booking_summary() -> None:
    booking = _booking(BookingStatus.PENDING_OWNER_RESPONSE)
    transition = booking.apply(BookingEvent.OWNER_ACCEPT, NOW, actor_id="owner-1")

    (event,) = events_for_transition(booking, transition)

    assert event.payload["venue_id"] == "venue-1"
    assert event.payload["dates"] == ["2026-03-10"]
    assert event.payload["grand_total"] == "58410.00"
    assert event.payload["currency"] == "INR"
    assert event.payload["payment_deadline"] == (NOW + timedelta(hours=24)).isoformat()


@pytest.mark.unit
def test_dispatch_retries_until_delivered(sender: Any) -> None:
    sleeps: list[float] = []
    sender.failures_left = 2
    dispatcher = NotificationDispatcher(sender, max_attempts=3, sleep=sleeps.append)

    dispatcher.dispatch(NotificationEvent("inquiry_received", "booking-1", "owner-1"))

    assert sender.calls == 3
    assert sender.types() == ["inquiry_received"]
    assert sleeps == [0.5, 1.0]


@pytest.mark.unit
def test_dispatch_drops_after_max_attempts_without_raising(sender: Any) -> None:
    sender.failures_left = 10
    dispatcher = NotificationDispatcher(sender, max_attempts=3, sleep=lambda _: None)

    dispatcher.dispatch(NotificationEvent("payment_failed", "booking-1", "customer-1"))

    assert sender.calls == 3
    assert sender.events == []


@pytest.mark.unit
def test_dispatch_on_executor(sender: Any) -> None:
    dispatcher = NotificationDispatcher(sender, executor=ThreadPoolExecutor(max_workers=2))

    for index in range(5):
        dispatcher.dispatch(NotificationEvent("payment_reminder", f"booking-{index}", "c"))
    dispatcher.close()

    assert len(sender.events) == 5


@pytest.mark.unit
def test_dispatch_after_close_is_logged_not_raised(sender: Any) -> None:
    dispatcher = NotificationDispatcher(sender, executor=ThreadPoolExecutor(max_workers=1))
    dispatcher.close()

    dispatcher.dispatch(NotificationEvent("payment_reminder", "booking-1", "customer-1"))

    assert sender.events == []


@pytest.mark.unit
def test_payment_reminder_payload(sender: Any) -> None:
    booking = _booking(BookingStatus.PENDING_PAYMENT)
    booking.payment_reminder_count = 2
    dispatcher = NotificationDispatcher(sender)

    event = dispatcher.payment_reminder(booking, NOW + timedelta(hours=12, minutes=30))

    assert event.recipient_id == "customer-1"
    assert event.payload["hours_remaining"] == 11
    assert event.payload["reminder_number"] == 2
    assert sender.types("customer-1") == ["payment_reminder"]
