"""
Unit tests for the booking state machine.
"""

from __future__ import annotations

import copy
import itertools
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from venue_booking.exceptions import InvalidTransitionError
from venue_booking.pricing import DateTiming, PricingCalculator
from venue_booking.state_machine import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    BookingAggregate,
    BookingEvent,
    BookingStatus,
)

NOW = datetime(2026, 3, 1, 6, 30, tzinfo=timezone.utc)


def _booking(status: BookingStatus = BookingStatus.INQUIRY, **overrides: object) -> BookingAggregate:
    timings = [DateTiming(date(2026, 3, 10), time(10, 0), time(18, 0))]
    pricing = PricingCalculator().compute(Decimal("45000"), timings, today=date(2026, 3, 1))
    booking = BookingAggregate(
        id="booking-1",
        venue_id="venue-1",
        customer_id="customer-1",
        owner_id="owner-1",
        dates_timings=timings,
        pricing=pricing,
        status=status,
    )
    if status in (BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_FAILED):
        booking.payment_deadline = NOW + timedelta(hours=24)
        booking.gateway_order_id = "order_1"
        booking.order_amount_minor = pricing.grand_total_minor
    for name, value in overrides.items():
        setattr(booking, name, value)
    return booking


def _event_kwargs(event: BookingEvent) -> dict[str, object]:
    if event is BookingEvent.PAYMENT_VERIFIED:
        return {"payment_id": "pay_1"}
    return {}


def _event_time(event: BookingEvent) -> datetime:
    # Deadline events only make sense after the deadline
    if event is BookingEvent.DEADLINE_REACHED:
        return NOW + timedelta(hours=25)
    return NOW


@pytest.mark.unit
@pytest.mark.parametrize(
    "status,event",
    list(itertools.product(BookingStatus, BookingEvent)),
    ids=lambda value: value.value,
)
def test_every_status_event_pair_is_decided(status: BookingStatus, event: BookingEvent) -> None:
    """Each (status, event) pair either follows the table or is rejected untouched."""
    booking = _booking(status)
    before = copy.deepcopy(booking)
    target = TRANSITIONS.get((status, event))

    if target is None:
        with pytest.raises(InvalidTransitionError):
            booking.apply(event, _event_time(event), **_event_kwargs(event))
        assert booking == before
    else:
        transition = booking.apply(event, _event_time(event), **_event_kwargs(event))
        assert booking.status is target
        assert transition.from_status is status
        assert transition.to_status is target


@pytest.mark.unit
@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_statuses_have_no_outgoing_edges(status: BookingStatus) -> None:
    assert not [event for (source, event) in TRANSITIONS if source is status]


@pytest.mark.unit
def test_submit_requires_dates() -> None:
    booking = _booking(dates_timings=[])

    with pytest.raises(InvalidTransitionError, match="no dates"):
        booking.apply(BookingEvent.SUBMIT, NOW)
    assert booking.status is BookingStatus.INQUIRY


@pytest.mark.unit
def test_accept_starts_payment_window() -> None:
    booking = _booking(BookingStatus.PENDING_OWNER_RESPONSE)

    transition = booking.apply(BookingEvent.OWNER_ACCEPT, NOW, actor_id="owner-1")

    assert booking.status is BookingStatus.PENDING_PAYMENT
    assert booking.payment_deadline == NOW + timedelta(hours=24)
    assert transition.changes == {"payment_deadline": NOW + timedelta(hours=24)}


@pytest.mark.unit
def test_accept_uses_given_payment_window() -> None:
    booking = _booking(BookingStatus.PENDING_OWNER_RESPONSE)

    booking.apply(BookingEvent.OWNER_ACCEPT, NOW, payment_window=timedelta(hours=2))

    assert booking.payment_deadline == NOW + timedelta(hours=2)


@pytest.mark.unit
def test_decline_records_reason_and_actor() -> None:
    booking = _booking(BookingStatus.PENDING_OWNER_RESPONSE)

    booking.apply(BookingEvent.OWNER_DECLINE, NOW, actor_id="owner-1", reason="Renovation")

    assert booking.status is BookingStatus.DECLINED
    assert booking.cancellation_reason == "Renovation"
    assert booking.cancelled_by == "owner-1"
    assert booking.cancelled_at == NOW


@pytest.mark.unit
def test_payment_verified_after_deadline_is_rejected() -> None:
    booking = _booking(BookingStatus.PENDING_PAYMENT)
    before = copy.deepcopy(booking)

    with pytest.raises(InvalidTransitionError, match="deadline has passed"):
        booking.apply(
            BookingEvent.PAYMENT_VERIFIED, NOW + timedelta(hours=24, seconds=1), payment_id="pay_1"
        )
    assert booking == before


@pytest.mark.unit
def test_payment_verified_requires_matching_order_amount() -> None:
    booking = _booking(BookingStatus.PENDING_PAYMENT)
    booking.order_amount_minor = booking.pricing.grand_total_minor - 1

    with pytest.raises(InvalidTransitionError, match="order amount"):
        booking.apply(BookingEvent.PAYMENT_VERIFIED, NOW, payment_id="pay_1")
    assert booking.status is BookingStatus.PENDING_PAYMENT


@pytest.mark.unit
def test_payment_verified_requires_payment_id() -> None:
    booking = _booking(BookingStatus.PENDING_PAYMENT)

    with pytest.raises(InvalidTransitionError, match="payment id"):
        booking.apply(BookingEvent.PAYMENT_VERIFIED, NOW)


@pytest.mark.unit
def test_payment_verified_clears_previous_failure() -> None:
    booking = _booking(BookingStatus.PAYMENT_FAILED, payment_error_description="Card declined")

    booking.apply(BookingEvent.PAYMENT_VERIFIED, NOW, payment_id="pay_2")

    assert booking.status is BookingStatus.CONFIRMED
    assert booking.gateway_payment_id == "pay_2"
    assert booking.confirmed_at == NOW
    assert booking.payment_error_description is None


@pytest.mark.unit
def test_deadline_reached_before_deadline_is_rejected() -> None:
    booking = _booking(BookingStatus.PENDING_PAYMENT)

    with pytest.raises(InvalidTransitionError, match="not passed"):
        booking.apply(BookingEvent.DEADLINE_REACHED, NOW + timedelta(hours=23))


@pytest.mark.unit
def test_deadline_reached_records_expiry_reason() -> None:
    booking = _booking(BookingStatus.PENDING_PAYMENT)

    booking.apply(BookingEvent.DEADLINE_REACHED, NOW + timedelta(hours=25))

    assert booking.status is BookingStatus.EXPIRED
    assert booking.cancellation_reason == "Payment not completed within 24 hours"


@pytest.mark.unit
def test_cancel_from_payment_failed_is_not_allowed() -> None:
    booking = _booking(BookingStatus.PAYMENT_FAILED)

    with pytest.raises(InvalidTransitionError):
        booking.apply(BookingEvent.CANCEL, NOW, actor_id="customer-1")


@pytest.mark.unit
def test_other_party() -> None:
    booking = _booking()

    assert booking.other_party("customer-1") == "owner-1"
    assert booking.other_party("owner-1") == "customer-1"
    assert booking.is_party("owner-1")
    assert not booking.is_party("stranger")
