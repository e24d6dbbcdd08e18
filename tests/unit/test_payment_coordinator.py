"""
Unit tests for payment order creation, verification and failure recording.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any
from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError

from venue_booking.exceptions import (
    InvalidTransitionError,
    LatePaymentError,
    PermissionDeniedError,
    SignatureMismatchError,
    StaleStateError,
)
from venue_booking.models.holds import HOLD_CONFIRMED, HOLD_SOFT
from venue_booking.state_machine import BookingStatus


def _awaiting_payment(harness: Any, timings: Any, *days: int):
    booking = harness.bookings.submit_inquiry("customer-1", "venue-1", timings(*days))
    booking = harness.bookings.accept(booking.id, "owner-1")
    order = harness.payments.create_order(booking.id, "customer-1")
    return booking, order


@pytest.mark.unit
def test_create_order_charges_snapshot_total(harness: Any, timings: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10, 11)

    assert order.amount_minor == 11682000
    assert order.currency == "INR"
    assert order.gateway_key == "rzp_test_key"
    assert order.payment_deadline == booking.payment_deadline
    stored = harness.bookings.get(booking.id)
    assert stored.gateway_order_id == order.order_id
    assert stored.order_amount_minor == 11682000


@pytest.mark.unit
def test_create_order_reuses_existing_order(harness: Any, timings: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10)

    again = harness.payments.create_order(booking.id, "customer-1")

    assert again.order_id == order.order_id
    assert len(harness.gateway.orders) == 1


@pytest.mark.unit
def test_create_order_requires_customer(harness: Any, timings: Any) -> None:
    booking, _ = _awaiting_payment(harness, timings, 10)

    with pytest.raises(PermissionDeniedError):
        harness.payments.create_order(booking.id, "owner-1")


@pytest.mark.unit
def test_create_order_before_acceptance_is_invalid(harness: Any, timings: Any) -> None:
    booking = harness.bookings.submit_inquiry("customer-1", "venue-1", timings(10))

    with pytest.raises(InvalidTransitionError):
        harness.payments.create_order(booking.id, "customer-1")
    assert harness.gateway.orders == []


@pytest.mark.unit
def test_create_order_after_deadline_is_invalid(harness: Any, timings: Any) -> None:
    booking = harness.bookings.submit_inquiry("customer-1", "venue-1", timings(10))
    harness.bookings.accept(booking.id, "owner-1")
    harness.clock.advance(hours=25)

    with pytest.raises(InvalidTransitionError, match="deadline"):
        harness.payments.create_order(booking.id, "customer-1")


@pytest.mark.unit
def test_verify_confirms_booking_and_promotes_holds(
    harness: Any, timings: Any, sign: Any
) -> None:
    booking, order = _awaiting_payment(harness, timings, 10, 11)

    result = harness.payments.verify(order.order_id, "pay_1", sign(order.order_id, "pay_1"))

    assert result.status is BookingStatus.CONFIRMED
    assert result.already_confirmed is False
    stored = harness.bookings.get(booking.id)
    assert stored.status is BookingStatus.CONFIRMED
    assert stored.gateway_payment_id == "pay_1"
    assert stored.confirmed_at == harness.clock()
    assert {h.kind for h in harness.ledger.holds_for_booking(booking.id)} == {HOLD_CONFIRMED}
    assert harness.scheduler.next_deadline() is None
    assert "payment_completed" in harness.sender.types("customer-1")
    assert "payment_completed" in harness.sender.types("owner-1")


@pytest.mark.unit
def test_verify_with_bad_signature_changes_nothing(harness: Any, timings: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10)
    before = harness.bookings.get(booking.id)

    with pytest.raises(SignatureMismatchError):
        harness.payments.verify(order.order_id, "pay_1", "0" * 64)

    after = harness.bookings.get(booking.id)
    assert after == before
    assert harness.ledger.holds_for_booking(booking.id)[0].kind == "soft"


@pytest.mark.unit
def test_verify_replay_is_idempotent(harness: Any, timings: Any, sign: Any) -> None:
    _, order = _awaiting_payment(harness, timings, 10)
    signature = sign(order.order_id, "pay_1")
    harness.payments.verify(order.order_id, "pay_1", signature)
    sent = len(harness.sender.events)

    result = harness.payments.verify(order.order_id, "pay_1", signature)

    assert result.already_confirmed is True
    assert result.status is BookingStatus.CONFIRMED
    assert len(harness.sender.events) == sent


@pytest.mark.unit
def test_second_payment_for_confirmed_booking_is_late(
    harness: Any, timings: Any, sign: Any
) -> None:
    _, order = _awaiting_payment(harness, timings, 10)
    harness.payments.verify(order.order_id, "pay_1", sign(order.order_id, "pay_1"))

    with pytest.raises(LatePaymentError):
        harness.payments.verify(order.order_id, "pay_2", sign(order.order_id, "pay_2"))


@pytest.mark.unit
def test_verify_after_deadline_is_late_and_expires(harness: Any, timings: Any, sign: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10)
    harness.clock.advance(hours=24, seconds=1)
    late_before = REGISTRY.get_sample_value("venue_booking_late_payments_total") or 0.0

    with pytest.raises(LatePaymentError):
        harness.payments.verify(order.order_id, "pay_1", sign(order.order_id, "pay_1"))

    assert REGISTRY.get_sample_value("venue_booking_late_payments_total") == late_before + 1
    stored = harness.bookings.get(booking.id)
    assert stored.status is BookingStatus.EXPIRED
    assert stored.gateway_payment_id is None
    assert harness.ledger.holds_for_booking(booking.id) == []


@pytest.mark.unit
def test_verify_after_expiry_released_holds_is_late(
    harness: Any, timings: Any, sign: Any
) -> None:
    """Expiry released the holds between the verifier's read and its promote."""
    booking, order = _awaiting_payment(harness, timings, 10)
    harness.ledger.release(booking.id)

    with pytest.raises(LatePaymentError):
        harness.payments.verify(order.order_id, "pay_1", sign(order.order_id, "pay_1"))

    assert harness.bookings.get(booking.id).status is BookingStatus.PENDING_PAYMENT


@pytest.mark.unit
def test_verify_for_cancelled_booking_is_late(harness: Any, timings: Any, sign: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10)
    harness.bookings.cancel(booking.id, "customer-1")

    with pytest.raises(LatePaymentError):
        harness.payments.verify(order.order_id, "pay_1", sign(order.order_id, "pay_1"))


@pytest.mark.unit
def test_verify_retries_after_unrelated_write(harness: Any, timings: Any, sign: Any) -> None:
    """A reminder written between read and write only costs a retry."""
    booking, order = _awaiting_payment(harness, timings, 10)
    real_apply = harness.lifecycle.apply
    calls = {"count": 0}

    def flaky_apply(*args: Any, **kwargs: Any):
        calls["count"] += 1
        if calls["count"] == 1:
            raise StaleStateError(booking.id, booking.version)
        return real_apply(*args, **kwargs)

    with patch.object(harness.lifecycle, "apply", side_effect=flaky_apply):
        result = harness.payments.verify(order.order_id, "pay_1", sign(order.order_id, "pay_1"))

    assert result.status is BookingStatus.CONFIRMED
    assert calls["count"] == 2


@pytest.mark.unit
def test_failed_confirmation_write_keeps_holds_soft(
    harness: Any, timings: Any, sign: Any
) -> None:
    """A lost connection while confirming must not leave promoted holds behind."""
    booking, order = _awaiting_payment(harness, timings, 10, 11)
    lost = OperationalError("UPDATE bookings", {}, Exception("server closed the connection"))

    with patch("venue_booking.services.lifecycle.save_booking_changes", side_effect=lost):
        with pytest.raises(OperationalError):
            harness.payments.verify(order.order_id, "pay_1", sign(order.order_id, "pay_1"))

    assert harness.bookings.get(booking.id).status is BookingStatus.PENDING_PAYMENT
    assert {h.kind for h in harness.ledger.holds_for_booking(booking.id)} == {HOLD_SOFT}

    harness.clock.advance(hours=25)
    report = harness.scheduler.sweep()

    assert report.expired == [booking.id]
    assert report.skipped == []
    assert harness.ledger.holds_for_booking(booking.id) == []


@pytest.mark.unit
def test_failure_can_only_be_reported_by_customer(harness: Any, timings: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10)

    for stranger in ("owner-1", "someone-else"):
        with pytest.raises(PermissionDeniedError):
            harness.payments.record_failure(order.order_id, stranger, "pay_1", "Card declined")

    stored = harness.bookings.get(booking.id)
    assert stored.status is BookingStatus.PENDING_PAYMENT
    assert stored.payment_error_description is None


@pytest.mark.unit
def test_record_failure_moves_to_payment_failed(harness: Any, timings: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10)

    failed = harness.payments.record_failure(
        order.order_id, "customer-1", "pay_1", "Card declined"
    )

    assert failed.status is BookingStatus.PAYMENT_FAILED
    assert failed.payment_error_description == "Card declined"
    assert harness.sender.types("customer-1")[-1] == "payment_failed"
    assert len(harness.ledger.holds_for_booking(booking.id)) == 1


@pytest.mark.unit
def test_repeated_failure_updates_description(harness: Any, timings: Any) -> None:
    _, order = _awaiting_payment(harness, timings, 10)
    harness.payments.record_failure(order.order_id, "customer-1", "pay_1", "Card declined")

    failed = harness.payments.record_failure(
        order.order_id, "customer-1", "pay_2", "Bank timeout"
    )

    assert failed.status is BookingStatus.PAYMENT_FAILED
    assert failed.payment_error_description == "Bank timeout"


@pytest.mark.unit
def test_payment_after_failure_confirms(harness: Any, timings: Any, sign: Any) -> None:
    _, order = _awaiting_payment(harness, timings, 10)
    harness.payments.record_failure(order.order_id, "customer-1", "pay_1", "Card declined")

    result = harness.payments.verify(order.order_id, "pay_2", sign(order.order_id, "pay_2"))

    assert result.status is BookingStatus.CONFIRMED


@pytest.mark.unit
def test_status_reports_remaining_time(harness: Any, timings: Any) -> None:
    booking, order = _awaiting_payment(harness, timings, 10)
    harness.clock.advance(hours=4)

    status = harness.payments.status(booking.id, "customer-1")

    assert status.status is BookingStatus.PENDING_PAYMENT
    assert status.order_id == order.order_id
    assert status.amount_minor == order.amount_minor
    assert status.seconds_remaining == int(timedelta(hours=20).total_seconds())
    with pytest.raises(PermissionDeniedError):
        harness.payments.status(booking.id, "someone-else")
