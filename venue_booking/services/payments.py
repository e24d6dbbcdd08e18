"""
Payment coordination between bookings, the gateway and the ledger.

Verification order matters: the signature is checked before anything is
touched, and the ledger holds are promoted in the same transaction that
writes the confirmed booking row, so neither change can survive alone.
A payment that loses the race against expiry or cancellation is reported
as a LatePaymentError for manual refund rather than resolved automatically.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Optional

import structlog
from sqlalchemy.engine import Connection

from venue_booking.exceptions import (
    HoldNotFoundError,
    InvalidTransitionError,
    LatePaymentError,
    PermissionDeniedError,
    SignatureMismatchError,
    StaleStateError,
)
from venue_booking.metrics import late_payments
from venue_booking.network.gateway import RazorpayGateway, signatures_match
from venue_booking.services.ledger import AvailabilityLedger
from venue_booking.services.lifecycle import BookingLifecycle
from venue_booking.state_machine import (
    AWAITING_PAYMENT,
    BookingAggregate,
    BookingEvent,
    BookingStatus,
)

if TYPE_CHECKING:
    from venue_booking.services.expiry import ExpiryScheduler

logger = structlog.get_logger(__name__)

STALE_RETRIES = 3


@dataclass(frozen=True)
class OrderHandle:
    booking_id: str
    order_id: str
    amount_minor: int
    currency: str
    gateway_key: Optional[str]
    payment_deadline: Optional[datetime]


@dataclass(frozen=True)
class VerifyResult:
    booking_id: str
    status: BookingStatus
    payment_id: str
    already_confirmed: bool = False


@dataclass(frozen=True)
class PaymentStatus:
    booking_id: str
    status: BookingStatus
    payment_deadline: Optional[datetime]
    seconds_remaining: Optional[int]
    order_id: Optional[str]
    amount_minor: int
    currency: str
    payment_id: Optional[str]
    error_description: Optional[str]
    reminder_count: int


class PaymentCoordinator:
    def __init__(
        self,
        ledger: AvailabilityLedger,
        lifecycle: BookingLifecycle,
        gateway: RazorpayGateway,
        scheduler: Optional["ExpiryScheduler"] = None,
    ):
        self._ledger = ledger
        self._lifecycle = lifecycle
        self._gateway = gateway
        self._scheduler = scheduler

    def _late(self, booking: BookingAggregate, payment_id: Optional[str]) -> LatePaymentError:
        late_payments.inc()
        logger.error(
            "late_payment_detected",
            booking_id=booking.id,
            payment_id=payment_id,
            status=booking.status.value,
            order_id=booking.gateway_order_id,
        )
        return LatePaymentError(booking.id, payment_id, booking.status.value)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def create_order(self, booking_id: str, customer_id: str) -> OrderHandle:
        """
        Create (or reuse) the gateway order for a booking awaiting payment.

        The charged amount is the pricing snapshot's grand total in minor
        units; it is recorded on the booking so verification can compare.

        Raises:
            BookingNotFoundError, PermissionDeniedError
            InvalidTransitionError: booking is not awaiting payment or its deadline passed
            GatewayError, GatewayNotConfiguredError: order creation failed
            StaleStateError: booking changed while the order was being created
        """
        booking = self._lifecycle.load(booking_id)
        if booking.customer_id != customer_id:
            raise PermissionDeniedError("Only the customer can pay for this booking")
        if booking.status not in AWAITING_PAYMENT:
            raise InvalidTransitionError(
                booking.id, booking.status.value, "create_order", "booking is not awaiting payment"
            )
        if booking.deadline_passed(self._lifecycle.now()):
            raise InvalidTransitionError(
                booking.id, booking.status.value, "create_order", "payment deadline has passed"
            )

        amount_minor = booking.pricing.grand_total_minor
        if booking.gateway_order_id and booking.order_amount_minor == amount_minor:
            logger.info("gateway_order_reused", booking_id=booking.id, order_id=booking.gateway_order_id)
            order_id = booking.gateway_order_id
        else:
            order = self._gateway.create_order(
                amount_minor=amount_minor,
                currency=booking.pricing.currency,
                receipt=f"booking_{booking.id.replace('-', '')[:24]}",
                notes={"booking_id": booking.id, "venue_id": booking.venue_id},
            )
            booking = self._lifecycle.save_fields(
                booking,
                {"gateway_order_id": order.order_id, "order_amount_minor": order.amount_minor},
            )
            order_id = order.order_id

        return OrderHandle(
            booking_id=booking.id,
            order_id=order_id,
            amount_minor=amount_minor,
            currency=booking.pricing.currency,
            gateway_key=self._gateway.key_id,
            payment_deadline=booking.payment_deadline,
        )

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def verify(self, order_id: str, payment_id: str, signature: str) -> VerifyResult:
        """
        Confirm a booking from a gateway payment callback.

        Replaying the same (order, payment) after confirmation returns the
        confirmed result again without side effects.

        Raises:
            BookingNotFoundError: no booking for this order
            SignatureMismatchError: signature does not match; nothing is modified
            LatePaymentError: booking expired, was cancelled, or was paid by
                another payment before this one could be applied
            InvalidTransitionError: booking never reached payment
        """
        booking = self._lifecycle.load_by_order(order_id)

        expected = self._gateway.expected_signature(order_id, payment_id)
        if not signatures_match(expected, signature):
            logger.warning(
                "payment_signature_mismatch",
                booking_id=booking.id,
                order_id=order_id,
                payment_id=payment_id,
            )
            raise SignatureMismatchError("Invalid payment signature")

        for _ in range(STALE_RETRIES):
            if booking.status is BookingStatus.CONFIRMED and booking.gateway_payment_id == payment_id:
                logger.info("payment_already_verified", booking_id=booking.id, payment_id=payment_id)
                return VerifyResult(booking.id, booking.status, payment_id, already_confirmed=True)

            if booking.is_terminal:
                raise self._late(booking, payment_id)

            if booking.status not in AWAITING_PAYMENT:
                raise InvalidTransitionError(
                    booking.id, booking.status.value, BookingEvent.PAYMENT_VERIFIED.value
                )

            now = self._lifecycle.now()
            if booking.deadline_passed(now):
                if self._scheduler is not None:
                    self._scheduler.expire_booking(booking.id, now)
                raise self._late(booking, payment_id)

            def promote_holds(conn: Connection, booking_id: str = booking.id) -> None:
                try:
                    self._ledger.promote(booking_id, conn=conn)
                except HoldNotFoundError as err:
                    # Expiry released the holds first
                    raise self._late(booking, payment_id) from err

            try:
                booking, _ = self._lifecycle.apply(
                    booking,
                    BookingEvent.PAYMENT_VERIFIED,
                    at=now,
                    payment_id=payment_id,
                    before_write=promote_holds,
                    transaction=partial(self._ledger.transaction, booking.id),
                )
            except StaleStateError:
                booking = self._lifecycle.load(booking.id)
                continue

            if self._scheduler is not None:
                self._scheduler.cancel(booking.id)
            logger.info(
                "payment_verified",
                booking_id=booking.id,
                order_id=order_id,
                payment_id=payment_id,
                amount_minor=booking.order_amount_minor,
            )
            return VerifyResult(booking.id, booking.status, payment_id)

        raise StaleStateError(booking.id, booking.version)

    def record_failure(
        self,
        order_id: str,
        customer_id: str,
        payment_id: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> BookingAggregate:
        """
        Record a failed payment attempt reported by the paying customer. The
        booking stays payable until its deadline; repeated failures only
        update the error description.

        Raises:
            BookingNotFoundError, PermissionDeniedError, InvalidTransitionError,
            StaleStateError
        """
        booking = self._lifecycle.load_by_order(order_id)
        if booking.customer_id != customer_id:
            raise PermissionDeniedError("Only the customer can report a failed payment")
        reason = error_description or "Payment failed"

        if booking.status is BookingStatus.PAYMENT_FAILED:
            booking = self._lifecycle.save_fields(booking, {"payment_error_description": reason})
        else:
            booking, _ = self._lifecycle.apply(
                booking, BookingEvent.PAYMENT_FAILED, reason=reason
            )

        logger.info(
            "payment_failed",
            booking_id=booking.id,
            order_id=order_id,
            payment_id=payment_id,
            error=reason,
        )
        return booking

    def status(self, booking_id: str, actor_id: Optional[str] = None) -> PaymentStatus:
        booking = self._lifecycle.load(booking_id)
        if actor_id is not None and not booking.is_party(actor_id):
            raise PermissionDeniedError(f"{actor_id} is not a party to booking {booking_id}")

        seconds_remaining = None
        if booking.payment_deadline is not None and booking.status in AWAITING_PAYMENT:
            remaining = (booking.payment_deadline - self._lifecycle.now()).total_seconds()
            seconds_remaining = max(0, int(remaining))

        return PaymentStatus(
            booking_id=booking.id,
            status=booking.status,
            payment_deadline=booking.payment_deadline,
            seconds_remaining=seconds_remaining,
            order_id=booking.gateway_order_id,
            amount_minor=booking.pricing.grand_total_minor,
            currency=booking.pricing.currency,
            payment_id=booking.gateway_payment_id,
            error_description=booking.payment_error_description,
            reminder_count=booking.payment_reminder_count,
        )
