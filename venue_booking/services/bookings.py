"""
Booking inquiry workflow: submission, owner response and cancellation.
"""

from __future__ import annotations

import uuid
from datetime import date
from functools import partial
from typing import TYPE_CHECKING, Optional, Protocol, Sequence

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from venue_booking.db.readers.bookings import list_bookings
from venue_booking.exceptions import (
    BookingValidationError,
    DatesUnavailableError,
    PermissionDeniedError,
)
from venue_booking.network.venues import Venue
from venue_booking.pricing import DateTiming, PricingCalculator
from venue_booking.services.ledger import AvailabilityLedger, Conflict, HoldRecord
from venue_booking.services.lifecycle import BookingLifecycle
from venue_booking.state_machine import BookingAggregate, BookingEvent, BookingStatus

if TYPE_CHECKING:
    from venue_booking.services.expiry import ExpiryScheduler

logger = structlog.get_logger(__name__)

MAX_AVAILABILITY_RANGE_DAYS = 366


class VenueLookup(Protocol):
    def get_venue(self, venue_id: str) -> Venue: ...


class BookingService:
    def __init__(
        self,
        engine: Engine,
        ledger: AvailabilityLedger,
        lifecycle: BookingLifecycle,
        venues: VenueLookup,
        calculator: PricingCalculator,
        scheduler: Optional["ExpiryScheduler"] = None,
    ):
        self._engine = engine
        self._ledger = ledger
        self._lifecycle = lifecycle
        self._venues = venues
        self._calculator = calculator
        self._scheduler = scheduler

    def submit_inquiry(
        self,
        customer_id: str,
        venue_id: str,
        dates_timings: Sequence[DateTiming],
        event_type: Optional[str] = None,
        guest_count: Optional[int] = None,
        special_requirements: Optional[str] = None,
        customer_name: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> BookingAggregate:
        """
        Price a request, hold its dates and record the inquiry.

        The dates are held before the booking row exists; if the row cannot
        be written the holds are released again. Until the owner answers,
        the holds carry no expiry.

        Returns:
            BookingAggregate in pending_owner_response

        Raises:
            VenueNotFoundError, VenueCatalogError: venue lookup failed
            BookingValidationError: dates, times or price rejected
            DatesUnavailableError: one or more dates are already held
        """
        venue = self._venues.get_venue(venue_id)
        if venue.owner_id == customer_id:
            raise PermissionDeniedError("Venue owners cannot book their own venue")

        pricing = self._calculator.compute(venue.price_per_day, dates_timings)
        timings = sorted(dates_timings, key=lambda t: t.date)

        booking = BookingAggregate(
            id=str(uuid.uuid4()),
            venue_id=venue_id,
            customer_id=customer_id,
            owner_id=venue.owner_id,
            dates_timings=list(timings),
            pricing=pricing,
            event_type=event_type,
            guest_count=guest_count,
            special_requirements=special_requirements,
            customer_name=customer_name,
            customer_email=customer_email,
        )
        transition = booking.apply(
            BookingEvent.SUBMIT, self._lifecycle.now(), actor_id=customer_id
        )

        result = self._ledger.try_hold(venue_id, booking.dates, booking.id)
        if isinstance(result, Conflict):
            raise DatesUnavailableError(venue_id, result.conflicting_dates)

        try:
            self._lifecycle.create(booking, transition)
        except SQLAlchemyError:
            self._ledger.release(booking.id)
            raise

        logger.info(
            "inquiry_submitted",
            booking_id=booking.id,
            venue_id=venue_id,
            customer_id=customer_id,
            total_days=pricing.total_days,
            grand_total=str(pricing.grand_total),
        )
        return booking

    def accept(self, booking_id: str, owner_id: str) -> BookingAggregate:
        """
        Owner accepts an inquiry; the payment window starts now and the soft
        holds expire with it.

        Raises:
            BookingNotFoundError, PermissionDeniedError, InvalidTransitionError,
            StaleStateError
        """
        booking = self._lifecycle.load(booking_id)
        self._require_owner(booking, owner_id)

        at = self._lifecycle.now()

        def extend_holds(conn: Connection) -> None:
            self._ledger.extend(booking.id, at + self._lifecycle.payment_window, conn=conn)

        booking, _ = self._lifecycle.apply(
            booking,
            BookingEvent.OWNER_ACCEPT,
            at=at,
            actor_id=owner_id,
            before_write=extend_holds,
            transaction=partial(self._ledger.transaction, booking.id),
        )
        if self._scheduler is not None and booking.payment_deadline is not None:
            self._scheduler.schedule(booking.id, booking.payment_deadline)
        return booking

    def decline(
        self, booking_id: str, owner_id: str, reason: Optional[str] = None
    ) -> BookingAggregate:
        booking = self._lifecycle.load(booking_id)
        self._require_owner(booking, owner_id)

        booking, _ = self._lifecycle.apply(
            booking,
            BookingEvent.OWNER_DECLINE,
            actor_id=owner_id,
            reason=reason,
            before_write=partial(self._ledger.release, booking.id),
            transaction=partial(self._ledger.transaction, booking.id),
        )
        return booking

    def cancel(
        self, booking_id: str, actor_id: str, reason: Optional[str] = None
    ) -> BookingAggregate:
        """
        Either party withdraws before payment.

        Raises:
            BookingNotFoundError, PermissionDeniedError, InvalidTransitionError,
            StaleStateError
        """
        booking = self._lifecycle.load(booking_id)
        if not booking.is_party(actor_id):
            raise PermissionDeniedError(f"{actor_id} is not a party to booking {booking_id}")

        booking, _ = self._lifecycle.apply(
            booking,
            BookingEvent.CANCEL,
            actor_id=actor_id,
            reason=reason,
            before_write=partial(self._ledger.release, booking.id),
            transaction=partial(self._ledger.transaction, booking.id),
        )
        if self._scheduler is not None:
            self._scheduler.cancel(booking.id)
        return booking

    def get(self, booking_id: str, actor_id: Optional[str] = None) -> BookingAggregate:
        booking = self._lifecycle.load(booking_id)
        if actor_id is not None and not booking.is_party(actor_id):
            raise PermissionDeniedError(f"{actor_id} is not a party to booking {booking_id}")
        return booking

    def search(
        self,
        customer_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        venue_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[BookingAggregate]:
        with self._engine.connect() as conn:
            return list_bookings(
                conn,
                customer_id=customer_id,
                owner_id=owner_id,
                venue_id=venue_id,
                status=status,
                limit=limit,
                offset=offset,
            )

    def availability(self, venue_id: str, start: date, end: date) -> list[HoldRecord]:
        """Held dates for a venue between start and end, inclusive."""
        if end < start:
            raise BookingValidationError("end must not be before start")
        if (end - start).days > MAX_AVAILABILITY_RANGE_DAYS:
            raise BookingValidationError(
                f"Date range must not exceed {MAX_AVAILABILITY_RANGE_DAYS} days"
            )
        return self._ledger.holds_for_venue(venue_id, start, end)

    @staticmethod
    def _require_owner(booking: BookingAggregate, owner_id: str) -> None:
        if booking.owner_id != owner_id:
            raise PermissionDeniedError(
                f"Only the venue owner can respond to booking {booking.id}"
            )
