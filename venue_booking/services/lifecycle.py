"""
Persistence of booking state transitions.

BookingLifecycle is the single write path for booking rows after creation:
it applies an event to a working copy of the aggregate, writes the result
under the optimistic version check, records metrics, and hands the committed
transition to the notifier.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta
from typing import Any, Callable, ContextManager, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from venue_booking.config import PAYMENT_WINDOW_HOURS
from venue_booking.db.readers.bookings import get_booking, get_booking_by_order
from venue_booking.db.writers.bookings import insert_booking, save_booking_changes
from venue_booking.exceptions import BookingNotFoundError
from venue_booking.metrics import booking_transitions
from venue_booking.services.notifications import NotificationDispatcher
from venue_booking.state_machine import BookingAggregate, BookingEvent, BookingTransition
from venue_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


class BookingLifecycle:
    def __init__(
        self,
        engine: Engine,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
        payment_window: timedelta = timedelta(hours=PAYMENT_WINDOW_HOURS),
    ):
        self._engine = engine
        self._notifier = notifier
        self._clock = clock
        self.payment_window = payment_window

    def now(self) -> datetime:
        return self._clock()

    def load(self, booking_id: str) -> BookingAggregate:
        """
        Raises:
            BookingNotFoundError: no booking with this id
        """
        with self._engine.connect() as conn:
            booking = get_booking(conn, booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def load_by_order(self, order_id: str) -> BookingAggregate:
        with self._engine.connect() as conn:
            booking = get_booking_by_order(conn, order_id)
        if booking is None:
            raise BookingNotFoundError(f"order {order_id}")
        return booking

    def create(self, booking: BookingAggregate, transition: BookingTransition) -> None:
        """Insert a freshly submitted booking and announce it."""
        with self._engine.begin() as conn:
            insert_booking(conn, booking)
        self._committed(booking, transition)

    def apply(
        self,
        booking: BookingAggregate,
        event: BookingEvent,
        *,
        at: Optional[datetime] = None,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        payment_id: Optional[str] = None,
        before_write: Optional[Callable[[Connection], None]] = None,
        transaction: Optional[Callable[[], ContextManager[Connection]]] = None,
    ) -> tuple[BookingAggregate, BookingTransition]:
        """
        Apply `event` to `booking` and persist it.

        `booking` itself is never modified; the updated copy is returned.
        `before_write` runs after the transition was validated, on the same
        connection and inside the same transaction as the row update; an
        exception from it rolls both back. `transaction` replaces the default
        `engine.begin()`, e.g. with the ledger's locked transaction so hold
        changes and the status write commit together.

        Returns:
            (updated booking, applied transition)

        Raises:
            InvalidTransitionError: the event is not valid in the current status
            StaleStateError: the row changed since `booking` was read
        """
        working = dataclasses.replace(booking, dates_timings=list(booking.dates_timings))
        transition = working.apply(
            event,
            at or self._clock(),
            actor_id=actor_id,
            reason=reason,
            payment_id=payment_id,
            payment_window=self.payment_window,
        )

        values: dict[str, Any] = {"status": transition.to_status, **transition.changes}
        begin = transaction or self._engine.begin
        with begin() as conn:
            if before_write is not None:
                before_write(conn)
            working.version = save_booking_changes(conn, working.id, booking.version, values)

        self._committed(working, transition)
        return working, transition

    def save_fields(self, booking: BookingAggregate, values: dict[str, Any]) -> BookingAggregate:
        """
        Persist non-status field changes (order details, reminder bookkeeping).

        Raises:
            StaleStateError: the row changed since `booking` was read
        """
        working = dataclasses.replace(booking, **values)
        with self._engine.begin() as conn:
            working.version = save_booking_changes(conn, booking.id, booking.version, values)
        return working

    def _committed(self, booking: BookingAggregate, transition: BookingTransition) -> None:
        booking_transitions.labels(
            from_status=transition.from_status.value,
            to_status=transition.to_status.value,
        ).inc()
        logger.info(
            "booking_transitioned",
            booking_id=booking.id,
            transition_event=transition.event.value,
            from_status=transition.from_status.value,
            to_status=transition.to_status.value,
            actor_id=transition.actor_id,
            version=booking.version,
        )
        if self._notifier is not None:
            self._notifier.booking_transitioned(booking, transition)
