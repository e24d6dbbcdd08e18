"""
Payment-deadline expiry and payment reminders.

The database is the source of truth for which bookings are overdue: every
sweep queries for bookings still awaiting payment whose deadline has passed.
In the background the sweep runs as an APScheduler interval job, and every
known deadline also gets a one-off date job so a booking expires close to its
deadline rather than at the next interval. Those jobs are only hints, so a
restart loses nothing; load_pending() rebuilds them from the database.

Expiry and payment verification race on the same booking. The ledger
settles the race: expiry only proceeds if it can release the holds while
none of them is confirmed, and verification only proceeds if it can promote
holds that still exist. Each side changes the holds and the booking row in
one ledger transaction.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Callable, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.engine import Connection, Engine

from venue_booking.config import EXPIRY_SWEEP_INTERVAL_SECONDS, PAYMENT_REMINDER_INTERVAL_HOURS
from venue_booking.db.readers.bookings import (
    find_overdue_booking_ids,
    find_reminder_due_booking_ids,
    get_pending_deadlines,
)
from venue_booking.exceptions import (
    BookingNotFoundError,
    InvalidTransitionError,
    PermissionDeniedError,
    StaleStateError,
)
from venue_booking.metrics import bookings_expired, payment_reminders, sweep_duration
from venue_booking.services.ledger import AvailabilityLedger
from venue_booking.services.lifecycle import BookingLifecycle
from venue_booking.services.notifications import NotificationDispatcher
from venue_booking.state_machine import AWAITING_PAYMENT, BookingAggregate, BookingEvent
from venue_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

SWEEP_BATCH_SIZE = 50
STALE_RETRIES = 3
SWEEP_JOB_ID = "expiry_sweep"
MISFIRE_GRACE_SECONDS = 60


@dataclass
class SweepReport:
    expired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    reminders_sent: int = 0


class _PaymentCommitted(Exception):
    """A confirmed hold was found inside the expiry transaction."""


class ExpiryScheduler:
    def __init__(
        self,
        engine: Engine,
        ledger: AvailabilityLedger,
        lifecycle: BookingLifecycle,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
        interval_seconds: float = EXPIRY_SWEEP_INTERVAL_SECONDS,
        reminder_interval: timedelta = timedelta(hours=PAYMENT_REMINDER_INTERVAL_HOURS),
    ):
        self._engine = engine
        self._ledger = ledger
        self._lifecycle = lifecycle
        self._notifier = notifier
        self._clock = clock
        self.interval_seconds = interval_seconds
        self.reminder_interval = reminder_interval

        self._deadlines: dict[str, datetime] = {}
        self._deadlines_lock = threading.Lock()
        self._sweep_lock = threading.Lock()
        self._background: Optional[BackgroundScheduler] = None

    # -------------------------------------------------------------------------
    # Deadline index
    # -------------------------------------------------------------------------

    def schedule(self, booking_id: str, deadline: datetime) -> None:
        with self._deadlines_lock:
            self._deadlines[booking_id] = deadline
        self._add_expiry_job(booking_id, deadline)
        logger.debug("expiry_scheduled", booking_id=booking_id, deadline=deadline.isoformat())

    def cancel(self, booking_id: str) -> None:
        with self._deadlines_lock:
            self._deadlines.pop(booking_id, None)
        background = self._background
        if background is not None and background.running:
            try:
                background.remove_job(_expiry_job_id(booking_id))
            except JobLookupError:
                # Already ran, or was never added
                pass

    def next_deadline(self) -> Optional[datetime]:
        with self._deadlines_lock:
            return min(self._deadlines.values(), default=None)

    def load_pending(self) -> int:
        """Rebuild the deadline index (and its jobs) from the database; returns its size."""
        with self._engine.connect() as conn:
            pending = get_pending_deadlines(conn)
        with self._deadlines_lock:
            self._deadlines = dict(pending)
        for booking_id, deadline in pending:
            self._add_expiry_job(booking_id, deadline)
        logger.info("expiry_index_loaded", pending=len(pending))
        return len(pending)

    # -------------------------------------------------------------------------
    # Sweep
    # -------------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Expire every overdue booking, then send due payment reminders.

        Args:
            now: Instant to sweep at; defaults to the scheduler clock

        Returns:
            SweepReport with expired and skipped booking ids
        """
        now = now or self._clock()
        report = SweepReport()
        start_time = time.time()

        with self._sweep_lock:
            seen: set[str] = set()
            while True:
                with self._engine.connect() as conn:
                    batch = [
                        booking_id
                        for booking_id in find_overdue_booking_ids(conn, now, SWEEP_BATCH_SIZE)
                        if booking_id not in seen
                    ]
                if not batch:
                    break
                for booking_id in batch:
                    seen.add(booking_id)
                    if self.expire_booking(booking_id, now):
                        report.expired.append(booking_id)
                    else:
                        report.skipped.append(booking_id)

            report.reminders_sent = self.send_payment_reminders(now)

        sweep_duration.observe(time.time() - start_time)
        if report.expired or report.skipped or report.reminders_sent:
            logger.info(
                "expiry_sweep_completed",
                expired=len(report.expired),
                skipped=len(report.skipped),
                reminders_sent=report.reminders_sent,
            )
        return report

    def expire_booking(self, booking_id: str, now: Optional[datetime] = None) -> bool:
        """
        Expire one booking if it is still awaiting payment past its deadline.

        Returns:
            bool: True when the booking was moved to expired
        """
        now = now or self._clock()

        for _ in range(STALE_RETRIES):
            try:
                booking = self._lifecycle.load(booking_id)
            except BookingNotFoundError:
                self.cancel(booking_id)
                return False

            if booking.status not in AWAITING_PAYMENT:
                self.cancel(booking_id)
                return False
            if not booking.deadline_passed(now):
                return False

            def release_holds(conn: Connection) -> None:
                if not self._ledger.release_unless_promoted(booking_id, conn=conn):
                    raise _PaymentCommitted(booking_id)

            try:
                self._lifecycle.apply(
                    booking,
                    BookingEvent.DEADLINE_REACHED,
                    at=now,
                    before_write=release_holds,
                    transaction=partial(self._ledger.transaction, booking_id),
                )
            except _PaymentCommitted:
                logger.info("expiry_skipped_payment_committed", booking_id=booking_id)
                self.cancel(booking_id)
                return False
            except StaleStateError:
                # Reminder bookkeeping or a payment failure got in first; re-read
                continue

            self.cancel(booking_id)
            bookings_expired.inc()
            logger.info(
                "booking_expired",
                booking_id=booking_id,
                payment_deadline=booking.payment_deadline.isoformat()
                if booking.payment_deadline
                else None,
            )
            return True

        logger.warning("expiry_gave_up", booking_id=booking_id, attempts=STALE_RETRIES)
        return False

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    def _reminder_due(self, booking: BookingAggregate, now: datetime) -> bool:
        if booking.payment_deadline is None or booking.deadline_passed(now):
            return False
        last = booking.last_payment_reminder_sent_at
        if last is None:
            last = booking.payment_deadline - self._lifecycle.payment_window
        return now - last >= self.reminder_interval

    def _record_reminder(self, booking: BookingAggregate, now: datetime) -> BookingAggregate:
        """
        Bump the reminder bookkeeping and notify the customer.

        Raises:
            StaleStateError: the booking changed since it was read
        """
        booking = self._lifecycle.save_fields(
            booking,
            {
                "payment_reminder_count": booking.payment_reminder_count + 1,
                "last_payment_reminder_sent_at": now,
            },
        )
        if self._notifier is not None:
            self._notifier.payment_reminder(booking, now)
        payment_reminders.inc()
        logger.info(
            "payment_reminder_sent",
            booking_id=booking.id,
            reminder_count=booking.payment_reminder_count,
        )
        return booking

    def send_payment_reminders(self, now: Optional[datetime] = None) -> int:
        """
        Remind customers whose payment is still outstanding, once per interval.

        Returns:
            int: number of reminders sent
        """
        now = now or self._clock()
        with self._engine.connect() as conn:
            candidates = find_reminder_due_booking_ids(
                conn, now, now - self.reminder_interval, limit=SWEEP_BATCH_SIZE
            )

        sent = 0
        for booking_id in candidates:
            booking = self._lifecycle.load(booking_id)
            if booking.status not in AWAITING_PAYMENT or not self._reminder_due(booking, now):
                continue
            try:
                self._record_reminder(booking, now)
            except StaleStateError:
                logger.info("payment_reminder_skipped_stale", booking_id=booking_id)
                continue
            sent += 1
        return sent

    def send_payment_reminder(
        self, booking_id: str, customer_id: str, now: Optional[datetime] = None
    ) -> BookingAggregate:
        """
        Send a payment reminder for one booking on the customer's request.

        Not rate limited by the reminder interval, but counted the same way
        so the periodic reminders keep their cadence.

        Raises:
            BookingNotFoundError, PermissionDeniedError
            InvalidTransitionError: booking is not awaiting payment or its deadline passed
            StaleStateError: booking kept changing while the reminder was recorded
        """
        now = now or self._clock()
        booking = self._lifecycle.load(booking_id)
        if booking.customer_id != customer_id:
            raise PermissionDeniedError("Only the customer can request a payment reminder")

        for _ in range(STALE_RETRIES):
            if booking.status not in AWAITING_PAYMENT or booking.deadline_passed(now):
                raise InvalidTransitionError(
                    booking.id,
                    booking.status.value,
                    "payment_reminder",
                    "booking is not awaiting payment",
                )
            try:
                return self._record_reminder(booking, now)
            except StaleStateError:
                booking = self._lifecycle.load(booking_id)

        raise StaleStateError(booking.id, booking.version)

    # -------------------------------------------------------------------------
    # Background jobs
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._background is not None and self._background.running

    def _add_expiry_job(self, booking_id: str, deadline: datetime) -> None:
        background = self._background
        if background is None or not background.running:
            return
        background.add_job(
            self.expire_booking,
            trigger=DateTrigger(run_date=deadline),
            args=[booking_id],
            id=_expiry_job_id(booking_id),
            name=f"Expire booking {booking_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )

    def start(self) -> None:
        """
        Start the background scheduler: one sweep right away (catching
        deadlines missed while the process was down), then every
        interval_seconds, plus a date job per pending deadline.
        """
        if self.running:
            logger.warning("expiry_scheduler_already_running")
            return

        background = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": MISFIRE_GRACE_SECONDS,
            },
        )
        background.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        background.add_job(
            self.sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Expire overdue bookings and send payment reminders",
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        background.start()
        self._background = background

        self.load_pending()
        logger.info("expiry_scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self, wait: bool = True) -> None:
        if not self.running:
            return
        self._background.shutdown(wait=wait)
        self._background = None
        logger.info("expiry_scheduler_stopped")


def _expiry_job_id(booking_id: str) -> str:
    return f"expire:{booking_id}"


def _on_job_event(event: JobExecutionEvent) -> None:
    if event.exception is not None:
        logger.error(
            "expiry_job_failed",
            job_id=event.job_id,
            error=str(event.exception),
            exc_info=event.exception,
        )
    else:
        logger.warning(
            "expiry_job_missed",
            job_id=event.job_id,
            scheduled_run_time=event.scheduled_run_time.isoformat(),
        )
