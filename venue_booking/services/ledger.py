"""
Availability ledger: the authoritative record of claimed venue-dates.

Correctness rests on two layers:

- The (venue_id, event_date) unique constraint on availability_holds, which
  holds across every process sharing the database.
- A striped in-process lock keyed by (venue_id, date), so that requests
  served by the same process serialize before touching the database and do
  not have to rely on constraint violations to resolve the common case.

Locks are held only for one database transaction (the ledger's own, or the
one a caller opens with transaction() to write its booking row alongside the
hold change) and never across external I/O. They are always acquired in
stripe order, so two batches touching overlapping dates cannot deadlock.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Iterator, Sequence, Union

import structlog
from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from venue_booking.exceptions import HoldNotFoundError
from venue_booking.metrics import hold_attempts, holds_released
from venue_booking.models.holds import HOLD_CONFIRMED, HOLD_SOFT, AvailabilityHold
from venue_booking.utils.datetime import ensure_utc

logger = structlog.get_logger(__name__)

LOCK_STRIPES = 256


@dataclass(frozen=True)
class Held:
    booking_id: str
    venue_id: str
    dates: tuple[date, ...]

    ok = True


@dataclass(frozen=True)
class Conflict:
    venue_id: str
    conflicting_dates: tuple[date, ...]

    ok = False


HoldResult = Union[Held, Conflict]


@dataclass(frozen=True)
class HoldRecord:
    venue_id: str
    event_date: date
    booking_id: str
    kind: str
    expires_at: datetime | None


class KeyLocks:
    """
    Fixed pool of locks addressed by hashing a (venue_id, date) key.

    Two different keys may share a stripe; that only costs some extra
    serialization, never correctness.
    """

    def __init__(self, stripes: int = LOCK_STRIPES):
        self._locks = [threading.Lock() for _ in range(stripes)]

    def _stripes_for(self, keys: Iterable[tuple[str, date]]) -> list[int]:
        return sorted({hash(key) % len(self._locks) for key in keys})

    @contextmanager
    def acquire(self, keys: Iterable[tuple[str, date]]) -> Iterator[None]:
        stripes = self._stripes_for(keys)
        acquired: list[int] = []
        try:
            for index in stripes:
                self._locks[index].acquire()
                acquired.append(index)
            yield
        finally:
            for index in reversed(acquired):
                self._locks[index].release()


def _row_to_record(row) -> HoldRecord:
    return HoldRecord(
        venue_id=row.venue_id,
        event_date=row.event_date,
        booking_id=row.booking_id,
        kind=row.kind,
        expires_at=ensure_utc(row.expires_at),
    )


class AvailabilityLedger:
    """Places, promotes and releases holds on (venue, date) pairs."""

    def __init__(self, engine: Engine, locks: KeyLocks | None = None):
        self._engine = engine
        self._locks = locks or KeyLocks()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _conflicting_dates(
        self, conn: Connection, venue_id: str, dates: Sequence[date]
    ) -> tuple[date, ...]:
        result = conn.execute(
            select(AvailabilityHold.event_date).where(
                AvailabilityHold.venue_id == venue_id,
                AvailabilityHold.event_date.in_(list(dates)),
            )
        )
        return tuple(sorted(set(result.scalars().all())))

    def _keys_for_booking(self, conn: Connection, booking_id: str) -> list[tuple[str, date]]:
        result = conn.execute(
            select(AvailabilityHold.venue_id, AvailabilityHold.event_date).where(
                AvailabilityHold.booking_id == booking_id
            )
        )
        return [(row.venue_id, row.event_date) for row in result]

    def holds_for_booking(self, booking_id: str) -> list[HoldRecord]:
        with self._engine.connect() as conn:
            result = conn.execute(
                select(AvailabilityHold)
                .where(AvailabilityHold.booking_id == booking_id)
                .order_by(AvailabilityHold.event_date)
            )
            return [_row_to_record(row) for row in result]

    def holds_for_venue(self, venue_id: str, start: date, end: date) -> list[HoldRecord]:
        """Active holds for `venue_id` with start <= date <= end."""
        with self._engine.connect() as conn:
            result = conn.execute(
                select(AvailabilityHold)
                .where(
                    AvailabilityHold.venue_id == venue_id,
                    AvailabilityHold.event_date >= start,
                    AvailabilityHold.event_date <= end,
                )
                .order_by(AvailabilityHold.event_date)
            )
            return [_row_to_record(row) for row in result]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @contextmanager
    def transaction(self, booking_id: str) -> Iterator[Connection]:
        """
        Open a transaction while holding the locks of `booking_id`'s dates.

        The locks stay held until the transaction has committed or rolled
        back, so hold changes made on the yielded connection, and any booking
        row written alongside them, become visible to other requests at once.
        Mutators called with this connection skip their own locking.
        """
        with self._engine.connect() as conn:
            keys = self._keys_for_booking(conn, booking_id)
        with self._locks.acquire(keys):
            with self._engine.begin() as conn:
                yield conn

    def try_hold(
        self,
        venue_id: str,
        dates: Sequence[date],
        booking_id: str,
        expires_at: datetime | None = None,
    ) -> HoldResult:
        """
        Claim every date in `dates` for `booking_id` as soft holds, or none.

        Returns:
            Held when all dates were free and are now claimed; Conflict listing
            the dates already held otherwise. A Conflict leaves no rows behind.
        """
        requested = tuple(sorted(set(dates)))
        keys = [(venue_id, d) for d in requested]

        with self._locks.acquire(keys):
            try:
                with self._engine.begin() as conn:
                    taken = self._conflicting_dates(conn, venue_id, requested)
                    if not taken:
                        conn.execute(
                            insert(AvailabilityHold),
                            [
                                {
                                    "venue_id": venue_id,
                                    "event_date": d,
                                    "booking_id": booking_id,
                                    "kind": HOLD_SOFT,
                                    "expires_at": expires_at,
                                }
                                for d in requested
                            ],
                        )
            except IntegrityError:
                # Another instance claimed a date between our read and insert
                with self._engine.connect() as conn:
                    taken = self._conflicting_dates(conn, venue_id, requested)
                if not taken:
                    raise

        if taken:
            hold_attempts.labels(outcome="conflict").inc()
            logger.info(
                "hold_conflict",
                venue_id=venue_id,
                booking_id=booking_id,
                conflicting_dates=[d.isoformat() for d in taken],
            )
            return Conflict(venue_id=venue_id, conflicting_dates=taken)

        hold_attempts.labels(outcome="held").inc()
        logger.info(
            "hold_placed",
            venue_id=venue_id,
            booking_id=booking_id,
            dates=[d.isoformat() for d in requested],
        )
        return Held(booking_id=booking_id, venue_id=venue_id, dates=requested)

    @contextmanager
    def _within(self, booking_id: str, conn: Connection | None) -> Iterator[Connection]:
        if conn is not None:
            yield conn
            return
        with self.transaction(booking_id) as own:
            yield own

    def extend(self, booking_id: str, expires_at: datetime, conn: Connection | None = None) -> int:
        """Set the expiry of a booking's soft holds; returns rows touched."""
        with self._within(booking_id, conn) as tx:
            result = tx.execute(
                update(AvailabilityHold)
                .where(
                    AvailabilityHold.booking_id == booking_id,
                    AvailabilityHold.kind == HOLD_SOFT,
                )
                .values(expires_at=expires_at)
            )
            return result.rowcount

    def promote(self, booking_id: str, conn: Connection | None = None) -> None:
        """
        Convert a booking's soft holds to confirmed holds.

        Raises:
            HoldNotFoundError: the holds were already released (e.g. expiry won)
        """
        with self._within(booking_id, conn) as tx:
            result = tx.execute(
                update(AvailabilityHold)
                .where(AvailabilityHold.booking_id == booking_id)
                .values(kind=HOLD_CONFIRMED, expires_at=None)
            )
            count = result.rowcount
            if not count:
                raise HoldNotFoundError(booking_id)

        logger.info("holds_promoted", booking_id=booking_id, count=count)

    def release(self, booking_id: str, conn: Connection | None = None) -> int:
        """
        Remove every hold tied to `booking_id`. Idempotent.

        Returns:
            int: number of holds removed (0 when there were none)
        """
        with self._within(booking_id, conn) as tx:
            result = tx.execute(
                delete(AvailabilityHold).where(AvailabilityHold.booking_id == booking_id)
            )
            released = result.rowcount

        if released:
            holds_released.inc(released)
            logger.info("holds_released", booking_id=booking_id, count=released)
        return released

    def release_unless_promoted(self, booking_id: str, conn: Connection | None = None) -> bool:
        """
        Release a booking's holds unless any of them is already confirmed.

        Used by expiry: a confirmed hold means a payment verification
        committed first, so the sweep must back off.

        Returns:
            bool: False when a confirmed hold was found (nothing released)
        """
        with self._within(booking_id, conn) as tx:
            kinds = tx.execute(
                select(AvailabilityHold.kind).where(AvailabilityHold.booking_id == booking_id)
            ).scalars().all()
            if HOLD_CONFIRMED in kinds:
                return False
            result = tx.execute(
                delete(AvailabilityHold).where(AvailabilityHold.booking_id == booking_id)
            )
            released = result.rowcount

        if released:
            holds_released.inc(released)
            logger.info("holds_released", booking_id=booking_id, count=released, reason="expiry")
        return True
