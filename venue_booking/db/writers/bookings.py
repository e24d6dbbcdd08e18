import enum
from typing import Any

import structlog
from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from venue_booking.exceptions import StaleStateError
from venue_booking.metrics import stale_writes
from venue_booking.models.bookings import Booking
from venue_booking.state_machine import BookingAggregate
from venue_booking.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def insert_booking(conn: Connection, booking: BookingAggregate) -> None:
    """
    Insert a new booking row. The pricing snapshot is written here and
    never updated afterwards.

    Args:
        conn: Active database connection (within transaction)
        booking: Aggregate to persist; its version becomes the row version
    """
    now = utc_now()
    conn.execute(
        insert(Booking).values(
            id=booking.id,
            venue_id=booking.venue_id,
            customer_id=booking.customer_id,
            owner_id=booking.owner_id,
            status=booking.status.value,
            version=booking.version,
            dates_timings=[t.to_dict() for t in booking.dates_timings],
            pricing_snapshot=booking.pricing.to_dict(),
            event_type=booking.event_type,
            guest_count=booking.guest_count,
            special_requirements=booking.special_requirements,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            payment_deadline=booking.payment_deadline,
            payment_reminder_count=booking.payment_reminder_count,
            created_at=now,
            updated_at=now,
        )
    )
    booking.created_at = now
    booking.updated_at = now
    logger.debug("booking_inserted", booking_id=booking.id, status=booking.status.value)


def save_booking_changes(
    conn: Connection,
    booking_id: str,
    expected_version: int,
    values: dict[str, Any],
) -> int:
    """
    Write `values` to a booking if its version is still `expected_version`.

    Args:
        conn: Active database connection (within transaction)
        booking_id: Booking to update
        expected_version: Version the caller read
        values: Column values to set; enums are stored by value

    Returns:
        int: The new version

    Raises:
        StaleStateError: the row changed (or vanished) since it was read
    """
    row_values = {
        key: (value.value if isinstance(value, enum.Enum) else value)
        for key, value in values.items()
    }
    row_values["version"] = expected_version + 1
    row_values["updated_at"] = utc_now()

    result = conn.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.version == expected_version)
        .values(**row_values)
    )
    if result.rowcount != 1:
        stale_writes.inc()
        logger.info("booking_write_stale", booking_id=booking_id, expected_version=expected_version)
        raise StaleStateError(booking_id, expected_version)
    return expected_version + 1
