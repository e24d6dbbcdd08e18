from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.engine import Connection

from venue_booking.models.bookings import Booking
from venue_booking.pricing import DateTiming, PricingSnapshot
from venue_booking.state_machine import AWAITING_PAYMENT, BookingAggregate, BookingStatus
from venue_booking.utils.datetime import ensure_utc

_DATETIME_FIELDS = (
    "payment_deadline",
    "last_payment_reminder_sent_at",
    "confirmed_at",
    "cancelled_at",
    "created_at",
    "updated_at",
)

_PLAIN_FIELDS = (
    "id",
    "venue_id",
    "customer_id",
    "owner_id",
    "version",
    "event_type",
    "guest_count",
    "special_requirements",
    "customer_name",
    "customer_email",
    "gateway_order_id",
    "order_amount_minor",
    "gateway_payment_id",
    "payment_error_description",
    "payment_reminder_count",
    "cancellation_reason",
    "cancelled_by",
)


def row_to_aggregate(row: Any) -> BookingAggregate:
    """
    Build a BookingAggregate from a bookings row mapping.

    Args:
        row: Row mapping with the bookings table columns

    Returns:
        BookingAggregate with timestamps normalized to aware UTC
    """
    values: dict[str, Any] = {name: row[name] for name in _PLAIN_FIELDS}
    values.update({name: ensure_utc(row[name]) for name in _DATETIME_FIELDS})
    values["status"] = BookingStatus(row["status"])
    values["dates_timings"] = [DateTiming.from_dict(item) for item in row["dates_timings"]]
    values["pricing"] = PricingSnapshot.from_dict(row["pricing_snapshot"])
    return BookingAggregate(**values)


def get_booking(conn: Connection, booking_id: str) -> Optional[BookingAggregate]:
    """
    Fetch a booking by id.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        booking_id (str): Booking id.

    Returns:
        Optional[BookingAggregate]: The booking, or None if not found.
    """
    row = conn.execute(select(Booking).where(Booking.id == booking_id)).mappings().fetchone()
    return row_to_aggregate(row) if row else None


def get_booking_by_order(conn: Connection, order_id: str) -> Optional[BookingAggregate]:
    """
    Fetch the booking a gateway order was created for.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        order_id (str): Gateway order id.

    Returns:
        Optional[BookingAggregate]: The booking, or None.
    """
    row = (
        conn.execute(select(Booking).where(Booking.gateway_order_id == order_id))
        .mappings()
        .fetchone()
    )
    return row_to_aggregate(row) if row else None


def list_bookings(
    conn: Connection,
    customer_id: Optional[str] = None,
    owner_id: Optional[str] = None,
    venue_id: Optional[str] = None,
    status: Optional[BookingStatus] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[BookingAggregate]:
    """
    List bookings newest first, filtered by any combination of parties and status.
    """
    stmt = select(Booking)
    if customer_id:
        stmt = stmt.where(Booking.customer_id == customer_id)
    if owner_id:
        stmt = stmt.where(Booking.owner_id == owner_id)
    if venue_id:
        stmt = stmt.where(Booking.venue_id == venue_id)
    if status:
        stmt = stmt.where(Booking.status == status.value)
    stmt = stmt.order_by(Booking.created_at.desc(), Booking.id).limit(limit).offset(offset)
    return [row_to_aggregate(row) for row in conn.execute(stmt).mappings()]


def find_overdue_booking_ids(conn: Connection, now: datetime, limit: int = 50) -> list[str]:
    """
    Ids of bookings still awaiting payment whose deadline is before `now`.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        now (datetime): Current instant (aware UTC).
        limit (int): Max ids per call.

    Returns:
        list[str]: Booking ids, oldest deadline first.
    """
    result = conn.execute(
        select(Booking.id)
        .where(
            Booking.status.in_([s.value for s in AWAITING_PAYMENT]),
            Booking.payment_deadline < now,
        )
        .order_by(Booking.payment_deadline)
        .limit(limit)
    )
    return list(result.scalars().all())


def find_reminder_due_booking_ids(
    conn: Connection, now: datetime, last_sent_before: datetime, limit: int = 50
) -> list[str]:
    """
    Ids of bookings awaiting payment, deadline still ahead, whose last
    reminder was sent at or before `last_sent_before`, or never.
    """
    result = conn.execute(
        select(Booking.id)
        .where(
            Booking.status.in_([s.value for s in AWAITING_PAYMENT]),
            Booking.payment_deadline > now,
            or_(
                Booking.last_payment_reminder_sent_at.is_(None),
                Booking.last_payment_reminder_sent_at <= last_sent_before,
            ),
        )
        .order_by(Booking.payment_deadline)
        .limit(limit)
    )
    return list(result.scalars().all())


def get_pending_deadlines(conn: Connection) -> list[tuple[str, datetime]]:
    """(booking_id, payment_deadline) for every booking awaiting payment."""
    result = conn.execute(
        select(Booking.id, Booking.payment_deadline).where(
            Booking.status.in_([s.value for s in AWAITING_PAYMENT]),
            Booking.payment_deadline.is_not(None),
        )
    )
    return [(row.id, ensure_utc(row.payment_deadline)) for row in result]
