"""SQLAlchemy model for venue bookings."""

from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from venue_booking.config import SCHEMA
from venue_booking.models.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Booking(Base):
    """
    ORM model for a reservation request, possibly spanning multiple dates.

    status holds the single BookingStatus value; there are no secondary flags.
    pricing_snapshot is written once at inquiry time and never recomputed.
    version is bumped on every write and checked by every transition
    (optimistic concurrency).
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_status_payment_deadline", "status", "payment_deadline"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True)
    venue_id = Column(String, nullable=False, index=True)
    customer_id = Column(String, nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    status = Column(String(32), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)

    dates_timings = Column(JSONType, nullable=False)
    pricing_snapshot = Column(JSONType, nullable=False)

    event_type = Column(String, nullable=True)
    guest_count = Column(Integer, nullable=True)
    special_requirements = Column(Text, nullable=True)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)

    payment_deadline = Column(DateTime(timezone=True), nullable=True)
    gateway_order_id = Column(String, nullable=True, unique=True)
    order_amount_minor = Column(BigInteger, nullable=True)
    gateway_payment_id = Column(String, nullable=True)
    payment_error_description = Column(Text, nullable=True)
    payment_reminder_count = Column(Integer, nullable=False, default=0)
    last_payment_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
