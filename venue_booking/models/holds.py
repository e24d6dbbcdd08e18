"""SQLAlchemy model for availability holds."""

from sqlalchemy import Column, Date, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from venue_booking.config import SCHEMA
from venue_booking.models.base import Base

HOLD_SOFT = "soft"
HOLD_CONFIRMED = "confirmed"


class AvailabilityHold(Base):
    """
    ORM model for a claimed (venue, date) pair.

    A row exists only while the hold is active; releasing deletes it. The
    unique constraint on (venue_id, event_date) is what guarantees at most one
    active hold per venue-date across every server instance.
    """

    __tablename__ = "availability_holds"
    __table_args__ = (
        UniqueConstraint("venue_id", "event_date", name="uq_availability_holds_venue_date"),
        {"schema": SCHEMA},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    venue_id = Column(String, nullable=False)
    event_date = Column(Date, nullable=False)
    booking_id = Column(String(36), nullable=False, index=True)
    kind = Column(String(16), nullable=False)  # soft / confirmed
    expires_at = Column(DateTime(timezone=True), nullable=True)  # soft only
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
