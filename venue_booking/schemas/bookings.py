from __future__ import annotations

import datetime as dt
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from venue_booking.pricing import DateTiming, PricingSnapshot
from venue_booking.services.ledger import HoldRecord
from venue_booking.state_machine import BookingAggregate, BookingStatus


class DateTimingPayload(BaseModel):
    date: dt.date = Field(..., description="Event date (YYYY-MM-DD)")
    time_from: time = Field(..., description="Start time on that date (HH:MM)")
    time_to: time = Field(..., description="End time on that date (HH:MM)")

    def to_timing(self) -> DateTiming:
        return DateTiming(date=self.date, time_from=self.time_from, time_to=self.time_to)


class InquiryCreatePayload(BaseModel):
    """
    Schema for submitting a booking inquiry. The customer is the
    authenticated caller; price and owner come from the venue catalog.
    """

    venue_id: str = Field(..., description="Venue to book")
    dates_timings: list[DateTimingPayload] = Field(..., description="Requested dates with times")
    event_type: Optional[str] = Field(None, description="Kind of event (wedding, conference, ...)")
    guest_count: Optional[int] = Field(None, ge=1, description="Expected number of guests")
    special_requirements: Optional[str] = Field(None, description="Free-text requests for the owner")
    customer_name: Optional[str] = Field(None, description="Customer display name")
    customer_email: Optional[str] = Field(None, description="Customer contact email")


class ReasonPayload(BaseModel):
    """Optional reason given when declining or cancelling."""

    reason: Optional[str] = Field(None, max_length=500, description="Why the booking is ending")


class PricingView(BaseModel):
    price_per_day: str
    total_days: int
    base_cost: str
    platform_fee: str
    tax: str
    grand_total: str
    grand_total_minor: int
    currency: str

    @classmethod
    def from_snapshot(cls, snapshot: PricingSnapshot) -> "PricingView":
        return cls(
            total_days=snapshot.total_days,
            grand_total_minor=snapshot.grand_total_minor,
            currency=snapshot.currency,
            **snapshot.display(),
        )


class BookingResponse(BaseModel):
    id: str
    venue_id: str
    customer_id: str
    owner_id: str
    status: BookingStatus
    dates_timings: list[DateTimingPayload]
    pricing: PricingView
    event_type: Optional[str] = None
    guest_count: Optional[int] = None
    special_requirements: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    payment_deadline: Optional[datetime] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    payment_error_description: Optional[str] = None
    payment_reminder_count: int = 0
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_aggregate(cls, booking: BookingAggregate) -> "BookingResponse":
        return cls(
            id=booking.id,
            venue_id=booking.venue_id,
            customer_id=booking.customer_id,
            owner_id=booking.owner_id,
            status=booking.status,
            dates_timings=[
                DateTimingPayload(date=t.date, time_from=t.time_from, time_to=t.time_to)
                for t in booking.dates_timings
            ],
            pricing=PricingView.from_snapshot(booking.pricing),
            event_type=booking.event_type,
            guest_count=booking.guest_count,
            special_requirements=booking.special_requirements,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            payment_deadline=booking.payment_deadline,
            gateway_order_id=booking.gateway_order_id,
            gateway_payment_id=booking.gateway_payment_id,
            payment_error_description=booking.payment_error_description,
            payment_reminder_count=booking.payment_reminder_count,
            confirmed_at=booking.confirmed_at,
            cancelled_at=booking.cancelled_at,
            cancellation_reason=booking.cancellation_reason,
            cancelled_by=booking.cancelled_by,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    limit: int
    offset: int


class HeldDate(BaseModel):
    date: dt.date
    kind: str
    expires_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: HoldRecord) -> "HeldDate":
        return cls(date=record.event_date, kind=record.kind, expires_at=record.expires_at)


class AvailabilityResponse(BaseModel):
    venue_id: str
    start: date
    end: date
    held_dates: list[HeldDate]
