from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from venue_booking.services.payments import OrderHandle, PaymentStatus
from venue_booking.state_machine import BookingStatus


class OrderCreatePayload(BaseModel):
    booking_id: str = Field(..., description="Booking to pay for")


class OrderResponse(BaseModel):
    booking_id: str
    order_id: str
    amount: int = Field(..., description="Amount in the currency's minor unit")
    currency: str
    key: Optional[str] = Field(None, description="Public gateway key for the checkout widget")
    payment_deadline: Optional[datetime] = None

    @classmethod
    def from_handle(cls, handle: OrderHandle) -> "OrderResponse":
        return cls(
            booking_id=handle.booking_id,
            order_id=handle.order_id,
            amount=handle.amount_minor,
            currency=handle.currency,
            key=handle.gateway_key,
            payment_deadline=handle.payment_deadline,
        )


class PaymentVerifyPayload(BaseModel):
    """Fields delivered by the gateway checkout callback."""

    order_id: str = Field(..., description="Gateway order id")
    payment_id: str = Field(..., description="Gateway payment id")
    signature: str = Field(..., description="HMAC-SHA256 of 'order_id|payment_id'")


class PaymentFailedPayload(BaseModel):
    order_id: str = Field(..., description="Gateway order id")
    payment_id: Optional[str] = Field(None, description="Gateway payment id, when one was created")
    error_description: Optional[str] = Field(None, description="Gateway error description")


class VerifyResponse(BaseModel):
    booking_id: str
    status: BookingStatus
    payment_id: str
    already_confirmed: bool = False


class PaymentStatusResponse(BaseModel):
    booking_id: str
    status: BookingStatus
    payment_deadline: Optional[datetime] = None
    seconds_remaining: Optional[int] = None
    order_id: Optional[str] = None
    amount: int
    currency: str
    payment_id: Optional[str] = None
    error_description: Optional[str] = None
    reminder_count: int = 0

    @classmethod
    def from_status(cls, status: PaymentStatus) -> "PaymentStatusResponse":
        return cls(
            booking_id=status.booking_id,
            status=status.status,
            payment_deadline=status.payment_deadline,
            seconds_remaining=status.seconds_remaining,
            order_id=status.order_id,
            amount=status.amount_minor,
            currency=status.currency,
            payment_id=status.payment_id,
            error_description=status.error_description,
            reminder_count=status.reminder_count,
        )
