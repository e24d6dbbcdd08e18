from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from venue_booking.dependencies import get_actor_id, get_booking_service, get_scheduler
from venue_booking.routes._booking_helpers import to_http_exception
from venue_booking.schemas.bookings import (
    AvailabilityResponse,
    BookingListResponse,
    BookingResponse,
    HeldDate,
    InquiryCreatePayload,
    ReasonPayload,
)
from venue_booking.services.bookings import BookingService
from venue_booking.services.expiry import ExpiryScheduler
from venue_booking.state_machine import BookingStatus

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/bookings/inquiries",
    status_code=status.HTTP_201_CREATED,
    response_model=BookingResponse,
)
def create_inquiry(
    payload: InquiryCreatePayload,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Submit a booking inquiry for one or more dates of a venue.

    The dates are held immediately; the booking waits for the owner's answer.

    Returns:
        BookingResponse: the booking in pending_owner_response with its quote
    """
    try:
        booking = service.submit_inquiry(
            customer_id=actor_id,
            venue_id=payload.venue_id,
            dates_timings=[item.to_timing() for item in payload.dates_timings],
            event_type=payload.event_type,
            guest_count=payload.guest_count,
            special_requirements=payload.special_requirements,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
        )
        logger.info("inquiry_created", booking_id=booking.id, venue_id=booking.venue_id)
        return BookingResponse.from_aggregate(booking)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "inquiry_creation", venue_id=payload.venue_id) from e


@router.post("/bookings/{booking_id}/accept", response_model=BookingResponse)
def accept_inquiry(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Owner accepts an inquiry. Starts the payment window.
    """
    try:
        return BookingResponse.from_aggregate(service.accept(booking_id, actor_id))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "inquiry_accept", booking_id=booking_id) from e


@router.post("/bookings/{booking_id}/decline", response_model=BookingResponse)
def decline_inquiry(
    booking_id: str,
    payload: Optional[ReasonPayload] = None,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        reason = payload.reason if payload else None
        return BookingResponse.from_aggregate(service.decline(booking_id, actor_id, reason))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "inquiry_decline", booking_id=booking_id) from e


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    payload: Optional[ReasonPayload] = None,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Cancel a booking that has not been paid yet. Either party may cancel.
    """
    try:
        reason = payload.reason if payload else None
        return BookingResponse.from_aggregate(service.cancel(booking_id, actor_id, reason))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "booking_cancel", booking_id=booking_id) from e


@router.post("/bookings/{booking_id}/send-payment-reminder", response_model=BookingResponse)
def send_payment_reminder(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    scheduler: ExpiryScheduler = Depends(get_scheduler),
) -> BookingResponse:
    """
    Customer asks for a payment reminder now. Answers 409 unless the booking
    is awaiting payment.
    """
    try:
        return BookingResponse.from_aggregate(
            scheduler.send_payment_reminder(booking_id, actor_id)
        )
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "payment_reminder_request", booking_id=booking_id) from e


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking_endpoint(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return BookingResponse.from_aggregate(service.get(booking_id, actor_id))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "booking_fetch", booking_id=booking_id) from e


@router.get("/bookings", response_model=BookingListResponse)
def list_bookings_endpoint(
    role: str = Query("customer", pattern="^(customer|owner)$", description="List as customer or owner"),
    venue_id: Optional[str] = Query(None, description="Only bookings for this venue"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor_id: str = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    """
    List the caller's bookings, newest first.

    As a customer the caller sees the bookings they made; as an owner, the
    bookings made for their venues.
    """
    try:
        bookings = service.search(
            customer_id=actor_id if role == "customer" else None,
            owner_id=actor_id if role == "owner" else None,
            venue_id=venue_id,
            status=booking_status,
            limit=limit,
            offset=offset,
        )
        return BookingListResponse(
            bookings=[BookingResponse.from_aggregate(b) for b in bookings],
            limit=limit,
            offset=offset,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "booking_list") from e


@router.get("/venues/{venue_id}/availability", response_model=AvailabilityResponse)
def venue_availability(
    venue_id: str,
    start: date = Query(..., description="First date of the range (inclusive)"),
    end: date = Query(..., description="Last date of the range (inclusive)"),
    service: BookingService = Depends(get_booking_service),
) -> AvailabilityResponse:
    """
    Dates of a venue that are held or confirmed within [start, end].
    """
    try:
        holds = service.availability(venue_id, start, end)
        return AvailabilityResponse(
            venue_id=venue_id,
            start=start,
            end=end,
            held_dates=[HeldDate.from_record(h) for h in holds],
        )
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "availability_fetch", venue_id=venue_id) from e
