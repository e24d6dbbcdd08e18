import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from venue_booking.dependencies import get_actor_id, get_payment_coordinator
from venue_booking.routes._booking_helpers import to_http_exception
from venue_booking.schemas.bookings import BookingResponse
from venue_booking.schemas.payments import (
    OrderCreatePayload,
    OrderResponse,
    PaymentFailedPayload,
    PaymentStatusResponse,
    PaymentVerifyPayload,
    VerifyResponse,
)
from venue_booking.services.payments import PaymentCoordinator

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/orders", status_code=status.HTTP_201_CREATED, response_model=OrderResponse)
def create_order(
    payload: OrderCreatePayload,
    actor_id: str = Depends(get_actor_id),
    payments: PaymentCoordinator = Depends(get_payment_coordinator),
) -> OrderResponse:
    """
    Create the gateway order for a booking awaiting payment.

    Returns:
        OrderResponse: order id, amount in minor units and the public gateway key
    """
    try:
        handle = payments.create_order(payload.booking_id, actor_id)
        logger.info("payment_order_issued", booking_id=handle.booking_id, order_id=handle.order_id)
        return OrderResponse.from_handle(handle)
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "order_creation", booking_id=payload.booking_id) from e


@router.post("/verify", response_model=VerifyResponse)
def verify_payment(
    payload: PaymentVerifyPayload,
    payments: PaymentCoordinator = Depends(get_payment_coordinator),
) -> VerifyResponse:
    """
    Verify the gateway's payment callback and confirm the booking.

    A mismatched signature answers 400 and changes nothing. A payment that
    arrives after the booking expired or was cancelled answers 409.
    """
    try:
        result = payments.verify(payload.order_id, payload.payment_id, payload.signature)
        return VerifyResponse(
            booking_id=result.booking_id,
            status=result.status,
            payment_id=result.payment_id,
            already_confirmed=result.already_confirmed,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(
            e, "payment_verification", order_id=payload.order_id, payment_id=payload.payment_id
        ) from e


@router.post("/failed", response_model=BookingResponse)
def payment_failed(
    payload: PaymentFailedPayload,
    actor_id: str = Depends(get_actor_id),
    payments: PaymentCoordinator = Depends(get_payment_coordinator),
) -> BookingResponse:
    try:
        booking = payments.record_failure(
            payload.order_id, actor_id, payload.payment_id, payload.error_description
        )
        return BookingResponse.from_aggregate(booking)
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "payment_failure_recording", order_id=payload.order_id) from e


@router.get("/status/{booking_id}", response_model=PaymentStatusResponse)
def payment_status(
    booking_id: str,
    actor_id: str = Depends(get_actor_id),
    payments: PaymentCoordinator = Depends(get_payment_coordinator),
) -> PaymentStatusResponse:
    try:
        return PaymentStatusResponse.from_status(payments.status(booking_id, actor_id))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "payment_status_fetch", booking_id=booking_id) from e
