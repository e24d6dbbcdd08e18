"""
Internal helpers shared by the booking and payment route handlers.

Engine errors are translated into HTTP responses in one place so every
endpoint answers the same failure with the same status code.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import HTTPException, status

from venue_booking.exceptions import (
    BookingConflictError,
    BookingEngineError,
    BookingNotFoundError,
    BookingValidationError,
    DatesUnavailableError,
    GatewayError,
    GatewayNotConfiguredError,
    InvalidTransitionError,
    LatePaymentError,
    PermissionDeniedError,
    SignatureMismatchError,
    VenueCatalogError,
    VenueNotFoundError,
)

logger = structlog.get_logger(__name__)

# Checked in order; subclasses before their parents
_STATUS_BY_ERROR: tuple[tuple[type[BookingEngineError], int], ...] = (
    (BookingValidationError, status.HTTP_400_BAD_REQUEST),
    (SignatureMismatchError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (BookingNotFoundError, status.HTTP_404_NOT_FOUND),
    (VenueNotFoundError, status.HTTP_404_NOT_FOUND),
    (BookingConflictError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (LatePaymentError, status.HTTP_409_CONFLICT),
    (VenueCatalogError, status.HTTP_502_BAD_GATEWAY),
    (GatewayError, status.HTTP_502_BAD_GATEWAY),
    (GatewayNotConfiguredError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def error_detail(err: BookingEngineError) -> Any:
    if isinstance(err, DatesUnavailableError):
        return {
            "message": str(err),
            "conflicting_dates": [d.isoformat() for d in err.conflicting_dates],
        }
    return str(err)


def to_http_exception(err: Exception, operation: str, **context: Any) -> HTTPException:
    """
    Map an exception raised by the engine to an HTTPException.

    Unknown exceptions are logged with their traceback and become a 500.

    Args:
        err: The exception raised by a service call
        operation: Short name of the failing operation, used as log event prefix
        **context: Identifiers to log alongside (booking_id, order_id, ...)

    Returns:
        HTTPException ready to raise
    """
    if isinstance(err, BookingEngineError):
        for error_type, status_code in _STATUS_BY_ERROR:
            if isinstance(err, error_type):
                if status_code >= 500:
                    logger.warning(f"{operation}_dependency_failed", error=str(err), **context)
                else:
                    logger.info(
                        f"{operation}_rejected",
                        error_type=type(err).__name__,
                        error=str(err),
                        **context,
                    )
                return HTTPException(status_code=status_code, detail=error_detail(err))

    logger.exception(f"{operation}_failed", error=str(err), **context)
    return HTTPException(status_code=500, detail="Internal server error")
