"""
Exception hierarchy for the booking engine.

Every error the engine raises derives from BookingEngineError so route
handlers can translate the whole family in one place. The intermediate
classes mirror how callers are expected to react:

- BookingValidationError: bad input, rejected before any state change
- BookingConflictError: retry, or pick different dates
- ExternalDependencyError: a collaborator failed; retryable by the customer
- BookingLifecycleError: genuine state inconsistency, logged for operators
"""

from __future__ import annotations

from datetime import date
from typing import Iterable


class BookingEngineError(Exception):
    """Base class for all booking engine errors."""


# =============================================================================
# Validation
# =============================================================================


class BookingValidationError(BookingEngineError):
    """Input rejected before any state was touched."""


class InvalidDateError(BookingValidationError):
    """Booking date is today, in the past, or duplicated."""


class InvalidTimeRangeError(BookingValidationError):
    """time_from is not strictly before time_to."""


class InvalidPriceError(BookingValidationError):
    """Per-day price is negative or not a number."""


# =============================================================================
# Conflicts
# =============================================================================


class BookingConflictError(BookingEngineError):
    """Request lost against concurrent activity."""


class DatesUnavailableError(BookingConflictError):
    def __init__(self, venue_id: str, dates: Iterable[date]):
        self.venue_id = venue_id
        self.conflicting_dates = sorted(set(dates))
        listed = ", ".join(d.isoformat() for d in self.conflicting_dates)
        super().__init__(f"These dates are no longer available: {listed}")


class StaleStateError(BookingConflictError):
    def __init__(self, booking_id: str, expected_version: int):
        self.booking_id = booking_id
        self.expected_version = expected_version
        super().__init__(
            f"Booking {booking_id} changed since it was read (version {expected_version})"
        )


# =============================================================================
# External dependencies
# =============================================================================


class ExternalDependencyError(BookingEngineError):
    """A collaborating service failed or answered unexpectedly."""


class GatewayError(ExternalDependencyError):
    """Payment gateway request failed."""


class GatewayNotConfiguredError(ExternalDependencyError):
    """Gateway credentials are missing."""


class SignatureMismatchError(ExternalDependencyError):
    """Payment callback signature does not match the expected HMAC."""


class VenueCatalogError(ExternalDependencyError):
    """Venue catalog could not be reached or returned garbage."""


# =============================================================================
# Lifecycle
# =============================================================================


class BookingLifecycleError(BookingEngineError):
    """State inconsistency that needs operator attention."""


class InvalidTransitionError(BookingLifecycleError):
    def __init__(self, booking_id: str | None, status: str, event: str, reason: str | None = None):
        self.booking_id = booking_id
        self.status = status
        self.event = event
        self.reason = reason
        message = f"Cannot apply '{event}' to booking {booking_id} in status '{status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class LatePaymentError(BookingLifecycleError):
    def __init__(self, booking_id: str, payment_id: str | None, status: str):
        self.booking_id = booking_id
        self.payment_id = payment_id
        self.status = status
        super().__init__(
            f"Payment {payment_id} for booking {booking_id} arrived after the booking "
            f"became '{status}'; refund must be handled by an operator"
        )


class HoldNotFoundError(BookingLifecycleError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"No availability holds found for booking {booking_id}")


# =============================================================================
# Lookup / authorisation
# =============================================================================


class BookingNotFoundError(BookingEngineError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class VenueNotFoundError(BookingEngineError):
    def __init__(self, venue_id: str):
        self.venue_id = venue_id
        super().__init__(f"Venue {venue_id} not found")


class PermissionDeniedError(BookingEngineError):
    """Actor is not allowed to act on this booking."""
