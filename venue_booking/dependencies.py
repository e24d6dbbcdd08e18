"""
FastAPI dependency injection providers.

The booking services are process-wide singletons built lazily around the
module-level engine. Routes receive them through Depends(), so tests can swap
any of them with app.dependency_overrides.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Generator

from fastapi import Header, HTTPException, status
from sqlalchemy.engine import Engine

from venue_booking.db.engine import engine
from venue_booking.network.gateway import RazorpayGateway
from venue_booking.network.notifications import NotificationServiceClient
from venue_booking.network.venues import VenueCatalogClient
from venue_booking.pricing import PricingCalculator
from venue_booking.services.bookings import BookingService
from venue_booking.services.expiry import ExpiryScheduler
from venue_booking.services.ledger import AvailabilityLedger
from venue_booking.services.lifecycle import BookingLifecycle
from venue_booking.services.notifications import NotificationDispatcher
from venue_booking.services.payments import PaymentCoordinator

NOTIFICATION_WORKERS = 4


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine
    """
    yield engine


def get_actor_id(x_user_id: str | None = Header(None)) -> str:
    """
    Id of the authenticated caller, set by the upstream auth gateway.

    Raises:
        HTTPException: 401 when the header is missing
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return x_user_id


@lru_cache(maxsize=1)
def get_ledger() -> AvailabilityLedger:
    return AvailabilityLedger(engine)


@lru_cache(maxsize=1)
def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher(
        NotificationServiceClient(),
        executor=ThreadPoolExecutor(
            max_workers=NOTIFICATION_WORKERS, thread_name_prefix="notifications"
        ),
    )


@lru_cache(maxsize=1)
def get_lifecycle() -> BookingLifecycle:
    return BookingLifecycle(engine, notifier=get_notifier())


@lru_cache(maxsize=1)
def get_scheduler() -> ExpiryScheduler:
    return ExpiryScheduler(engine, get_ledger(), get_lifecycle(), notifier=get_notifier())


@lru_cache(maxsize=1)
def get_booking_service() -> BookingService:
    return BookingService(
        engine,
        ledger=get_ledger(),
        lifecycle=get_lifecycle(),
        venues=VenueCatalogClient(),
        calculator=PricingCalculator(),
        scheduler=get_scheduler(),
    )


@lru_cache(maxsize=1)
def get_payment_coordinator() -> PaymentCoordinator:
    return PaymentCoordinator(
        ledger=get_ledger(),
        lifecycle=get_lifecycle(),
        gateway=RazorpayGateway(),
        scheduler=get_scheduler(),
    )
