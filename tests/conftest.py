"""
Shared fixtures for the booking engine test suite.

The environment is configured before anything from venue_booking is imported,
since venue_booking.config validates it at import time.
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ALLOWED_ORIGINS"] = "*"
os.environ.pop("DB_SCHEMA", None)
os.environ.pop("NOTIFICATION_SERVICE_URL", None)

from dataclasses import dataclass  # noqa: E402
from datetime import date, datetime, time, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any, Callable, Generator  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from venue_booking.db.engine import build_engine  # noqa: E402
from venue_booking.exceptions import VenueNotFoundError  # noqa: E402
from venue_booking.models.base import Base  # noqa: E402
from venue_booking.models.bookings import Booking  # noqa: E402, F401
from venue_booking.models.holds import AvailabilityHold  # noqa: E402, F401
from venue_booking.network.gateway import GatewayOrder, RazorpayGateway, compute_signature  # noqa: E402
from venue_booking.network.venues import Venue  # noqa: E402
from venue_booking.pricing import DateTiming, PricingCalculator  # noqa: E402
from venue_booking.services.bookings import BookingService  # noqa: E402
from venue_booking.services.expiry import ExpiryScheduler  # noqa: E402
from venue_booking.services.ledger import AvailabilityLedger  # noqa: E402
from venue_booking.services.lifecycle import BookingLifecycle  # noqa: E402
from venue_booking.services.notifications import NotificationDispatcher  # noqa: E402
from venue_booking.services.payments import PaymentCoordinator  # noqa: E402

GATEWAY_SECRET = "test_secret"
VENUE_ID = "venue-1"
OWNER_ID = "owner-1"
CUSTOMER_ID = "customer-1"
OTHER_CUSTOMER_ID = "customer-2"

# 12:00 in Asia/Kolkata on 2026-03-01
START = datetime(2026, 3, 1, 6, 30, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingSender:
    """Notification sender that records events and can fail on demand."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.failures_left = 0
        self.calls = 0

    def send(self, event: dict[str, Any]) -> None:
        self.calls += 1
        if self.failures_left > 0:
            self.failures_left -= 1
            raise ConnectionError("notification service unavailable")
        self.events.append(event)

    def types(self, recipient_id: str | None = None) -> list[str]:
        return [
            e["type"]
            for e in self.events
            if recipient_id is None or e["recipient_id"] == recipient_id
        ]


class FakeVenues:
    def __init__(self, venues: dict[str, Venue]):
        self.venues = venues
        self.lookups = 0

    def get_venue(self, venue_id: str) -> Venue:
        self.lookups += 1
        if venue_id not in self.venues:
            raise VenueNotFoundError(venue_id)
        return self.venues[venue_id]


class StubGateway(RazorpayGateway):
    """Gateway whose order creation is answered locally."""

    def __init__(self) -> None:
        super().__init__(
            key_id="rzp_test_key",
            key_secret=GATEWAY_SECRET,
            base_url="https://gateway.test/v1/",
        )
        self.orders: list[GatewayOrder] = []

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        order = GatewayOrder(
            order_id=f"order_{len(self.orders) + 1}",
            amount_minor=amount_minor,
            currency=currency,
            receipt=receipt,
        )
        self.orders.append(order)
        return order


@dataclass
class EngineHarness:
    engine: Engine
    clock: FakeClock
    sender: RecordingSender
    venues: FakeVenues
    gateway: StubGateway
    ledger: AvailabilityLedger
    lifecycle: BookingLifecycle
    scheduler: ExpiryScheduler
    bookings: BookingService
    payments: PaymentCoordinator


@pytest.fixture
def db_engine(tmp_path: Any) -> Generator[Engine, None, None]:
    """Throwaway SQLite database with the booking tables created."""
    engine = build_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def harness(db_engine: Engine, clock: FakeClock, sender: RecordingSender) -> EngineHarness:
    """Fully wired booking engine on SQLite with a fake clock and inline notifications."""
    venues = FakeVenues(
        {
            VENUE_ID: Venue(venue_id=VENUE_ID, price_per_day=Decimal("45000"), owner_id=OWNER_ID),
        }
    )
    gateway = StubGateway()
    notifier = NotificationDispatcher(sender, sleep=lambda _: None)
    ledger = AvailabilityLedger(db_engine)
    lifecycle = BookingLifecycle(db_engine, notifier=notifier, clock=clock)
    scheduler = ExpiryScheduler(db_engine, ledger, lifecycle, notifier=notifier, clock=clock)
    bookings = BookingService(
        db_engine,
        ledger=ledger,
        lifecycle=lifecycle,
        venues=venues,
        calculator=PricingCalculator(clock=clock),
        scheduler=scheduler,
    )
    payments = PaymentCoordinator(ledger, lifecycle, gateway, scheduler=scheduler)
    return EngineHarness(
        engine=db_engine,
        clock=clock,
        sender=sender,
        venues=venues,
        gateway=gateway,
        ledger=ledger,
        lifecycle=lifecycle,
        scheduler=scheduler,
        bookings=bookings,
        payments=payments,
    )


@pytest.fixture
def timings() -> Callable[..., list[DateTiming]]:
    """Build DateTimings for the given days of March 2026, 10:00-18:00."""

    def _build(*days: int) -> list[DateTiming]:
        return [DateTiming(date(2026, 3, day), time(10, 0), time(18, 0)) for day in days]

    return _build


@pytest.fixture
def sign() -> Callable[[str, str], str]:
    """Signature the gateway would send for (order_id, payment_id)."""

    def _sign(order_id: str, payment_id: str) -> str:
        return compute_signature(GATEWAY_SECRET, order_id, payment_id)

    return _sign
