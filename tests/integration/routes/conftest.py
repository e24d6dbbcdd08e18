"""
Fixtures for HTTP-level tests: the real app with its services swapped for the
SQLite-backed harness.
"""

from __future__ import annotations

from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from venue_booking.dependencies import get_booking_service, get_payment_coordinator, get_scheduler
from venue_booking.main import app


@pytest.fixture
def api(harness: Any) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_booking_service] = lambda: harness.bookings
    app.dependency_overrides[get_payment_coordinator] = lambda: harness.payments
    app.dependency_overrides[get_scheduler] = lambda: harness.scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()
