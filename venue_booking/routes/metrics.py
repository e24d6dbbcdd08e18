"""
Prometheus scrape endpoint.

Example:
    GET /metrics

    # HELP venue_booking_transitions_total Booking state transitions applied
    # TYPE venue_booking_transitions_total counter
    venue_booking_transitions_total{from_status="pending_payment",to_status="confirmed"} 42.0
    # HELP venue_booking_hold_attempts_total Attempts to hold venue-dates
    # TYPE venue_booking_hold_attempts_total counter
    venue_booking_hold_attempts_total{outcome="conflict"} 3.0
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Response:
    """Booking, ledger, sweep, gateway and notification metrics in text exposition format."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
