"""
Prometheus metrics for the booking engine.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from venue_booking.metrics import booking_transitions
    >>> booking_transitions.labels(from_status="pending_payment", to_status="confirmed").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Booking lifecycle
# =============================================================================

booking_transitions = Counter(
    "venue_booking_transitions_total",
    "Booking state transitions applied",
    ["from_status", "to_status"],
)
"""
Counter for applied transitions.

Labels:
    from_status: status before the transition
    to_status: status after the transition
"""

stale_writes = Counter(
    "venue_booking_stale_writes_total",
    "Booking writes rejected by the optimistic version check",
)

late_payments = Counter(
    "venue_booking_late_payments_total",
    "Payments that arrived after their booking expired or was cancelled",
)

# =============================================================================
# Availability ledger
# =============================================================================

hold_attempts = Counter(
    "venue_booking_hold_attempts_total",
    "Attempts to hold venue-dates",
    ["outcome"],
)
"""
Counter for ledger hold attempts.

Labels:
    outcome: held or conflict
"""

holds_released = Counter(
    "venue_booking_holds_released_total",
    "Availability holds released",
)

# =============================================================================
# Expiry sweep
# =============================================================================

sweep_duration = Histogram(
    "venue_booking_sweep_duration_seconds",
    "Duration of expiry sweeps in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, float("inf")),
)

bookings_expired = Counter(
    "venue_booking_bookings_expired_total",
    "Bookings expired because payment was not completed in time",
)

payment_reminders = Counter(
    "venue_booking_payment_reminders_total",
    "Payment reminder notifications queued",
)

# =============================================================================
# External calls
# =============================================================================

gateway_requests = Counter(
    "venue_booking_gateway_requests_total",
    "Payment gateway requests made",
    ["operation", "status_code"],
)

gateway_latency = Histogram(
    "venue_booking_gateway_latency_seconds",
    "Payment gateway request latency in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)

notifications_sent = Counter(
    "venue_booking_notifications_total",
    "Notification deliveries by event type and outcome",
    ["event_type", "outcome"],
)
"""
Counter for notification deliveries.

Labels:
    event_type: notification type (inquiry_accepted, payment_completed, ...)
    outcome: delivered or failed
"""
