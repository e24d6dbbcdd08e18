# venue_booking/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from venue_booking.config import ALLOWED_ORIGINS
from venue_booking.logging_config import setup_logging
from venue_booking.middleware import RequestIDMiddleware
from venue_booking.routes.bookings import router as bookings_router
from venue_booking.routes.health import router as health_router
from venue_booking.routes.metrics import router as metrics_router
from venue_booking.routes.payments import router as payments_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Venue Booking Engine",
    description="Reservation and payment lifecycle for multi-date venue bookings",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(bookings_router, tags=["Bookings"])
app.include_router(payments_router, prefix="/payments", tags=["Payments"])


@app.on_event("startup")
def startup_event() -> None:
    """Start the payment-deadline sweeper."""
    from venue_booking.dependencies import get_scheduler

    logger.info("FastAPI application starting up...")
    get_scheduler().start()
    logger.info("FastAPI application initialized")


@app.on_event("shutdown")
def shutdown_event() -> None:
    from venue_booking.dependencies import get_notifier, get_scheduler

    get_scheduler().stop()
    get_notifier().close()
    logger.info("FastAPI application stopped")
