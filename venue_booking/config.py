import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

SCHEMA = os.getenv("DB_SCHEMA") or None

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# Pricing
CURRENCY = os.getenv("CURRENCY", "INR")
VENUE_TIMEZONE = os.getenv("VENUE_TIMEZONE", "Asia/Kolkata")
PLATFORM_FEE_RATE = Decimal(os.getenv("PLATFORM_FEE_RATE", "0.10"))
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.18"))

# Booking lifecycle
PAYMENT_WINDOW_HOURS = int(os.getenv("PAYMENT_WINDOW_HOURS", "24"))
EXPIRY_SWEEP_INTERVAL_SECONDS = float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "60"))
PAYMENT_REMINDER_INTERVAL_HOURS = int(os.getenv("PAYMENT_REMINDER_INTERVAL_HOURS", "6"))

# Payment gateway
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
RAZORPAY_BASE_URL = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1/")
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

# Collaborating services
VENUE_CATALOG_URL = os.getenv("VENUE_CATALOG_URL")
VENUE_CACHE_TTL_SECONDS = int(os.getenv("VENUE_CACHE_TTL_SECONDS", "60"))
NOTIFICATION_SERVICE_URL = os.getenv("NOTIFICATION_SERVICE_URL")
NOTIFICATION_MAX_ATTEMPTS = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3"))
