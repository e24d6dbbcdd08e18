"""
Multi-date pricing for venue bookings.

The calculator is a pure function of its inputs: a per-day rate and the set of
requested (date, time range) pairs produce an itemized PricingSnapshot. All
arithmetic is exact Decimal arithmetic; rounding to the currency's minor unit
happens once, on the grand total, when an amount has to be charged or shown.

Example:
    >>> calc = PricingCalculator()
    >>> snap = calc.compute(Decimal("45000"), timings, today=date(2025, 1, 1))
    >>> snap.grand_total
    Decimal('116820.0000')
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Sequence

from venue_booking.config import CURRENCY, PLATFORM_FEE_RATE, TAX_RATE, VENUE_TIMEZONE
from venue_booking.exceptions import InvalidDateError, InvalidPriceError, InvalidTimeRangeError
from venue_booking.utils.datetime import local_date, utc_now

# Number of decimal places in each currency's minor unit
MINOR_UNIT_DIGITS = {"INR": 2, "USD": 2, "EUR": 2, "GBP": 2, "JPY": 0}


@dataclass(frozen=True)
class DateTiming:
    """One calendar day of a booking plus the hours used on that day."""

    date: date
    time_from: time
    time_to: time

    def to_dict(self) -> dict[str, str]:
        return {
            "date": self.date.isoformat(),
            "time_from": self.time_from.strftime("%H:%M"),
            "time_to": self.time_to.strftime("%H:%M"),
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "DateTiming":
        return cls(
            date=date.fromisoformat(data["date"]),
            time_from=time.fromisoformat(data["time_from"]),
            time_to=time.fromisoformat(data["time_to"]),
        )


@dataclass(frozen=True)
class PricingSnapshot:
    """
    The frozen quote shown to the customer and later charged.

    Amounts are kept unrounded; use grand_total_minor for the chargeable
    amount and display() for presentation.
    """

    price_per_day: Decimal
    total_days: int
    base_cost: Decimal
    platform_fee: Decimal
    tax: Decimal
    grand_total: Decimal
    currency: str
    platform_fee_rate: Decimal
    tax_rate: Decimal

    @property
    def minor_digits(self) -> int:
        return MINOR_UNIT_DIGITS.get(self.currency, 2)

    @property
    def grand_total_minor(self) -> int:
        """Grand total in the currency's minor unit (e.g. paise), rounded half-up once."""
        scaled = self.grand_total * (Decimal(10) ** self.minor_digits)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def display(self) -> dict[str, str]:
        """Amounts rounded half-up to the minor unit for presentation."""
        quantum = Decimal(1).scaleb(-self.minor_digits)
        return {
            name: str(getattr(self, name).quantize(quantum, rounding=ROUND_HALF_UP))
            for name in ("price_per_day", "base_cost", "platform_fee", "tax", "grand_total")
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "price_per_day": str(self.price_per_day),
            "total_days": self.total_days,
            "base_cost": str(self.base_cost),
            "platform_fee": str(self.platform_fee),
            "tax": str(self.tax),
            "grand_total": str(self.grand_total),
            "currency": self.currency,
            "platform_fee_rate": str(self.platform_fee_rate),
            "tax_rate": str(self.tax_rate),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PricingSnapshot":
        return cls(
            price_per_day=Decimal(data["price_per_day"]),
            total_days=int(data["total_days"]),
            base_cost=Decimal(data["base_cost"]),
            platform_fee=Decimal(data["platform_fee"]),
            tax=Decimal(data["tax"]),
            grand_total=Decimal(data["grand_total"]),
            currency=data["currency"],
            platform_fee_rate=Decimal(data["platform_fee_rate"]),
            tax_rate=Decimal(data["tax_rate"]),
        )


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidPriceError(f"Price per day is not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidPriceError(f"Price per day must be finite, got {value!r}")
    return result


def validate_dates_timings(dates_timings: Sequence[DateTiming], today: date) -> None:
    """
    Check the date/time constraints of a booking request.

    Raises:
        InvalidDateError: empty request, a date on or before today, or a duplicate date
        InvalidTimeRangeError: a time range that does not move forward within its day
    """
    if not dates_timings:
        raise InvalidDateError("At least one booking date is required")

    seen: set[date] = set()
    for timing in dates_timings:
        if timing.date <= today:
            raise InvalidDateError(
                f"Booking date {timing.date.isoformat()} must be after {today.isoformat()}"
            )
        if timing.date in seen:
            raise InvalidDateError(f"Date {timing.date.isoformat()} is requested more than once")
        seen.add(timing.date)
        if timing.time_from >= timing.time_to:
            raise InvalidTimeRangeError(
                f"Start time {timing.time_from:%H:%M} must be before end time "
                f"{timing.time_to:%H:%M} on {timing.date.isoformat()}"
            )


class PricingCalculator:
    """Turns a per-day rate and requested dates into an itemized PricingSnapshot."""

    def __init__(
        self,
        platform_fee_rate: Decimal = PLATFORM_FEE_RATE,
        tax_rate: Decimal = TAX_RATE,
        currency: str = CURRENCY,
        timezone_name: str = VENUE_TIMEZONE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.platform_fee_rate = platform_fee_rate
        self.tax_rate = tax_rate
        self.currency = currency
        self.timezone_name = timezone_name
        self._clock = clock

    def today(self) -> date:
        return local_date(self._clock(), self.timezone_name)

    def compute(
        self,
        price_per_day: Any,
        dates_timings: Sequence[DateTiming],
        today: date | None = None,
    ) -> PricingSnapshot:
        """
        Compute the itemized quote for a booking.

        Args:
            price_per_day: Venue rate per day (Decimal, int or numeric string)
            dates_timings: Requested dates with their time ranges
            today: Submission day; defaults to the current day in the venue timezone

        Returns:
            PricingSnapshot with base cost, platform fee, tax and grand total

        Raises:
            InvalidPriceError, InvalidDateError, InvalidTimeRangeError
        """
        price = _to_decimal(price_per_day)
        if price < 0:
            raise InvalidPriceError(f"Price per day must not be negative, got {price}")

        validate_dates_timings(dates_timings, today if today is not None else self.today())

        total_days = len(dates_timings)
        base_cost = price * total_days
        platform_fee = base_cost * self.platform_fee_rate
        tax = (base_cost + platform_fee) * self.tax_rate
        grand_total = base_cost + platform_fee + tax

        return PricingSnapshot(
            price_per_day=price,
            total_days=total_days,
            base_cost=base_cost,
            platform_fee=platform_fee,
            tax=tax,
            grand_total=grand_total,
            currency=self.currency,
            platform_fee_rate=self.platform_fee_rate,
            tax_rate=self.tax_rate,
        )
