"""
Client for the venue catalog service.

The catalog is the source of a venue's per-day price and its owner. The
booking engine only ever reads from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urljoin

import requests
import structlog

from venue_booking.cache import TTLCache
from venue_booking.config import VENUE_CACHE_TTL_SECONDS, VENUE_CATALOG_URL
from venue_booking.exceptions import VenueCatalogError, VenueNotFoundError

logger = structlog.get_logger(__name__)

REQUEST_TIMEOUT_SECONDS = 5


@dataclass(frozen=True)
class Venue:
    venue_id: str
    price_per_day: Decimal
    owner_id: str
    name: Optional[str] = None


class VenueCatalogClient:
    """
    Reads venues from `GET {base_url}/venues/{venue_id}`.

    Expected response body:
        {"id": "...", "price_per_day": 45000, "owner_id": "...", "name": "..."}
    """

    def __init__(
        self,
        base_url: Optional[str] = VENUE_CATALOG_URL,
        cache: Optional[TTLCache[Venue]] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=VENUE_CACHE_TTL_SECONDS)
        self.timeout = timeout

    def get_venue(self, venue_id: str) -> Venue:
        """
        Fetch a venue's pricing and owner.

        Raises:
            VenueNotFoundError: catalog answered 404
            VenueCatalogError: catalog unreachable, not configured, or malformed answer
        """
        cached = self.cache.get(venue_id)
        if cached is not None:
            return cached

        if not self.base_url:
            raise VenueCatalogError("VENUE_CATALOG_URL is not configured")

        url = urljoin(self.base_url.rstrip("/") + "/", f"venues/{venue_id}")
        try:
            res = requests.get(url, timeout=self.timeout)
        except requests.RequestException as err:
            logger.warning("venue_catalog_unreachable", venue_id=venue_id, error=str(err))
            raise VenueCatalogError(f"Venue catalog request failed: {err}") from err

        if res.status_code == 404:
            raise VenueNotFoundError(venue_id)
        if res.status_code != 200:
            logger.warning(
                "venue_catalog_error", venue_id=venue_id, status_code=res.status_code
            )
            raise VenueCatalogError(f"Venue catalog answered {res.status_code}")

        data = None
        try:
            data = res.json()
            venue = Venue(
                venue_id=str(data.get("id", venue_id)),
                price_per_day=Decimal(str(data["price_per_day"])),
                owner_id=str(data["owner_id"]),
                name=data.get("name"),
            )
        except (ValueError, KeyError, TypeError, AttributeError, InvalidOperation) as err:
            logger.error("venue_catalog_malformed", venue_id=venue_id, payload=data)
            raise VenueCatalogError(f"Malformed venue payload for {venue_id}") from err

        self.cache.set(venue_id, venue)
        return venue
