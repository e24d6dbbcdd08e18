"""
In-memory TTL cache for venue catalog lookups.

Inquiries for the same venue tend to arrive in bursts; caching the catalog
answer for a short time keeps those from hammering the catalog service.
Only the inquiry path reads from this cache, and its result is frozen into
the booking's pricing snapshot, so a briefly stale rate never changes an
existing quote.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Thread-safe in-memory cache with time-to-live (TTL) expiration.

    Attributes:
        ttl: Time-to-live for cached entries
        _cache: Internal storage mapping key to (value, expires_at) tuples

    Example:
        >>> cache = TTLCache(ttl_seconds=60)
        >>> cache.set("venue-1", venue)
        >>> cache.get("venue-1")
        >>> cache.invalidate("venue-1")
    """

    def __init__(self, ttl_seconds: int = 60):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[str, tuple[V, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> V | None:
        """
        Get cached value if not expired.

        Returns:
            Cached value if found and not expired, None otherwise
        """
        with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if datetime.now(timezone.utc) < expires_at:
                    return value
                del self._cache[key]
        return None

    def set(self, key: str, value: V) -> None:
        if self.ttl <= timedelta(0):
            return
        with self._lock:
            self._cache[key] = (value, datetime.now(timezone.utc) + self.ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        return len(self._cache)
