"""
Unit tests for the in-memory TTL cache.
"""

from __future__ import annotations

import time

import pytest

from venue_booking.cache import TTLCache


@pytest.mark.unit
def test_get_returns_value_before_expiry() -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=60)
    cache.set("venue-1", "Lakeside Hall")

    assert cache.get("venue-1") == "Lakeside Hall"
    assert cache.get("venue-2") is None


@pytest.mark.unit
def test_expired_entries_are_dropped() -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=1)
    cache.set("venue-1", "Lakeside Hall")

    time.sleep(1.1)

    assert cache.get("venue-1") is None
    assert cache.size() == 0


@pytest.mark.unit
def test_zero_ttl_disables_caching() -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=0)
    cache.set("venue-1", "Lakeside Hall")

    assert cache.get("venue-1") is None


@pytest.mark.unit
def test_invalidate_and_clear() -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=60)
    cache.set("venue-1", "a")
    cache.set("venue-2", "b")

    cache.invalidate("venue-1")
    assert cache.get("venue-1") is None
    assert cache.size() == 1

    cache.clear()
    assert cache.size() == 0
