"""Tests for the in-memory cache."""

from nutrition_resolver.services import cache as cache_module
from nutrition_resolver.services.cache import InMemoryCache


def test_cache_expires_entries(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    now = [100.0]
    monkeypatch.setattr(cache_module.time, "monotonic", lambda: now[0])
    cache = InMemoryCache()

    cache.set("key", {"foods": []}, ttl_seconds=10)
    assert cache.get("key") == {"foods": []}

    now[0] = 111.0
    assert cache.get("key") is None


def test_cache_evicts_oldest_entry() -> None:
    cache = InMemoryCache(max_entries=2)

    cache.set("a", 1, ttl_seconds=60)
    cache.set("b", 2, ttl_seconds=60)
    cache.set("c", 3, ttl_seconds=60)

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3
