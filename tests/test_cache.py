"""Tests for the TTL cache service."""

from __future__ import annotations

from cachetools import TTLCache

from cache import CacheService


class TestCacheService:
    def test_get_or_set_computes_once(self):
        svc = CacheService(maxsize=10, ttl=60)
        calls = []

        def factory():
            calls.append(1)
            return {"value": 42}

        assert svc.get_or_set("k", factory) == {"value": 42}
        assert svc.get_or_set("k", factory) == {"value": 42}
        assert len(calls) == 1

    def test_none_results_are_not_cached(self):
        svc = CacheService(maxsize=10, ttl=60)
        calls = []

        def factory():
            calls.append(1)
            return None

        svc.get_or_set("missing", factory)
        svc.get_or_set("missing", factory)
        assert len(calls) == 2

    def test_remove_by_prefix(self):
        svc = CacheService(maxsize=10, ttl=60)
        svc.set("portfoliouser:1", "a")
        svc.set("portfoliouser:2", "b")
        svc.set("skills:all", "c")

        svc.remove_by_prefix("portfoliouser:")

        assert svc.get("portfoliouser:1") is None
        assert svc.get("portfoliouser:2") is None
        assert svc.get("skills:all") == "c"

    def test_entries_expire(self):
        clock = [0.0]
        svc = CacheService(maxsize=10, ttl=5)
        svc._store = TTLCache(maxsize=10, ttl=5, timer=lambda: clock[0])
        svc.set("k", "v")
        clock[0] = 10.0
        assert svc.get("k") is None
