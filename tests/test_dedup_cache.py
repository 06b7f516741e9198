from __future__ import annotations

import time

import pytest

from bot.utils.cache import DedupCache


@pytest.mark.anyio
@pytest.mark.unit
@pytest.mark.cache
class TestRateLimit:
    async def test_fixed_window(self, dedup_cache: DedupCache, monotonic) -> None:
        """allow("k", 1, 300): true, сразу false, через 300 c снова true."""

        assert await dedup_cache.allow("k", 1, 300) is True
        assert await dedup_cache.allow("k", 1, 300) is False
        monotonic.advance(300)
        assert await dedup_cache.allow("k", 1, 300) is True

    async def test_window_is_not_extended_by_hits(self, dedup_cache: DedupCache, monotonic) -> None:
        for _ in range(5):
            assert await dedup_cache.allow("clicks", 5, 300)
        monotonic.advance(200)
        assert await dedup_cache.allow("clicks", 5, 300) is False
        monotonic.advance(100)
        assert await dedup_cache.allow("clicks", 5, 300) is True

    async def test_keys_are_independent(self, dedup_cache: DedupCache) -> None:
        assert await dedup_cache.allow("a", 1, 60)
        assert await dedup_cache.allow("b", 1, 60)
        assert not await dedup_cache.allow("a", 1, 60)


@pytest.mark.anyio
@pytest.mark.unit
@pytest.mark.cache
class TestMarkers:
    async def test_mark_once(self, dedup_cache: DedupCache, monotonic) -> None:
        assert await dedup_cache.mark_once("welcome:1", ttl=1800)
        assert not await dedup_cache.mark_once("welcome:1", ttl=1800)
        monotonic.advance(1800)
        assert await dedup_cache.mark_once("welcome:1", ttl=1800)

    async def test_remember_recall_forget(self, dedup_cache: DedupCache, monotonic) -> None:
        await dedup_cache.remember("prompt", "2026-01-01T12:00:00+00:00", ttl=10)
        assert await dedup_cache.recall("prompt") == "2026-01-01T12:00:00+00:00"
        monotonic.advance(10)
        assert await dedup_cache.recall("prompt", default="gone") == "gone"

        await dedup_cache.remember("other", 1)
        assert await dedup_cache.forget("other") is True
        assert await dedup_cache.recall("other") is None

    async def test_get_or_set_memoizes(self, dedup_cache: DedupCache, monotonic) -> None:
        calls = 0

        async def factory() -> str:
            nonlocal calls
            calls += 1
            return f"link-{calls}"

        assert await dedup_cache.get_or_set("invite", 60, factory) == "link-1"
        assert await dedup_cache.get_or_set("invite", 60, factory) == "link-1"
        monotonic.advance(61)
        assert await dedup_cache.get_or_set("invite", 60, factory) == "link-2"
        assert calls == 2

    async def test_get_or_set_does_not_cache_none(self, dedup_cache: DedupCache) -> None:
        async def failing() -> None:
            return None

        assert await dedup_cache.get_or_set("invite", 60, failing) is None
        assert not await dedup_cache.contains("invite")


@pytest.mark.anyio
@pytest.mark.unit
@pytest.mark.cache
class TestCapacity:
    async def test_lru_eviction(self, monotonic) -> None:
        cache = DedupCache(max_keys=2, clock=monotonic)
        await cache.remember("a", 1)
        await cache.remember("b", 2)
        assert await cache.recall("a") == 1  # "a" становится самым свежим
        await cache.remember("c", 3)

        assert await cache.recall("b") is None
        assert await cache.recall("a") == 1
        assert await cache.recall("c") == 3
        stats = cache.stats()
        assert stats.keys == 2
        assert stats.evictions == 1

    async def test_clear(self, dedup_cache: DedupCache) -> None:
        await dedup_cache.remember("a", 1)
        await dedup_cache.mark_once("b")
        await dedup_cache.clear()
        assert dedup_cache.stats().keys == 0
        assert await dedup_cache.recall("a") is None

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ValueError):
            DedupCache(max_keys=0)


class SharedBackend:
    """Бэкенд, общий для нескольких процессов (как Redis)."""

    def __init__(self) -> None:
        self.data: dict[str, object] = {}

    async def get(self, key, default=None):
        return self.data.get(key, default)

    async def set(self, key, value, ttl=None):
        self.data[key] = value
        return True

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0


@pytest.mark.anyio
@pytest.mark.unit
@pytest.mark.cache
class TestSharedBackend:
    async def test_shared_backend_stores_wall_clock_expiry(self) -> None:
        backend = SharedBackend()
        cache = DedupCache(backend)  # type: ignore[arg-type]
        assert await cache.mark_once("welcome:1", ttl=60) is True

        _, expires_at = backend.data["welcome:1"]
        assert abs(expires_at - (time.time() + 60)) < 5

    async def test_marker_is_visible_to_another_instance(self) -> None:
        backend = SharedBackend()
        first = DedupCache(backend)  # type: ignore[arg-type]
        second = DedupCache(backend)  # type: ignore[arg-type]
        await first.mark_once("welcome:1", ttl=60)

        assert await second.mark_once("welcome:1", ttl=60) is False

    def test_memory_backend_keeps_monotonic_clock(self) -> None:
        assert DedupCache()._clock is time.monotonic
