"""Единая точка настройки aiocache и дедуп-кеш поверх неё.

DedupCache — локальный best-effort кеш с TTL на ключ:
- лимиты частоты (фиксированное окно);
- одноразовые маркеры («промпт отправлен в T», «приветствие уже ушло»);
- мемоизация дорогих артефактов (инвайт-ссылки, снимки рейтинга).

Политика ёмкости: ограничен max_keys с вытеснением LRU. Новая запись
при переполнении выталкивает ключ, к которому дольше всего не обращались.
Кеш теряется при рестарте и не может быть единственной защитой от
двойного начисления очков — это задача атомарных UPDATE в БД.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from aiocache import SimpleMemoryCache, caches
from aiocache.base import BaseCache
from loguru import logger

try:
    from aiocache import RedisCache
except (ImportError, AttributeError):  # pragma: no cover - optional dependency
    RedisCache = None  # type: ignore[assignment]

_configured = False


def configure_cache() -> None:
    """Настраивает aiocache в зависимости от backend (memory/redis)."""

    global _configured
    if _configured:
        return

    from config.settings import get_settings

    settings = get_settings()
    if settings.cache.backend == "redis":
        if RedisCache is None:
            raise RuntimeError(
                "Для использования RedisCache установите пакет 'redis' и aiocache[redis]"
            )
        config = _build_redis_config(settings.cache.redis_dsn)
        caches.set_config(
            {
                "default": {
                    "cache": RedisCache,
                    # снимки рейтинга - dataclass-объекты, JSON их не сохранит
                    "serializer": {"class": "aiocache.serializers.PickleSerializer"},
                    **config,
                    "ttl": settings.cache.ttl_seconds,
                }
            }
        )
    else:
        caches.set_config(
            {
                "default": {
                    "cache": SimpleMemoryCache,
                    "ttl": settings.cache.ttl_seconds,
                }
            }
        )
    _configured = True


def get_cache(alias: str = "default") -> BaseCache:
    """Возвращает кеш по алиасу (предварительно гарантирует конфиг)."""

    configure_cache()
    return caches.get(alias)


@dataclass(slots=True)
class CacheStats:
    keys: int
    hits: int
    misses: int
    evictions: int


def _default_clock(backend: BaseCache) -> Callable[[], float]:
    """Срок хранится внутри значения: общему бэкенду нужны общие часы."""

    if isinstance(backend, SimpleMemoryCache):
        return time.monotonic
    return time.time


class DedupCache:
    """Ключ -> значение с TTL на ключ и LRU-вытеснением."""

    def __init__(
        self,
        backend: BaseCache | None = None,
        *,
        max_keys: int = 1000,
        default_ttl: float = 3600,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_keys < 1:
            raise ValueError("max_keys должен быть положительным")
        self._backend = backend if backend is not None else SimpleMemoryCache()
        self._max_keys = max_keys
        self._default_ttl = default_ttl
        self._clock = clock or _default_clock(self._backend)
        self._recency: OrderedDict[str, None] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_keys(self) -> int:
        return self._max_keys

    async def recall(self, key: str, default: Any = None) -> Any:
        found, value, _ = await self._read(key)
        if found:
            self._hits += 1
            return value
        self._misses += 1
        return default

    async def contains(self, key: str) -> bool:
        found, _, _ = await self._read(key)
        return found

    async def remember(self, key: str, value: Any, ttl: float | None = None) -> None:
        await self._write(key, value, self._expiry(ttl))

    async def forget(self, key: str) -> bool:
        self._recency.pop(key, None)
        return bool(await self._backend.delete(key))

    async def mark_once(self, key: str, ttl: float | None = None, value: Any = True) -> bool:
        """Ставит маркер, если его ещё нет. True — маркер поставлен этим вызовом."""

        async with self._lock:
            found, _, _ = await self._read(key)
            if found:
                return False
            await self._write(key, value, self._expiry(ttl))
            return True

    async def allow(self, key: str, max_count: int, window_seconds: float) -> bool:
        """Фиксированное окно: счётчик сбрасывается только по истечении окна."""

        rate_key = f"rate_limit:{key}"
        async with self._lock:
            found, count, expires_at = await self._read(rate_key)
            if not found:
                await self._write(rate_key, 1, self._clock() + window_seconds)
                return max_count >= 1
            if count >= max_count:
                logger.debug("Лимит {key} исчерпан ({count}/{limit})", key=key, count=count, limit=max_count)
                return False
            await self._write(rate_key, count + 1, expires_at)
            return True

    async def get_or_set(
        self,
        key: str,
        ttl: float,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Мемоизация: если значение отсутствует — вызывает factory."""

        found, value, _ = await self._read(key)
        if found:
            self._hits += 1
            return value
        self._misses += 1
        value = await factory()
        if value is not None:
            await self._write(key, value, self._expiry(ttl))
        return value

    async def clear(self) -> None:
        for key in list(self._recency):
            await self._backend.delete(key)
        self._recency.clear()
        logger.info("Дедуп-кеш очищен")

    def stats(self) -> CacheStats:
        return CacheStats(
            keys=len(self._recency),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def _expiry(self, ttl: float | None) -> float:
        return self._clock() + (self._default_ttl if ttl is None else ttl)

    async def _read(self, key: str) -> tuple[bool, Any, float]:
        raw = await self._backend.get(key)
        if raw is None:
            self._recency.pop(key, None)
            return False, None, 0.0
        value, expires_at = raw
        if expires_at <= self._clock():
            await self._backend.delete(key)
            self._recency.pop(key, None)
            return False, None, 0.0
        self._recency[key] = None
        self._recency.move_to_end(key)
        return True, value, expires_at

    async def _write(self, key: str, value: Any, expires_at: float) -> None:
        ttl = max(1, math.ceil(expires_at - self._clock()))
        await self._backend.set(key, [value, expires_at], ttl=ttl)
        self._recency[key] = None
        self._recency.move_to_end(key)
        while len(self._recency) > self._max_keys:
            evicted, _ = self._recency.popitem(last=False)
            await self._backend.delete(evicted)
            self._evictions += 1
            logger.debug("Ключ {key} вытеснен из дедуп-кеша (LRU)", key=evicted)


def build_dedup_cache() -> DedupCache:
    """DedupCache на бэкенде из настроек."""

    from config.settings import get_settings

    settings = get_settings()
    return DedupCache(
        get_cache(),
        max_keys=settings.cache.max_keys,
        default_ttl=settings.cache.ttl_seconds,
    )


def _build_redis_config(dsn: str | None) -> dict[str, Any]:
    if not dsn:
        raise RuntimeError("CACHE_BACKEND=redis, но redis_dsn не указан")
    parsed = urlparse(dsn)
    if parsed.scheme not in {"redis", "rediss"}:
        raise ValueError(f"Неподдерживаемая схема Redis DSN: {parsed.scheme}")
    db = 0
    if parsed.path and parsed.path != "/":
        try:
            db = int(parsed.path.lstrip("/"))
        except ValueError:
            db = 0
    return {
        "endpoint": parsed.hostname or "localhost",
        "port": parsed.port or 6379,
        "password": parsed.password,
        "db": db,
        "ssl": parsed.scheme == "rediss",
    }


__all__ = ["CacheStats", "DedupCache", "build_dedup_cache", "configure_cache", "get_cache"]
