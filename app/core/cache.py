"""
Key/value cache backends for the permission engine.

Backend: controlled by the CACHE_BACKEND setting.
    "redis"   -> Redis-backed (shared across workers)
    "memory"  -> In-process dict with TTL (single worker / tests)

Every value is a string.  Arbitrary-precision bitfields travel as
decimal strings so nothing is lost in transit.

Errors: any backend failure is raised as `CacheError`.  Callers on the
authorization path must let it propagate (fail closed) — a broken cache
is never treated as a miss-then-allow.
"""

import logging
import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)


class CacheError(RuntimeError):
    """Raised when the cache backend cannot serve a request."""


class CacheBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


class MemoryCacheBackend:
    """In-memory cache with per-entry expiry.

    `clock` is injectable so tests can move time forward without
    sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        now = self._clock()
        self._prune(now)
        expires_at = now + ttl_seconds if ttl_seconds else None
        self._entries[key] = (value, expires_at)

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._entries[key]

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def close(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        """For testing: every key currently stored (expired ones included)."""
        return list(self._entries)


class RedisCacheBackend:
    """Redis-backed cache.  Connection errors surface as CacheError."""

    def __init__(self, redis_url: str, *, timeout: float = 2.0) -> None:
        self._url = redis_url
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
            decode_responses=True,
        )

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise CacheError(f"cache get failed for {key!r}") from exc

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds or None)
        except RedisError as exc:
            raise CacheError(f"cache set failed for {key!r}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            raise CacheError(f"cache delete failed for {key!r}") from exc

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_backend: CacheBackend | None = None


def get_cache() -> CacheBackend:
    """Return the process-wide backend, creating it on first use."""
    global _backend
    if _backend is not None:
        return _backend

    if settings.CACHE_BACKEND == "redis":
        _backend = RedisCacheBackend(settings.REDIS_URL)
        logger.info("Permission cache: redis")
    else:
        _backend = MemoryCacheBackend()
        logger.info("Permission cache: in-memory")
    return _backend


async def close_cache() -> None:
    global _backend
    if _backend is not None:
        await _backend.close()
        _backend = None
