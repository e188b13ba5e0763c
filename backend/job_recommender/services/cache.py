"""
Recommendation Result Cache

Memoizes fully ranked (unpaginated) recommendation lists for anonymous and
non-exclusion searches. Two interchangeable backends:

- MemoryResultCache: process-local TTL map, swept periodically by the
  scheduler. Default backend.
- RedisResultCache: shared across workers, TTL enforced by Redis (SETEX).

The cache is never load-bearing: every failure degrades to a miss and the
caller recomputes from the datastore.

Key Pattern (built by the recommendation service):
    {user:<id>|anon}:title:<normalized>:skills:<sorted>[:filters:<json>][:exclude-viewed]

Usage:
    cache = create_cache(settings)

    cached = await cache.get(key)
    if cached is None:
        results = await compute()
        await cache.set(key, results, ttl=300)

    # Drop everything cached for one user
    await cache.invalidate_pattern("user:42:*")
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis

from job_recommender.config import Settings
from job_recommender.middleware.metrics import record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


def pattern_prefix(pattern: str) -> str:
    """Literal prefix for an invalidation pattern; a trailing "*" means "this prefix"."""
    return pattern[:-1] if pattern.endswith("*") else pattern


class ResultCache(ABC):
    """
    Async key-value cache with per-entry TTL.

    Attributes:
        default_ttl: TTL in seconds used when set() is called without one
        stats: Dict tracking hits/misses
    """

    backend_name = "abstract"
    # Shared backends outlive a single worker; shutdown must not wipe them
    shared = False

    def __init__(self, default_ttl: int = DEFAULT_TTL_SECONDS):
        self.default_ttl = default_ttl
        self.stats: Dict[str, int] = {"hits": 0, "misses": 0}

    def _record_hit(self) -> None:
        self.stats["hits"] += 1
        record_cache_hit(self.backend_name)

    def _record_miss(self) -> None:
        self.stats["misses"] += 1
        record_cache_miss(self.backend_name)

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss or expiry."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store value under key, overwriting unconditionally."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key starting with the pattern's prefix. Returns count removed."""

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def sweep_expired(self) -> int:
        """Proactively drop expired entries. Backends with native expiry do nothing."""
        return 0

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def shutdown(self) -> None:
        """Release the cache at application shutdown, clearing it only if process-local."""
        if not self.shared:
            await self.clear()
        await self.close()

    def get_stats(self) -> Dict[str, Any]:
        hits = self.stats["hits"]
        misses = self.stats["misses"]
        total = hits + misses
        return {
            "backend": self.backend_name,
            "hits": hits,
            "misses": misses,
            "total": total,
            "hit_rate": hits / total if total > 0 else 0.0,
        }


# ==================== In-Memory Backend ====================

@dataclass
class CacheEntry:
    value: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now > self.timestamp + self.ttl


class MemoryResultCache(ResultCache):
    """
    Process-local TTL cache.

    get() enforces expiry on its own and evicts lazily; sweep_expired() is
    only an optimization run by the scheduler. Concurrent set() calls to the
    same key are last-writer-wins.
    """

    backend_name = "memory"

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(default_ttl)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._record_miss()
            return None

        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            self._record_miss()
            return None

        self._record_hit()
        return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._entries[key] = CacheEntry(
            value=value,
            timestamp=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def invalidate_pattern(self, pattern: str) -> int:
        prefix = pattern_prefix(pattern)
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            self._entries.pop(key, None)
        return len(doomed)

    async def sweep_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._entries.pop(key, None)

        if expired:
            logger.info(f"Cache sweep: removed {len(expired)} expired entries")
        return len(expired)

    async def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats["size"] = len(self._entries)
        return stats


# ==================== Redis Backend ====================

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(text: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisResultCache(ResultCache):
    """
    Redis-backed cache shared between worker processes.

    Provides graceful degradation when Redis is unavailable: reads return
    None, writes and deletes are dropped, and a warning is logged.

    Attributes:
        redis: Async Redis client (created lazily)
        namespace: Prefix prepended to every key
    """

    backend_name = "redis"
    shared = True

    def __init__(
        self,
        redis_url: str,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        namespace: str = "reco:",
    ):
        super().__init__(default_ttl)
        self.redis_url = redis_url
        self.namespace = namespace
        self.redis: Optional[redis.Redis] = None

    async def _ensure_connected(self) -> Optional[redis.Redis]:
        """Ensure Redis connection is established."""
        if self.redis is None:
            try:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis: {e}")
                return None
        return self.redis

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._ensure_connected()
            if not client:
                self._record_miss()
                return None

            cached = await client.get(self._key(key))
            if cached is None:
                self._record_miss()
                return None

            self._record_hit()
            return json.loads(cached)

        except Exception as e:
            logger.warning(f"Redis get error (result cache): {e}")
            self._record_miss()
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            client = await self._ensure_connected()
            if not client:
                return

            await client.setex(
                self._key(key),
                self.default_ttl if ttl is None else ttl,
                json.dumps(value, default=str),
            )
        except Exception as e:
            logger.warning(f"Redis set error (result cache): {e}")

    async def delete(self, key: str) -> None:
        try:
            client = await self._ensure_connected()
            if not client:
                return
            await client.delete(self._key(key))
        except Exception as e:
            logger.warning(f"Redis delete error: {e}")

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete matching keys using SCAN so Redis is never blocked by KEYS."""
        try:
            client = await self._ensure_connected()
            if not client:
                return 0

            match = _escape_glob(self._key(pattern_prefix(pattern))) + "*"
            keys = [key async for key in client.scan_iter(match=match)]
            if keys:
                return await client.delete(*keys)
            return 0

        except Exception as e:
            logger.warning(f"Redis invalidation error: {e}")
            return 0

    async def clear(self) -> None:
        await self.invalidate_pattern("*")

    async def health_check(self) -> bool:
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            await client.ping()
            return True

        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None


# ==================== Factory Function ====================

def create_cache(settings: Settings) -> ResultCache:
    """
    Build the configured cache backend.

    The instance is owned by the application lifespan and handed to the
    recommendation service through its constructor.
    """
    if settings.cache_backend == "redis":
        return RedisResultCache(redis_url=settings.redis_url, default_ttl=settings.cache_ttl_seconds)
    if settings.cache_backend != "memory":
        raise ValueError(f"Unknown cache backend: {settings.cache_backend}")
    return MemoryResultCache(default_ttl=settings.cache_ttl_seconds)
