"""Redis connection pool and the JSON caches shared across requests.

Provides:
- get_redis_pool() / close_redis(): lazily created shared client
- JsonCache: JSON get/set/delete with TTL; Redis failures are logged and
  treated as cache misses so callers fall through to storage
- MemoryCache: bounded in-process TTL cache that sits in front of Redis
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from typing import Any

import redis.asyncio as aioredis

from src.tenancy.config import get_settings

logger = logging.getLogger(__name__)

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None


# ── JSON Cache ──────────────────────────────────────────────────────────────


class JsonCache:
    """JSON values in Redis under a common key prefix.

    Writes are plain SET with expiry, so concurrent misses that recompute
    the same value simply overwrite each other.
    """

    def __init__(self, redis_client: aioredis.Redis | None, prefix: str = "tenant") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get_json(self, key: str) -> Any | None:
        if self._redis is None:
            return None
        try:
            cached = await self._redis.get(self.key(key))
        except Exception:
            logger.warning("Redis cache lookup failed for %s", self.key(key))
            return None
        if not cached:
            return None
        try:
            return json.loads(cached)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", self.key(key))
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(self.key(key), json.dumps(value, default=str), ex=ttl)
        except Exception:
            logger.warning("Redis cache set failed for %s", self.key(key))

    async def delete(self, *keys: str) -> None:
        if self._redis is None or not keys:
            return
        try:
            await self._redis.delete(*(self.key(k) for k in keys))
        except Exception:
            logger.warning("Redis cache delete failed for %s", ", ".join(keys))


# ── In-process cache ────────────────────────────────────────────────────────


class MemoryCache:
    """Bounded TTL cache local to one process.

    When full, the oldest entry is evicted. Reads and writes happen on the
    event loop thread without awaiting, so no locking is needed.
    """

    def __init__(self, ttl: int, max_size: int = 1000) -> None:
        self._ttl = ttl
        self._max_size = max_size
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if key in self._entries:
            self._entries.pop(key)
        elif len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (time.monotonic() + self._ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
