"""Read-through cache for enrollment status.

Flow:  reader → cache → miss → repository → populate cache → return
       reader → cache → hit  → return

Two invalidation strategies cover each other:

  1. TTL (ENROLLMENT_STATUS_CACHE_TTL): stale entries expire on their own
     even if an invalidation is missed.
  2. Explicit invalidation: the EnrollmentAggregator marks the key stale
     whenever it writes a new percentage/status, and the key is deleted
     once that write has committed (drop_stale_keys).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from lms.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...


class InMemoryCacheService:
    """In-memory cache for tests and local dev; no TTL enforcement."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)


class RedisCacheService:
    """Redis-backed cache, shared across API instances."""

    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")


def enrollment_status_key(enrollment_id) -> str:
    return f"enrollment-status:{enrollment_id}"


async def drop_stale_keys(keys: set[str], cache: CacheService | None = None) -> None:
    """Delete keys whose backing rows changed in a committed unit of work."""
    target = cache if cache is not None else cache_service
    for key in sorted(keys):
        await target.delete(key)
    keys.clear()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
