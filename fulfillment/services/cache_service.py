"""
Cache Service for Serviceability Lookups.

Supports:
1. Redis (preferred for production)
2. In-memory fallback (for development/testing)

Usage:
    cache = get_cache()

    zone_ids = await cache.get_pincode_zones(pincode)
    await cache.set_pincode_zones(pincode, zone_ids)

    # After zone membership changes
    await cache.invalidate_pincode_zones()
"""
import json
from typing import Any, Optional, Dict, List
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

import redis.asyncio as redis

from fulfillment.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (seconds)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        pass

    @abstractmethod
    async def clear_pattern(self, pattern: str) -> int:
        """Clear all keys matching pattern."""
        pass


class InMemoryCache(CacheBackend):
    """
    In-memory cache for development/fallback.

    Not shared across server processes; prefer Redis when running
    more than one worker.
    """

    def __init__(self):
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > datetime.now(timezone.utc):
                    return value
                else:
                    del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = (value, expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern (simple prefix match)."""
        async with self._lock:
            prefix = pattern.rstrip('*')
            keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)


class RedisCache(CacheBackend):
    """
    Redis cache backend for production.

    Cache failures never fail the request: reads degrade to a miss and
    writes report False.
    """

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self._get_client().get(key)
            if value:
                return json.loads(value)
            return None
        except redis.RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        try:
            await self._get_client().set(key, json.dumps(value), ex=ttl)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._get_client().delete(key)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def clear_pattern(self, pattern: str) -> int:
        try:
            client = self._get_client()
            cursor = 0
            deleted = 0
            while True:
                cursor, keys = await client.scan(cursor, match=pattern, count=100)
                if keys:
                    await client.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            return deleted
        except redis.RedisError as e:
            logger.warning(f"Redis clear failed for {pattern}: {e}")
            return 0


class CacheService:
    """
    Namespaced cache.

    Keys follow ``{namespace}:{resource_type}:{identifier}``, e.g.
    ``fulfillment:pincode-zones:400001``.
    """

    def __init__(self, backend: CacheBackend, namespace: str = "fulfillment"):
        self._backend = backend
        self._namespace = namespace

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        return await self._backend.get(self._make_key(key))

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        return await self._backend.set(self._make_key(key), value, ttl)

    async def delete(self, key: str) -> bool:
        return await self._backend.delete(self._make_key(key))

    async def clear_pattern(self, pattern: str) -> int:
        return await self._backend.clear_pattern(self._make_key(pattern))

    # ==================== Pincode -> Zone Cache ====================

    def _pincode_zones_key(self, pincode: str) -> str:
        return f"pincode-zones:{pincode}"

    async def get_pincode_zones(self, pincode: str) -> Optional[List[str]]:
        """Get cached zone ids (as strings) for a pincode."""
        return await self.get(self._pincode_zones_key(pincode))

    async def set_pincode_zones(
        self,
        pincode: str,
        zone_ids: List[str],
        ttl: Optional[int] = None
    ) -> bool:
        ttl = ttl or settings.SERVICEABILITY_CACHE_TTL
        return await self.set(self._pincode_zones_key(pincode), zone_ids, ttl)

    async def invalidate_pincode_zones(self, pincode: Optional[str] = None) -> int:
        """Invalidate one pincode, or every pincode when none is given."""
        if pincode:
            await self.delete(self._pincode_zones_key(pincode))
            return 1
        return await self.clear_pattern("pincode-zones:*")


# Singleton cache instance
_cache_instance: Optional[CacheService] = None


def get_cache() -> CacheService:
    """Get the cache service singleton."""
    global _cache_instance

    if _cache_instance is None:
        if settings.REDIS_URL and settings.CACHE_ENABLED:
            backend = RedisCache(settings.REDIS_URL)
            logger.info("Cache initialized with Redis backend")
        else:
            backend = InMemoryCache()
            logger.info("Cache initialized with in-memory backend")

        _cache_instance = CacheService(backend)

    return _cache_instance


def reset_cache() -> None:
    """Drop the singleton so the next get_cache() builds a fresh one."""
    global _cache_instance
    _cache_instance = None
