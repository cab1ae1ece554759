"""
Fast Cache

JSON key/value cache on top of redis.asyncio. Redis is a disposable
derived view: every read or write error is logged and behaves as a miss
or a no-op so a Redis outage never fails a request.
"""

import json
from typing import Any, List, Optional, Sequence

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.utils.logger import create_logger

logger = create_logger(__name__)


def reference_key(symbol: str) -> str:
    return f"reference:{symbol.upper()}"


def market_cap_key(symbol: str) -> str:
    return f"marketcap:{symbol.upper()}"


def logo_key(symbol: str) -> str:
    return f"logo:{symbol.upper()}"


class FastCache:
    """Redis-backed cache storing JSON payloads."""

    def __init__(self, redis: Redis):
        """
        Initialize fast cache.

        Args:
            redis: redis.asyncio client (created with decode_responses=True)
        """
        self.redis = redis

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Args:
            key: Cache key

        Returns:
            Decoded JSON value, or None on miss or error
        """
        try:
            cached_json = await self.redis.get(key)
            if cached_json:
                return json.loads(cached_json)
        except (RedisError, ValueError) as e:
            logger.error(f"Redis cache read error for {key}: {e}")

        return None

    async def get_many(self, keys: Sequence[str]) -> List[Optional[Any]]:
        """
        Get several values in one round trip.

        Returns:
            list: One entry per key, in key order (None for misses)
        """
        if not keys:
            return []

        try:
            values = await self.redis.mget(list(keys))
        except RedisError as e:
            logger.error(f"Redis cache multi-get error ({len(keys)} keys): {e}")
            return [None] * len(keys)

        results = []
        for key, value in zip(keys, values):
            if not value:
                results.append(None)
                continue
            try:
                results.append(json.loads(value))
            except ValueError as e:
                logger.error(f"Corrupt cache payload for {key}: {e}")
                results.append(None)
        return results

    async def set_with_ttl(self, key: str, value: Any, ttl: Optional[int]) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Expiry in seconds; None stores the value without expiry
        """
        try:
            payload = json.dumps(value, default=str)
            if ttl is None:
                await self.redis.set(key, payload)
            else:
                await self.redis.set(key, payload, ex=max(int(ttl), 1))
            logger.debug(f"Cached {key} (TTL: {ttl}s)")
        except (RedisError, TypeError) as e:
            logger.error(f"Redis cache write error for {key}: {e}")

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.redis.delete(*keys)
        except RedisError as e:
            logger.error(f"Redis cache delete error for {keys}: {e}")
            return 0

    async def scan(self, pattern: str) -> List[str]:
        """List keys matching a glob pattern (SCAN, never KEYS)."""
        keys = []
        try:
            async for key in self.redis.scan_iter(match=pattern, count=500):
                keys.append(key)
        except RedisError as e:
            logger.error(f"Redis scan error for {pattern}: {e}")
        return keys

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Returns:
            int: Number of keys deleted
        """
        keys = await self.scan(pattern)
        deleted = await self.delete(*keys)
        if deleted:
            logger.info(f"Deleted {deleted} cache keys matching {pattern}")
        return deleted

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False
