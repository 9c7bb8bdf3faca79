"""
Analytics Cache

Redis-backed read-through cache for the scan-backed fleet analytics. Every
committed record mutation drops the whole analytics namespace, so cached
results never outlive the data they were computed from by more than one
request.

Redis is optional: while no client is connected, lookups miss, stores are
skipped and invalidation is a no-op.
"""

import json
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis

from fleetops.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis connection
_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Connect to Redis, raising if the server does not answer a ping."""
    global _pool, _client

    if _client is not None:
        return _client

    redis_settings = get_settings().redis
    pool = ConnectionPool.from_url(
        redis_settings.get_url(),
        max_connections=redis_settings.max_connections,
        socket_timeout=redis_settings.socket_timeout,
        decode_responses=redis_settings.decode_responses,
    )
    client = Redis(connection_pool=pool)

    # Test connection
    try:
        await client.ping()
    except Exception as e:
        logger.error("Redis unreachable", url=redis_settings.get_url(), error=str(e))
        await pool.disconnect()
        raise

    _pool, _client = pool, client
    logger.info("Redis connected", max_connections=redis_settings.max_connections)
    return client


async def close_redis() -> None:
    global _pool, _client

    if _client is not None:
        await _client.aclose()
    if _pool is not None:
        await _pool.disconnect()

    _pool, _client = None, None
    logger.info("Redis disconnected")


def get_redis() -> Redis:
    if _client is None:
        raise RuntimeError("Redis is not connected; call init_redis() first")
    return _client


def is_enabled() -> bool:
    return _client is not None


class CacheManager:
    """
    JSON values stored under ``<namespace>:<key>``.

    Example:
        cache = CacheManager("analytics")
        overview = await cache.get_or_set("overview", analytics.overview)
    """

    def __init__(self, namespace: str, default_ttl: int = 3600):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        if not is_enabled():
            return None

        raw = await get_redis().get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry", key=self._key(key))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not is_enabled():
            return False

        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Value not cacheable", key=self._key(key), error=str(e))
            return False

        await get_redis().setex(self._key(key), ttl or self.default_ttl, payload)
        return True

    async def invalidate_all(self) -> int:
        """Delete every key in the namespace; returns how many were removed."""
        if not is_enabled():
            return 0

        client = get_redis()
        keys = [key async for key in client.scan_iter(match=f"{self.namespace}:*")]
        if not keys:
            return 0

        removed = await client.delete(*keys)
        logger.debug("Cache namespace invalidated", namespace=self.namespace, keys=removed)
        return removed

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """Return the cached value, computing and storing it on a miss."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        await self.set(key, value, ttl)
        return value


# Pre-configured cache managers
analytics_cache = CacheManager("analytics", default_ttl=600)


async def invalidate_analytics() -> int:
    """After-commit hook: cached analytics are stale once any record changes."""
    return await analytics_cache.invalidate_all()
