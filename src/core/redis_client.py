"""Optional Redis client backing scheduled-job health records."""

import logging
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from src.core.config import Constants, settings
from src.core.retry import retrying


logger = logging.getLogger(__name__)

_redis_retry = retrying(max_attempts=3, base_delay=0.1, retry_on=(RedisError,))


class RedisClient:
    """Async Redis wrapper that degrades to a no-op when Redis is absent or failing."""

    def __init__(self, url: str | None = None) -> None:
        """Initialize Redis client from ``url`` or the configured REDIS_URL."""
        self._client: Redis | None = None
        self._pool: ConnectionPool | None = None
        url = url or settings.redis_url
        self._enabled = bool(url)

        self._last_successful_operation: datetime | None = None
        self._failure_count = 0

        if self._enabled and url:
            try:
                self._pool = ConnectionPool.from_url(
                    url,
                    decode_responses=True,
                    max_connections=Constants.REDIS_MAX_CONNECTIONS,
                )
                self._client = Redis(connection_pool=self._pool)
                logger.info("Redis client initialized")
            except (RedisError, ValueError) as e:
                logger.warning("Failed to initialize Redis client: %s. Tracking jobs in memory.", e)
                self._enabled = False
                self._client = None
                self._pool = None
        else:
            logger.info("Redis URL not configured. Tracking jobs in memory.")

    @property
    def is_available(self) -> bool:
        """Check if Redis is available."""
        return self._enabled and self._client is not None

    def get_health_status(self) -> dict[str, Any]:
        """Connection health summary for the health endpoint."""
        return {
            "enabled": self._enabled,
            "connected": self.is_available,
            "last_successful_operation": self._last_successful_operation.isoformat()
            if self._last_successful_operation
            else None,
            "failure_count": self._failure_count,
        }

    def _record_success(self) -> None:
        self._last_successful_operation = datetime.now(UTC)

    def _record_failure(self, operation: str, key: str, error: RedisError) -> None:
        self._failure_count += 1
        logger.warning("Redis %s failed for key %s: %s", operation, key, error)

    async def get(self, key: str) -> str | None:
        """Get a value, or None if missing or Redis failed."""
        if not self.is_available or not self._client:
            return None

        client = self._client

        @_redis_retry
        async def _get() -> str | None:
            return await client.get(key)

        try:
            value = await _get()
        except RedisError as e:
            self._record_failure("GET", key, e)
            return None
        self._record_success()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set a value with a TTL. Returns False if Redis is unavailable or failed."""
        if not self.is_available or not self._client:
            return False

        client = self._client

        @_redis_retry
        async def _set() -> None:
            await client.setex(key, ttl_seconds, value)

        try:
            await _set()
        except RedisError as e:
            self._record_failure("SET", key, e)
            return False
        self._record_success()
        return True

    async def increment(self, key: str, ttl_seconds: int) -> int | None:
        """Atomically increment a counter and refresh its TTL."""
        if not self.is_available or not self._client:
            return None

        client = self._client

        @_redis_retry
        async def _incr() -> int:
            async with client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, ttl_seconds)
                value, _ = await pipe.execute()
            return int(value)

        try:
            value = await _incr()
        except RedisError as e:
            self._record_failure("INCR", key, e)
            return None
        self._record_success()
        return value

    async def delete(self, *keys: str) -> bool:
        """Delete keys. Returns False if nothing was deleted because Redis failed."""
        if not self.is_available or not self._client or not keys:
            return False

        try:
            await self._client.delete(*keys)
        except RedisError as e:
            self._record_failure("DELETE", ",".join(keys), e)
            return False
        self._record_success()
        return True

    async def ping(self) -> bool:
        """Ping Redis to check connection."""
        if not self.is_available or not self._client:
            return False

        try:
            result = await self._client.ping()  # type: ignore[misc]
        except RedisError as e:
            logger.warning("Redis PING failed: %s", e)
            return False
        return bool(result)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            logger.info("Redis client closed")


# Global Redis client instance
redis_client = RedisClient()
