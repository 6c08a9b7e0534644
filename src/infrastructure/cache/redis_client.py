# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis client for the semantic cache and job notifications.

Wraps ``redis.asyncio`` with the operations the pipeline needs: list
buckets with TTL and trimming for the semantic cache, hash counters for
cache statistics and pub/sub for job completion notices. Values are JSON
encoded on the way in and decoded on the way out.

Example:
    from src.infrastructure.cache import init_redis, get_redis

    await init_redis(settings)
    redis = get_redis()
    await redis.rpush("semcache:10110010", entry)
    await redis.publish("job:abc", '{"status": "COMPLETED"}')
"""

import json
from typing import TYPE_CHECKING, Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Module-level state
_redis_client: Optional["RedisClient"] = None


class RedisError(Exception):
    """Exception raised for Redis operation failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying Redis error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class RedisClient:
    """Async Redis client with connection pooling and JSON helpers.

    Example:
        client = RedisClient(settings)
        await client.connect()
        await client.rpush("semcache:0101", {"intent": "CHAT"})
        entries = await client.lrange("semcache:0101")
        await client.close()
    """

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    async def connect(self) -> None:
        """Create the Redis connection pool.

        Raises:
            RedisError: If connection fails.
        """
        try:
            self._pool = ConnectionPool.from_url(
                self._settings.redis.url,
                max_connections=self._settings.redis.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)
            await self._redis.ping()
        except BaseRedisError as e:
            raise RedisError("Failed to connect to Redis", e) from e

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _ensure_connected(self) -> Redis:
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        return self._redis

    def _serialize(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False, default=str)

    def _deserialize(self, value: Optional[str]) -> Any:
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    # ========== Keys ==========

    async def expire(self, key: str, seconds: int) -> bool:
        """Set expiration on a key.

        Returns:
            True if the timeout was set, False if the key doesn't exist.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return await redis.expire(key, seconds)
        except BaseRedisError as e:
            raise RedisError(f"Failed to set expiration on key: {key}", e) from e

    # ========== Lists ==========

    async def rpush(self, key: str, value: Any) -> int:
        """Append a value to a list.

        Returns:
            The list length after the push.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return await redis.rpush(key, self._serialize(value))
        except BaseRedisError as e:
            raise RedisError(f"Failed to push to list: {key}", e) from e

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[Any]:
        """Read a list slice, deserializing each element.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            values = await redis.lrange(key, start, end)
        except BaseRedisError as e:
            raise RedisError(f"Failed to read list: {key}", e) from e
        return [self._deserialize(v) for v in values]

    async def llen(self, key: str) -> int:
        redis = self._ensure_connected()
        try:
            return await redis.llen(key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to get list length: {key}", e) from e

    async def ltrim(self, key: str, start: int, end: int) -> None:
        redis = self._ensure_connected()
        try:
            await redis.ltrim(key, start, end)
        except BaseRedisError as e:
            raise RedisError(f"Failed to trim list: {key}", e) from e

    # ========== Hashes ==========

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        redis = self._ensure_connected()
        try:
            return await redis.hincrby(key, field, amount)
        except BaseRedisError as e:
            raise RedisError(f"Failed to increment {key}.{field}", e) from e

    async def hgetall(self, key: str) -> dict[str, str]:
        redis = self._ensure_connected()
        try:
            return await redis.hgetall(key)
        except BaseRedisError as e:
            raise RedisError(f"Failed to read hash: {key}", e) from e

    # ========== Pub/Sub ==========

    async def publish(self, channel: str, message: Any) -> int:
        """Publish a message to a channel.

        Returns:
            Number of subscribers that received the message.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            return await redis.publish(channel, self._serialize(message))
        except BaseRedisError as e:
            raise RedisError(f"Failed to publish to channel: {channel}", e) from e

    # ========== Health check ==========

    async def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            redis = self._ensure_connected()
            await redis.ping()
            return True
        except (RedisError, BaseRedisError):
            return False


# ========== Module-level functions ==========


async def init_redis(settings: "Settings") -> None:
    """Initialize the global Redis client.

    Raises:
        RedisError: If connection fails.
    """
    global _redis_client

    _redis_client = RedisClient(settings)
    await _redis_client.connect()


async def close_redis() -> None:
    """Close the global Redis client."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def get_redis() -> RedisClient:
    """Get the global Redis client.

    Raises:
        RedisError: If Redis has not been initialized.
    """
    if _redis_client is None:
        raise RedisError("Redis not initialized. Call init_redis() first.")
    return _redis_client
