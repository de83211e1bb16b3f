"""Shared Redis client protocol and factory."""

from typing import Protocol, cast

import redis.asyncio as redis

from railwatch.core.config import settings


class RedisClientProtocol(Protocol):
    """
    Subset of redis.asyncio.Redis used by the application.

    Keeps the follow-up registry and the readiness check easy to fake in tests.
    """

    async def sadd(self, name: str, *values: str) -> int:
        """Add members to the set stored at name."""
        ...

    async def smembers(self, name: str) -> set[str]:
        """Return all members of the set stored at name."""
        ...

    async def expire(self, name: str, time: int) -> bool:
        """Set a timeout on key name."""
        ...

    async def delete(self, *names: str) -> int:
        """Delete one or more keys."""
        ...

    async def ping(self) -> bool:
        """Ping the Redis server to check connectivity."""
        ...

    async def aclose(self, close_connection_pool: bool = True) -> None:
        """Close the client connection."""
        ...


def create_redis_client(url: str | None = None) -> RedisClientProtocol:
    """
    Create a Redis client with the standard configuration.

    Args:
        url: Redis URL, defaults to settings.REDIS_URL

    Returns:
        Redis client instance that satisfies RedisClientProtocol
    """
    return cast(
        RedisClientProtocol,
        redis.from_url(  # type: ignore[no-untyped-call]
            url or settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        ),
    )
