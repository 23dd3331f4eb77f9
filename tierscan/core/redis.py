"""Redis client construction for progress, lock and threshold caching."""
import redis.asyncio as redis


def create_redis(redis_url: str, max_connections: int = 20) -> redis.Redis:
    """Create a Redis client from a connection URL.

    The client is lazy: no connection is made until the first command.
    Callers own the client and must close it with ``aclose()``.
    """
    return redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections
    )
