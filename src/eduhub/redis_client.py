"""Optional Redis pool.

Redis backs rate limiting only. An empty `redis_url` leaves the pool
uninitialised and every consumer degrades to "no Redis".
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50, timeout: float = 5.0) -> None:
    """Create the shared client. Connections open lazily on first command."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        decode_responses=True,
        max_connections=max_connections,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        health_check_interval=30,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def redis_enabled() -> bool:
    return _client is not None


def get_redis() -> redis.Redis:
    """Return the shared client; RuntimeError when Redis is not configured."""
    if _client is None:
        msg = "Redis is not configured"
        raise RuntimeError(msg)
    return _client
