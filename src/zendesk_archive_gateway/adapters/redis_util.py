from __future__ import annotations

from typing import Any


def import_redis() -> Any:
    """`redis` is an optional extra; None when it is not installed."""
    try:
        from redis.asyncio import Redis
    except ImportError:
        return None
    return Redis


def redis_from_url(url: str) -> Any:
    Redis = import_redis()
    if Redis is None:
        raise RuntimeError("redis backend configured but the 'redis' package is not installed")
    return Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )
