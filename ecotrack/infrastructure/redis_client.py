from __future__ import annotations

from typing import Any

import redis.asyncio as redis

from ecotrack.core.settings import Settings
from ecotrack.infrastructure.memory_client import InMemoryRedis


def create_redis_client(settings: Settings) -> Any:
    """Return a pooled async Redis client, or the in-memory stand-in.

    ``redis_url = "memory://"`` selects the in-memory store, which keeps
    counters per process.
    """

    if settings.redis_url == "memory://":
        return InMemoryRedis()

    pool = redis.ConnectionPool.from_url(
        str(settings.redis_url),
        max_connections=50,
        decode_responses=False,
    )
    return redis.Redis(connection_pool=pool)
