from typing import Any

from fastapi import APIRouter, Request
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ecotrack.core.logging import get_logger
from ecotrack.infrastructure.memory_client import InMemoryRedis

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health", summary="Readiness check")
async def health(request: Request) -> dict[str, Any]:
    """Check health of backend and dependencies."""

    health_status: dict[str, Any] = {
        "status": "healthy",
        "dependencies": {
            "database": "unknown",
            "redis": "unknown",
        },
    }

    # Check Database
    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        health_status["dependencies"]["database"] = "healthy"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database health check failed: %s", e)
        health_status["dependencies"]["database"] = f"unhealthy: {e}"
        health_status["status"] = "degraded"

    # Check counter store
    redis = request.app.state.redis
    try:
        await redis.ping()
        if isinstance(redis, InMemoryRedis):
            health_status["dependencies"]["redis"] = "healthy (in-memory)"
        else:
            health_status["dependencies"]["redis"] = "healthy"
    except (RedisError, OSError) as e:
        logger.warning("Redis health check failed: %s", e)
        health_status["dependencies"]["redis"] = f"unhealthy: {e}"
        health_status["status"] = "degraded"

    health_status["limitsCache"] = request.app.state.limits_config.cache_status()
    return health_status
