from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from redis.exceptions import RedisError

from ecotrack.core.errors import RateLimitExceededError
from ecotrack.core.logging import get_logger
from ecotrack.domain.limits import Operation, OperationLimits, RateLimitWindow
from ecotrack.monitoring.metrics import RATE_LIMIT_HITS_TOTAL, RATE_LIMIT_STORE_ERRORS_TOTAL

logger = get_logger(__name__)

KEY_PREFIX = "eco:ratelimit"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    current: int
    limit: int
    remaining: int
    reset_time: datetime
    retry_after: int | None = None
    key: str | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    current: int
    limit: int
    remaining: int
    reset_time: datetime


def _to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class RateLimiter:
    """Fixed-window request counters per tenant and operation.

    Each window has its own key,
    ``eco:ratelimit:{tenant}:{operation}:{window_ms}:{window_start_ms}``,
    which expires with the window. A request increments the counter and
    rolls the increment back if that takes it past the limit, so only
    permitted requests are counted.
    """

    def __init__(self, redis: Any, *, clock: Callable[[], float] = time.time) -> None:
        self._redis = redis
        self._clock = clock

    @staticmethod
    def window_key(tenant_id: str, operation: Operation, window_ms: int, window_start_ms: int) -> str:
        return f"{KEY_PREFIX}:{tenant_id}:{operation.value}:{window_ms}:{window_start_ms}"

    def _window(self, window_ms: int) -> tuple[int, int, int]:
        now_ms = int(self._clock() * 1000)
        start_ms = now_ms - now_ms % window_ms
        return now_ms, start_ms, start_ms + window_ms

    async def check_rate_limit(
        self,
        tenant_id: str,
        operation: Operation,
        limit: int,
        window_ms: int = 60_000,
        bypass: bool = False,
    ) -> RateLimitResult:
        """Count a request against the current window if it fits.

        Counter-store errors let the request through and are logged.
        """

        now_ms, start_ms, reset_ms = self._window(window_ms)
        if bypass:
            return RateLimitResult(
                allowed=True,
                current=0,
                limit=limit,
                remaining=limit,
                reset_time=_to_datetime(reset_ms),
            )

        key = self.window_key(tenant_id, operation, window_ms, start_ms)
        try:
            current = int(await self._redis.incr(key))
            if current == 1:
                await self._redis.pexpire(key, window_ms)
            if current > limit:
                await self._redis.decr(key)
                return RateLimitResult(
                    allowed=False,
                    current=current - 1,
                    limit=limit,
                    remaining=0,
                    reset_time=_to_datetime(reset_ms),
                    retry_after=max(1, math.ceil((reset_ms - now_ms) / 1000)),
                )
        except (RedisError, OSError) as exc:
            RATE_LIMIT_STORE_ERRORS_TOTAL.inc()
            logger.warning(
                "Rate limit store unavailable, allowing request",
                extra={
                    "eco_extra": {
                        "tenant_id": tenant_id,
                        "operation": operation.value,
                        "error": str(exc),
                    },
                },
            )
            return RateLimitResult(
                allowed=True,
                current=0,
                limit=limit,
                remaining=limit,
                reset_time=_to_datetime(reset_ms),
            )

        return RateLimitResult(
            allowed=True,
            current=current,
            limit=limit,
            remaining=max(0, limit - current),
            reset_time=_to_datetime(reset_ms),
            key=key,
        )

    async def enforce(
        self,
        tenant_id: str,
        operation: Operation,
        limits: OperationLimits,
        bypass: bool = False,
    ) -> RateLimitResult:
        """Check the minute, hour and day windows in turn.

        A rejection in a longer window releases the slots already taken in
        the shorter ones.

        Raises:
            RateLimitExceededError: with retry headers when any window is full.
        """

        taken: list[str] = []
        results: list[RateLimitResult] = []
        for window in RateLimitWindow:
            window_ms = window.milliseconds
            limit = limits.for_window(window)
            result = await self.check_rate_limit(tenant_id, operation, limit, window_ms, bypass)
            if not result.allowed:
                await self._release(tenant_id, operation, taken)
                RATE_LIMIT_HITS_TOTAL.labels(operation=operation.value, window=window.value).inc()
                logger.warning(
                    "Rate limit exceeded",
                    extra={
                        "eco_extra": {
                            "tenant_id": tenant_id,
                            "operation": operation.value,
                            "window": window.value,
                            "limit": limit,
                        },
                    },
                )
                raise RateLimitExceededError(
                    f"Rate limit exceeded for {operation.value}: "
                    f"{limit} requests per {window.value}. Try again later.",
                    data={
                        "current": result.current,
                        "limit": result.limit,
                        "remaining": 0,
                        "resetTime": result.reset_time.isoformat(),
                        "window": window.value,
                    },
                    headers={
                        "X-Quota-Limit": str(result.limit),
                        "X-Quota-Remaining": "0",
                        "X-Quota-Reset": result.reset_time.isoformat(),
                        "Retry-After": str(result.retry_after or 1),
                    },
                )
            if result.key is not None:
                taken.append(result.key)
            results.append(result)
        return results[0]

    async def _release(
        self,
        tenant_id: str,
        operation: Operation,
        taken: list[str],
    ) -> None:
        for key in taken:
            try:
                await self._redis.decr(key)
            except (RedisError, OSError) as exc:
                logger.warning(
                    "Failed to release rate limit slot",
                    extra={"eco_extra": {"tenant_id": tenant_id, "error": str(exc)}},
                )

    async def get_rate_limit_status(
        self,
        tenant_id: str,
        operation: Operation,
        limit: int,
        window_ms: int = 60_000,
    ) -> RateLimitStatus:
        _, start_ms, reset_ms = self._window(window_ms)
        key = self.window_key(tenant_id, operation, window_ms, start_ms)
        try:
            raw = await self._redis.get(key)
        except (RedisError, OSError) as exc:
            logger.warning(
                "Rate limit store unavailable, reporting empty window",
                extra={"eco_extra": {"tenant_id": tenant_id, "error": str(exc)}},
            )
            raw = None
        current = int(raw) if raw is not None else 0
        return RateLimitStatus(
            current=current,
            limit=limit,
            remaining=max(0, limit - current),
            reset_time=_to_datetime(reset_ms),
        )

    async def clear_rate_limit(self, tenant_id: str, operation: Operation | None = None) -> int:
        """Delete the tenant's window counters, for every operation if none is given."""

        op_part = operation.value if operation is not None else "*"
        pattern = f"{KEY_PREFIX}:{tenant_id}:{op_part}:*"
        keys = [key async for key in self._redis.scan_iter(match=pattern)]
        deleted = await self._redis.delete(*keys) if keys else 0
        logger.info(
            "Rate limits cleared",
            extra={
                "eco_extra": {
                    "tenant_id": tenant_id,
                    "operation": op_part,
                    "deleted": deleted,
                },
            },
        )
        return int(deleted)
