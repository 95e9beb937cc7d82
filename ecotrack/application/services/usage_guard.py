from __future__ import annotations

import math

from ecotrack.application.services.limits_config import LimitsConfigProvider
from ecotrack.application.services.quota_tracker import QuotaTracker
from ecotrack.application.services.rate_limiter import RateLimiter
from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import QuotaExceededError
from ecotrack.core.logging import get_logger
from ecotrack.domain.limits import Operation
from ecotrack.domain.quota import QuotaResult
from ecotrack.domain.tenants import Tenant
from ecotrack.monitoring.metrics import QUOTA_REJECTIONS_TOTAL

logger = get_logger(__name__)


class UsageGuard:
    """Admission control for quota-tracked, rate-limited operations.

    :meth:`admit` runs before the operation: the monthly quota first, then
    the minute/hour/day windows. :meth:`record` runs after it succeeds.
    Superadmin callers pass ``bypass=True`` and skip both checks.
    """

    def __init__(
        self,
        quota: QuotaTracker,
        limits: LimitsConfigProvider,
        rate_limiter: RateLimiter,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._quota = quota
        self._limits = limits
        self._rate_limiter = rate_limiter
        self._clock = clock

    async def admit(
        self,
        tenant_id: str,
        operation: Operation,
        *,
        bypass: bool = False,
    ) -> QuotaResult:
        """Raise unless ``operation`` may run now for ``tenant_id``.

        Raises:
            NotFoundError: if the tenant does not exist.
            QuotaExceededError: when the monthly cap is reached.
            RateLimitExceededError: when a short window is full.
        """

        result = await self._quota.check_quota(tenant_id, operation, bypass=bypass)
        if not result.allowed:
            tenant = await self._quota.get_tenant(tenant_id)
            self._reject(tenant, operation, result)

        rate_limits = await self._limits.get_rate_limit_config()
        await self._rate_limiter.enforce(
            tenant_id,
            operation,
            rate_limits.for_operation(operation),
            bypass=bypass,
        )
        return result

    async def record(self, tenant_id: str, operation: Operation) -> bool:
        return await self._quota.record_usage(tenant_id, operation)

    def _reject(self, tenant: Tenant, operation: Operation, result: QuotaResult) -> None:
        QUOTA_REJECTIONS_TOTAL.labels(
            operation=operation.value,
            tier=tenant.subscription_tier.value,
        ).inc()
        logger.warning(
            "Monthly quota exceeded",
            extra={
                "eco_extra": {
                    "tenant_id": tenant.id,
                    "operation": operation.value,
                    "current": result.current,
                    "limit": result.limit,
                },
            },
        )
        retry_after = max(1, math.ceil((result.reset_time - self._clock()).total_seconds()))
        reset_iso = result.reset_time.isoformat()
        raise QuotaExceededError(
            f"Monthly quota exceeded for {operation.value}: "
            f"{result.current}/{result.limit} used on the {tenant.subscription_tier.value} plan. "
            f"Resets at {reset_iso}.",
            data={
                "current": result.current,
                "limit": result.limit,
                "remaining": result.remaining,
                "resetTime": reset_iso,
            },
            headers={
                "X-Quota-Limit": str(result.limit),
                "X-Quota-Remaining": str(result.remaining),
                "X-Quota-Reset": reset_iso,
                "Retry-After": str(retry_after),
            },
        )
