from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.application.services.limits_config import LimitsConfigProvider
from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import NotFoundError
from ecotrack.core.logging import get_logger
from ecotrack.domain.limits import Operation
from ecotrack.domain.quota import QuotaResult, evaluate_quota, month_bounds
from ecotrack.domain.tenants import MonthlyUsage, Tenant
from ecotrack.infrastructure.repositories.tenants import SqlAlchemyTenantRepository
from ecotrack.monitoring.metrics import QUOTA_INCREMENTS_TOTAL

logger = get_logger(__name__)


def _count_for(usage: MonthlyUsage, operation: Operation) -> int:
    if operation is Operation.REPORT_GENERATION:
        return usage.report_generation_count
    return usage.bill_analysis_count


class QuotaTracker:
    """Monthly, tier-based quotas for expensive operations.

    Checking never increments. Callers run the guarded operation and then call
    :meth:`record_usage`, which increments conditionally so the stored count
    stays at or below the tier cap. Periods roll over lazily: the first read
    after ``period_end`` zeroes the counters and recomputes the bounds from
    the current time, so a tenant idle for several months lands in the
    current month rather than the month after its stale period.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        limits: LimitsConfigProvider,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._limits = limits
        self._clock = clock

    async def check_quota(
        self,
        tenant_id: str,
        operation: Operation,
        bypass: bool = False,
    ) -> QuotaResult:
        """Return whether ``operation`` is within the tenant's monthly quota.

        Args:
            tenant_id: Tenant to check.
            operation: Quota-tracked operation.
            bypass: Allow regardless of usage (superadmin callers).

        Raises:
            NotFoundError: if the tenant does not exist.
        """

        tenant = await self._current_period(tenant_id)
        quotas = await self._limits.get_quota_config()
        limit = quotas.limit_for(tenant.subscription_tier, operation)

        return evaluate_quota(
            current=_count_for(tenant.usage, operation),
            limit=limit,
            reset_time=tenant.usage.period_end or month_bounds(self._clock())[1],
            bypass=bypass,
        )

    async def get_quota_status(self, tenant_id: str, operation: Operation) -> QuotaResult:
        return await self.check_quota(tenant_id, operation)

    async def record_usage(self, tenant_id: str, operation: Operation) -> bool:
        """Count one successful run of ``operation`` against the tenant.

        Returns ``False`` when the counter was already at the cap, which
        happens when concurrent requests passed the check together or when a
        bypassing caller ran past the cap.
        """

        tenant = await self._current_period(tenant_id)
        quotas = await self._limits.get_quota_config()
        limit = quotas.limit_for(tenant.subscription_tier, operation)

        async with self._session_factory() as session:
            applied = await SqlAlchemyTenantRepository(session).increment_usage(
                tenant_id,
                operation,
                limit=limit,
                now=self._clock(),
            )

        if applied:
            QUOTA_INCREMENTS_TOTAL.labels(operation=operation.value, outcome="applied").inc()
        else:
            QUOTA_INCREMENTS_TOTAL.labels(operation=operation.value, outcome="at_cap").inc()
            logger.warning(
                "Quota increment skipped, counter already at cap",
                extra={
                    "eco_extra": {
                        "tenant_id": tenant_id,
                        "operation": operation.value,
                        "limit": limit,
                    },
                },
            )
        return applied

    async def reset_quota(self, tenant_id: str) -> None:
        """Zero the tenant's counters and start a period for the current month."""

        now = self._clock()
        start, end = month_bounds(now)
        async with self._session_factory() as session:
            updated = await SqlAlchemyTenantRepository(session).roll_period(
                tenant_id,
                period_start=start,
                period_end=end,
                now=now,
                force=True,
            )
        if not updated:
            raise NotFoundError("Tenant not found")
        logger.info("Monthly quota reset", extra={"eco_extra": {"tenant_id": tenant_id}})

    async def initialize_quota(self, tenant_id: str) -> None:
        await self._current_period(tenant_id)

    async def get_tenant(self, tenant_id: str) -> Tenant:
        """Return the tenant with its usage rolled into the current period."""
        return await self._current_period(tenant_id)

    async def _current_period(self, tenant_id: str) -> Tenant:
        now = self._clock()
        async with self._session_factory() as session:
            repo = SqlAlchemyTenantRepository(session)
            tenant = await repo.get(tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found")
            if not tenant.usage.needs_rollover(now):
                return tenant

            start, end = month_bounds(now)
            rolled = await repo.roll_period(
                tenant_id,
                period_start=start,
                period_end=end,
                now=now,
            )
            if rolled:
                logger.info(
                    "Monthly usage period rolled over",
                    extra={
                        "eco_extra": {
                            "tenant_id": tenant_id,
                            "period_start": start.isoformat(),
                            "period_end": end.isoformat(),
                        },
                    },
                )
            tenant = await repo.get(tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found")
            return tenant
