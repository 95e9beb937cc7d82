from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from ecotrack.domain.limits import UNLIMITED, Operation
from ecotrack.domain.tenants import MonthlyUsage, SubscriptionTier, Tenant, TenantStatus
from ecotrack.infrastructure.models import TenantModel


def usage_column(operation: Operation) -> InstrumentedAttribute[int]:
    if operation is Operation.REPORT_GENERATION:
        return TenantModel.usage_report_generation_count
    return TenantModel.usage_bill_analysis_count


class SqlAlchemyTenantRepository:
    """Tenant persistence, including the embedded monthly usage counters.

    Usage mutations are single conditional UPDATE statements so concurrent
    requests cannot push a counter past its cap or roll a period twice.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tenant_id: str) -> Tenant | None:
        row = await self._session.get(TenantModel, tenant_id, populate_existing=True)
        if row is None:
            return None
        return self._to_domain(row)

    async def exists_with_uen(self, uen: str) -> bool:
        stmt = select(TenantModel.id).where(TenantModel.uen == uen).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def add(self, model: TenantModel) -> None:
        self._session.add(model)
        await self._session.flush()

    async def roll_period(
        self,
        tenant_id: str,
        *,
        period_start: datetime,
        period_end: datetime,
        now: datetime,
        force: bool = False,
    ) -> bool:
        """Zero the counters and move the period to ``[period_start, period_end)``.

        Without ``force`` the update only applies while the stored period is
        missing or has ended at ``now``. Returns whether a row was updated.
        """

        stmt = (
            update(TenantModel)
            .where(TenantModel.id == tenant_id)
            .values(
                usage_bill_analysis_count=0,
                usage_report_generation_count=0,
                usage_period_start=period_start,
                usage_period_end=period_end,
                usage_last_reset=now,
                usage_updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if not force:
            stmt = stmt.where(
                or_(
                    TenantModel.usage_period_end.is_(None),
                    TenantModel.usage_period_start.is_(None),
                    TenantModel.usage_period_end <= now,
                ),
            )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount > 0

    async def increment_usage(
        self,
        tenant_id: str,
        operation: Operation,
        *,
        limit: int,
        now: datetime,
    ) -> bool:
        """Atomically add one to the operation counter.

        When ``limit`` is not unlimited the increment only applies while the
        counter is below it. Returns whether the increment was applied.
        """

        column = usage_column(operation)
        stmt = (
            update(TenantModel)
            .where(TenantModel.id == tenant_id)
            .values({column: column + 1, TenantModel.usage_updated_at: now})
            .execution_options(synchronize_session=False)
        )
        if limit != UNLIMITED:
            stmt = stmt.where(column < limit)
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount > 0

    async def add_entry_aggregates(self, tenant_id: str, *, co2e: float, now: datetime) -> None:
        await self._session.execute(
            update(TenantModel)
            .where(TenantModel.id == tenant_id)
            .values(
                total_entries=TenantModel.total_entries + 1,
                total_emissions=TenantModel.total_emissions + co2e,
                current_month_emissions=TenantModel.current_month_emissions + co2e,
                last_activity=now,
            )
            .execution_options(synchronize_session=False),
        )
        await self._session.commit()

    @staticmethod
    def _to_domain(model: TenantModel) -> Tenant:
        return Tenant(
            id=model.id,
            company_name=model.company_name,
            uen=model.uen,
            sector=model.sector,
            address=model.address,
            city=model.city,
            state=model.state,
            postal_code=model.postal_code,
            phone=model.phone,
            email=model.email,
            status=TenantStatus(model.status),
            subscription_tier=SubscriptionTier(model.subscription_tier),
            usage=MonthlyUsage(
                bill_analysis_count=model.usage_bill_analysis_count,
                report_generation_count=model.usage_report_generation_count,
                period_start=model.usage_period_start,
                period_end=model.usage_period_end,
                last_reset=model.usage_last_reset,
            ),
            pdpa_consent_at=model.pdpa_consent_at,
            created_at=model.created_at,
        )
