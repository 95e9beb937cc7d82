from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.domain.entries import (
    Entry,
    EntryStatus,
    ExtractionMethod,
    UsageUnit,
    UtilityType,
)
from ecotrack.domain.analytics import TenantMonthTotal
from ecotrack.infrastructure.models import EntryModel, TenantModel


class SqlAlchemyEntryRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, entry: Entry) -> Entry:
        model = EntryModel(
            id=entry.id,
            tenant_id=entry.tenant_id,
            user_id=entry.user_id,
            user_name=entry.user_name,
            utility_type=entry.utility_type.value,
            provider=entry.provider,
            region=entry.region,
            usage=entry.usage,
            unit=entry.unit.value,
            amount=entry.amount,
            currency=entry.currency,
            co2e=entry.co2e,
            emission_factor=entry.emission_factor,
            calculation_method=entry.calculation_method,
            billing_date=entry.billing_date,
            billing_period_start=entry.billing_period_start,
            billing_period_end=entry.billing_period_end,
            account_number=entry.account_number,
            meter_number=entry.meter_number,
            extraction_method=entry.extraction_method.value,
            confidence=entry.confidence,
            status=entry.status.value,
            bill_image_url=entry.bill_image_url,
            notes=entry.notes,
            tags=list(entry.tags),
        )
        self._session.add(model)
        await self._session.commit()
        return self._to_domain(model)

    async def list_for_tenant(
        self,
        tenant_id: str,
        *,
        limit: int,
        utility_type: UtilityType | None = None,
        status: EntryStatus | None = None,
    ) -> list[Entry]:
        stmt = select(EntryModel).where(EntryModel.tenant_id == tenant_id)
        if utility_type is not None:
            stmt = stmt.where(EntryModel.utility_type == utility_type.value)
        if status is not None:
            stmt = stmt.where(EntryModel.status == status.value)
        stmt = stmt.order_by(EntryModel.billing_date.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def in_period(self, tenant_id: str, start: datetime, end: datetime) -> list[Entry]:
        """Entries billed in ``[start, end)``, excluding rejected ones."""

        stmt = (
            select(EntryModel)
            .where(
                EntryModel.tenant_id == tenant_id,
                EntryModel.billing_date >= start,
                EntryModel.billing_date < end,
                EntryModel.status != EntryStatus.REJECTED.value,
            )
            .order_by(EntryModel.billing_date)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def tenant_totals(self, start: datetime, end: datetime) -> list[TenantMonthTotal]:
        """Verified CO2e per tenant for entries billed in ``[start, end)``."""

        stmt = (
            select(
                EntryModel.tenant_id,
                TenantModel.company_name,
                TenantModel.sector,
                TenantModel.state,
                func.sum(EntryModel.co2e),
                func.count(EntryModel.id),
            )
            .join(TenantModel, TenantModel.id == EntryModel.tenant_id)
            .where(
                EntryModel.billing_date >= start,
                EntryModel.billing_date < end,
                EntryModel.status == EntryStatus.VERIFIED.value,
            )
            .group_by(
                EntryModel.tenant_id,
                TenantModel.company_name,
                TenantModel.sector,
                TenantModel.state,
            )
        )
        result = await self._session.execute(stmt)
        return [
            TenantMonthTotal(
                tenant_id=tenant_id,
                tenant_name=name,
                sector=sector,
                state=state,
                total_co2e=round(float(total or 0.0), 2),
                entry_count=int(count),
            )
            for tenant_id, name, sector, state, total, count in result.all()
        ]

    @staticmethod
    def _to_domain(model: EntryModel) -> Entry:
        return Entry(
            id=model.id,
            tenant_id=model.tenant_id,
            user_id=model.user_id,
            user_name=model.user_name,
            utility_type=UtilityType(model.utility_type),
            provider=model.provider,
            region=model.region,
            usage=model.usage,
            unit=UsageUnit(model.unit),
            amount=model.amount,
            currency=model.currency,
            co2e=model.co2e,
            emission_factor=model.emission_factor,
            calculation_method=model.calculation_method,
            billing_date=model.billing_date,
            billing_period_start=model.billing_period_start,
            billing_period_end=model.billing_period_end,
            account_number=model.account_number,
            meter_number=model.meter_number,
            extraction_method=ExtractionMethod(model.extraction_method),
            confidence=model.confidence,
            status=EntryStatus(model.status),
            bill_image_url=model.bill_image_url,
            notes=model.notes,
            tags=list(model.tags or []),
            created_at=model.created_at,
        )
