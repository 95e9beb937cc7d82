from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.domain.reports import Report, ReportStatus, ReportType
from ecotrack.infrastructure.models import ReportModel


class SqlAlchemyReportRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, report: Report) -> Report:
        model = ReportModel(
            id=report.id,
            tenant_id=report.tenant_id,
            title=report.title,
            report_type=report.report_type.value,
            status=report.status.value,
            period_start=report.period_start,
            period_end=report.period_end,
            total_co2e=report.total_co2e,
            entry_count=report.entry_count,
            breakdown=report.breakdown,
            generated_by=report.generated_by,
            generated_by_name=report.generated_by_name,
            generation_completed_at=report.generation_completed_at,
        )
        self._session.add(model)
        await self._session.commit()
        return self._to_domain(model)

    async def list_for_tenant(
        self,
        tenant_id: str,
        *,
        limit: int,
        status: ReportStatus | None = None,
        report_type: ReportType | None = None,
    ) -> list[Report]:
        stmt = select(ReportModel).where(ReportModel.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(ReportModel.status == status.value)
        if report_type is not None:
            stmt = stmt.where(ReportModel.report_type == report_type.value)
        stmt = stmt.order_by(ReportModel.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    @staticmethod
    def _to_domain(model: ReportModel) -> Report:
        return Report(
            id=model.id,
            tenant_id=model.tenant_id,
            title=model.title,
            report_type=ReportType(model.report_type),
            status=ReportStatus(model.status),
            period_start=model.period_start,
            period_end=model.period_end,
            total_co2e=model.total_co2e,
            entry_count=model.entry_count,
            breakdown=dict(model.breakdown or {}),
            generated_by=model.generated_by,
            generated_by_name=model.generated_by_name,
            created_at=model.created_at,
            generation_completed_at=model.generation_completed_at,
        )
