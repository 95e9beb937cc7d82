from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.application.auth.context import RequestContext
from ecotrack.core.audit import AuditLogger
from ecotrack.core.clock import Clock, as_utc, utcnow
from ecotrack.core.errors import ValidationError
from ecotrack.domain.audit import AuditAction, AuditResource
from ecotrack.domain.entries import Entry
from ecotrack.domain.quota import month_bounds
from ecotrack.domain.reports import (
    DEFAULT_LIST_LIMIT,
    MAX_LIST_LIMIT,
    Report,
    ReportStatus,
    ReportType,
)
from ecotrack.infrastructure.repositories.entries import SqlAlchemyEntryRepository
from ecotrack.infrastructure.repositories.reports import SqlAlchemyReportRepository


@dataclass(frozen=True)
class ReportRequest:
    report_type: ReportType = ReportType.MONTHLY
    title: str | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None


def summarize_entries(entries: list[Entry]) -> dict[str, dict[str, float]]:
    """Total usage, CO2e, cost and entry count per utility type."""

    breakdown: dict[str, dict[str, float]] = {}
    for entry in entries:
        bucket = breakdown.setdefault(
            entry.utility_type.value,
            {"usage": 0.0, "co2e": 0.0, "amount": 0.0, "entries": 0},
        )
        bucket["usage"] += entry.usage
        bucket["co2e"] += entry.co2e
        bucket["amount"] += entry.amount
        bucket["entries"] += 1
    for bucket in breakdown.values():
        for key in ("usage", "co2e", "amount"):
            bucket[key] = round(bucket[key], 2)
    return breakdown


class ReportService:
    """Aggregates a tenant's entries into stored ESG report records.

    Rendering the report document (PDF, spreadsheet) happens elsewhere; this
    service records the figures it is built from.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: AuditLogger,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._clock = clock

    async def generate(self, ctx: RequestContext, request: ReportRequest) -> Report:
        tenant_id = ctx.principal.require_tenant()
        now = self._clock()

        start, end = request.period_start, request.period_end
        if start is None or end is None:
            start, end = month_bounds(now)
        start, end = as_utc(start), as_utc(end)
        if start >= end:
            raise ValidationError("periodStart must be before periodEnd")

        async with self._session_factory() as session:
            entries = await SqlAlchemyEntryRepository(session).in_period(tenant_id, start, end)
            breakdown = summarize_entries(entries)
            title = request.title or (
                f"{request.report_type.value.capitalize()} ESG Report "
                f"{start.date().isoformat()} to {end.date().isoformat()}"
            )
            report = await SqlAlchemyReportRepository(session).add(
                Report(
                    id=str(uuid.uuid4()),
                    tenant_id=tenant_id,
                    title=title,
                    report_type=request.report_type,
                    status=ReportStatus.COMPLETED,
                    period_start=start,
                    period_end=end,
                    total_co2e=round(sum(e.co2e for e in entries), 2),
                    entry_count=len(entries),
                    breakdown=breakdown,
                    generated_by=ctx.principal.user_id,
                    generated_by_name=ctx.principal.name,
                    generation_completed_at=now,
                ),
            )

        await self._audit.log(
            tenant_id=tenant_id,
            user_id=ctx.principal.user_id,
            user_name=ctx.principal.name,
            user_email=ctx.principal.email,
            user_role=ctx.principal.role.value,
            action=AuditAction.GENERATE_REPORT,
            resource=AuditResource.REPORT,
            resource_id=report.id,
            details=f'Generated report "{report.title}" covering {report.entry_count} entries',
            ip_address=ctx.client_ip,
            user_agent=ctx.user_agent,
        )
        return report

    async def list_reports(
        self,
        tenant_id: str,
        *,
        limit: int = DEFAULT_LIST_LIMIT,
        status: ReportStatus | None = None,
        report_type: ReportType | None = None,
    ) -> list[Report]:
        async with self._session_factory() as session:
            return await SqlAlchemyReportRepository(session).list_for_tenant(
                tenant_id,
                limit=max(1, min(limit, MAX_LIST_LIMIT)),
                status=status,
                report_type=report_type,
            )
