from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ecotrack.api.dependencies import get_report_service, get_usage_guard
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import iso, success
from ecotrack.application.auth.context import RequestContext
from ecotrack.application.services.reports import ReportRequest, ReportService
from ecotrack.application.services.usage_guard import UsageGuard
from ecotrack.core.clock import as_utc
from ecotrack.domain.limits import Operation
from ecotrack.domain.permissions import Permission
from ecotrack.domain.reports import DEFAULT_LIST_LIMIT, Report, ReportStatus, ReportType

router = APIRouter(prefix="/api/reports", tags=["reports"])


class GenerateReportBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    report_type: ReportType = ReportType.MONTHLY
    title: str | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None

    @field_validator("period_start", "period_end")
    @classmethod
    def _normalise_period(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _check_period_order(self) -> GenerateReportBody:
        if self.period_start and self.period_end and self.period_start >= self.period_end:
            raise ValueError("periodStart must be before periodEnd")
        return self


def report_to_dict(report: Report) -> dict[str, Any]:
    return {
        "id": report.id,
        "tenantId": report.tenant_id,
        "title": report.title,
        "reportType": report.report_type.value,
        "status": report.status.value,
        "periodStart": iso(report.period_start),
        "periodEnd": iso(report.period_end),
        "totalCo2e": report.total_co2e,
        "entryCount": report.entry_count,
        "breakdown": report.breakdown,
        "generatedBy": report.generated_by,
        "generatedByName": report.generated_by_name,
        "createdAt": iso(report.created_at),
        "generationCompletedAt": iso(report.generation_completed_at),
    }


@router.get("")
async def list_reports(
    limit: int = Query(default=DEFAULT_LIST_LIMIT),
    status: ReportStatus | None = Query(default=None),
    report_type: ReportType | None = Query(default=None, alias="reportType"),
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_REPORTS)),
    service: ReportService = Depends(get_report_service),
) -> JSONResponse:
    reports = await service.list_reports(
        ctx.principal.require_tenant(),
        limit=limit,
        status=status,
        report_type=report_type,
    )
    return success({"reports": [report_to_dict(r) for r in reports], "count": len(reports)})


@router.post("", status_code=201)
async def generate_report(
    body: GenerateReportBody,
    ctx: RequestContext = Depends(permission_required(Permission.GENERATE_REPORTS)),
    guard: UsageGuard = Depends(get_usage_guard),
    service: ReportService = Depends(get_report_service),
) -> JSONResponse:
    """Aggregate the period's entries into a stored report; one reportGeneration unit."""

    tenant_id = ctx.principal.require_tenant()
    await guard.admit(
        tenant_id,
        Operation.REPORT_GENERATION,
        bypass=ctx.principal.is_superadmin,
    )
    report = await service.generate(
        ctx,
        ReportRequest(
            report_type=body.report_type,
            title=body.title,
            period_start=body.period_start,
            period_end=body.period_end,
        ),
    )
    await guard.record(tenant_id, Operation.REPORT_GENERATION)
    return success(report_to_dict(report), message="Report generated successfully", status_code=201)
