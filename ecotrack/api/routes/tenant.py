from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ecotrack.api.dependencies import get_limits_config, get_quota_tracker, get_rate_limiter
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import success
from ecotrack.application.auth.context import RequestContext
from ecotrack.application.services.limits_config import LimitsConfigProvider
from ecotrack.application.services.quota_tracker import QuotaTracker
from ecotrack.application.services.rate_limiter import RateLimiter, RateLimitStatus
from ecotrack.domain.limits import Operation, RateLimitWindow
from ecotrack.domain.permissions import Permission
from ecotrack.domain.quota import QuotaResult

router = APIRouter(prefix="/api/tenant", tags=["tenant"])


def quota_to_dict(result: QuotaResult) -> dict[str, Any]:
    return {
        "current": result.current,
        "limit": result.limit,
        "remaining": result.remaining,
        "resetTime": result.reset_time.isoformat(),
        "percentUsed": round(result.percent_used),
        "unlimited": result.unlimited,
    }


def usage_to_dict(status: RateLimitStatus) -> dict[str, Any]:
    return {
        "current": status.current,
        "limit": status.limit,
        "remaining": status.remaining,
        "resetTime": status.reset_time.isoformat(),
        "percentage": round(status.current / status.limit * 100) if status.limit > 0 else 0,
    }


@router.get("/quota")
async def get_quota(
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_TENANT)),
    quota: QuotaTracker = Depends(get_quota_tracker),
) -> JSONResponse:
    """Monthly usage of the quota-tracked operations for the caller's tenant."""

    tenant_id = ctx.principal.require_tenant()
    bill = await quota.get_quota_status(tenant_id, Operation.BILL_ANALYSIS)
    report = await quota.get_quota_status(tenant_id, Operation.REPORT_GENERATION)
    return success(
        {
            "billAnalysis": quota_to_dict(bill),
            "reportGeneration": quota_to_dict(report),
            "tenantId": tenant_id,
        },
    )


@router.get("/usage")
async def get_usage(
    request: Request,
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_TENANT)),
    limits: LimitsConfigProvider = Depends(get_limits_config),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> JSONResponse:
    """Short-window (per-minute) usage for the caller's tenant."""

    tenant_id = ctx.principal.require_tenant()
    window_ms = request.app.state.settings.rate_limit_window_ms

    data: dict[str, Any] = {}
    for operation in Operation:
        limit = await limits.get_rate_limit_for_operation(operation, RateLimitWindow.MINUTE)
        status = await rate_limiter.get_rate_limit_status(tenant_id, operation, limit, window_ms)
        data[operation.value] = usage_to_dict(status)
    data["tenantId"] = tenant_id
    return success(data)
