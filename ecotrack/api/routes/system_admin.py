from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ecotrack.api.dependencies import (
    get_audit_logger,
    get_limits_config,
    get_quota_tracker,
    get_rate_limiter,
)
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import success
from ecotrack.application.auth.context import RequestContext
from ecotrack.application.services.limits_config import LimitsConfigProvider
from ecotrack.application.services.quota_tracker import QuotaTracker
from ecotrack.application.services.rate_limiter import RateLimiter
from ecotrack.core.audit import AuditLogger
from ecotrack.core.errors import ValidationError
from ecotrack.domain.audit import AuditAction, AuditResource, AuditSeverity
from ecotrack.domain.limits import Operation, QuotaConfig, RateLimitConfig
from ecotrack.domain.permissions import Permission

router = APIRouter(prefix="/api/system-admin", tags=["system-admin"])


class _CamelBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RateLimitsUpdate(_CamelBody):
    rate_limits: dict[str, Any] | None = None
    quotas: dict[str, Any] | None = None


class RateLimitsReset(_CamelBody):
    tenant_id: str | None = None
    operation: Operation | None = None
    reset_quota: bool = False


def _limits_payload(rate_limits: RateLimitConfig, quotas: QuotaConfig) -> dict[str, Any]:
    return {
        "rateLimits": rate_limits.model_dump(mode="json", by_alias=True),
        "quotas": quotas.model_dump(mode="json", by_alias=True),
    }


@router.get("/rate-limits")
async def get_rate_limits(
    _: RequestContext = Depends(permission_required(Permission.VIEW_SYSTEM_CONFIG)),
    limits: LimitsConfigProvider = Depends(get_limits_config),
) -> JSONResponse:
    rate_limits = await limits.get_rate_limit_config(force_refresh=True)
    quotas = await limits.get_quota_config()
    return success({**_limits_payload(rate_limits, quotas), "cache": limits.cache_status()})


@router.patch("/rate-limits")
async def update_rate_limits(
    body: RateLimitsUpdate,
    ctx: RequestContext = Depends(permission_required(Permission.UPDATE_SYSTEM_CONFIG)),
    limits: LimitsConfigProvider = Depends(get_limits_config),
) -> JSONResponse:
    """Merge partial rate-limit and quota sections into the global config."""

    rate_limits, quotas = await limits.update(
        rate_limits=body.rate_limits,
        quotas=body.quotas,
        updated_by=ctx.principal.user_id,
    )
    return success(
        _limits_payload(rate_limits, quotas),
        message="Rate limit configuration updated successfully",
    )


@router.post("/rate-limits")
async def reset_rate_limits(
    body: RateLimitsReset,
    ctx: RequestContext = Depends(permission_required(Permission.UPDATE_SYSTEM_CONFIG)),
    quota: QuotaTracker = Depends(get_quota_tracker),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    audit: AuditLogger = Depends(get_audit_logger),
) -> JSONResponse:
    """Clear a tenant's window counters, and optionally its monthly quota."""

    if not body.tenant_id:
        raise ValidationError("tenantId is required")

    tenant = await quota.get_tenant(body.tenant_id)
    deleted = await rate_limiter.clear_rate_limit(tenant.id, body.operation)
    if body.reset_quota:
        await quota.reset_quota(tenant.id)

    if body.operation is not None:
        message = f"Rate limits reset for {body.operation.value} for tenant {tenant.id}"
    else:
        message = f"All rate limits reset for tenant {tenant.id}"
    if body.reset_quota:
        message += " (monthly quota reset)"

    await audit.log(
        tenant_id=tenant.id,
        user_id=ctx.principal.user_id,
        user_name=ctx.principal.name,
        user_email=ctx.principal.email,
        user_role=ctx.principal.role.value,
        action=AuditAction.SETTINGS_CHANGE,
        resource=AuditResource.SUBSCRIPTION,
        resource_id=tenant.id,
        details=message,
        ip_address=ctx.client_ip,
        user_agent=ctx.user_agent,
        severity=AuditSeverity.WARNING,
    )
    return success(
        {
            "tenantId": tenant.id,
            "operation": body.operation.value if body.operation is not None else None,
            "clearedCounters": deleted,
            "quotaReset": body.reset_quota,
        },
        message=message,
    )
