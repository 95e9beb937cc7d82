from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ecotrack.api.dependencies import get_audit_logger, get_request_context
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import iso, success
from ecotrack.application.auth.context import RequestContext
from ecotrack.core.audit import AuditLogger
from ecotrack.core.errors import ValidationError
from ecotrack.domain.audit import AuditAction, AuditResource, AuditSeverity, AuditStatus
from ecotrack.domain.permissions import Permission
from ecotrack.infrastructure.models import AuditLogModel

router = APIRouter(prefix="/api/audit-logs", tags=["audit-logs"])


class AuditLogBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: AuditAction | None = None
    resource: AuditResource | None = None
    details: str | None = None
    resource_id: str | None = None
    status: AuditStatus = AuditStatus.SUCCESS
    severity: AuditSeverity = AuditSeverity.INFO
    error_message: str | None = None
    error_code: str | None = None
    change_log: list[dict[str, Any]] | None = None


def audit_log_to_dict(row: AuditLogModel) -> dict[str, Any]:
    return {
        "id": row.id,
        "tenantId": row.tenant_id,
        "userId": row.user_id,
        "userName": row.user_name,
        "userEmail": row.user_email,
        "userRole": row.user_role,
        "action": row.action,
        "resource": row.resource,
        "resourceId": row.resource_id,
        "details": row.details,
        "ipAddress": row.ip_address,
        "userAgent": row.user_agent,
        "status": row.status,
        "severity": row.severity,
        "errorMessage": row.error_message,
        "errorCode": row.error_code,
        "changeLog": row.change_log,
        "retainUntil": iso(row.retain_until),
        "hash": row.hash,
        "prevHash": row.prev_hash,
        "createdAt": iso(row.created_at),
    }


@router.post("", status_code=201)
async def create_audit_log(
    body: AuditLogBody,
    ctx: RequestContext = Depends(get_request_context),
    audit: AuditLogger = Depends(get_audit_logger),
) -> JSONResponse:
    """Record a client-reported event against the caller's tenant."""

    tenant_id = ctx.principal.require_tenant()
    if body.action is None or body.resource is None or not body.details:
        raise ValidationError(
            "Missing required fields: action, resource, details",
            code="MISSING_FIELDS",
        )

    row = await audit.log(
        tenant_id=tenant_id,
        user_id=ctx.principal.user_id,
        user_name=ctx.principal.name,
        user_email=ctx.principal.email,
        user_role=ctx.principal.role.value,
        action=body.action,
        resource=body.resource,
        resource_id=body.resource_id,
        details=body.details,
        ip_address=ctx.client_ip,
        user_agent=ctx.user_agent,
        status=body.status,
        severity=body.severity,
        error_message=body.error_message,
        error_code=body.error_code,
        change_log=body.change_log,
    )
    return success(
        {"id": row.id, "hash": row.hash, "createdAt": iso(row.created_at)},
        message="Audit log created",
        status_code=201,
    )


@router.get("")
async def list_audit_logs(
    limit: int = Query(default=50, ge=1, le=500),
    action: AuditAction | None = Query(default=None),
    resource: AuditResource | None = Query(default=None),
    since: datetime | None = Query(default=None),
    verify: bool = Query(default=False),
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_AUDIT_LOGS)),
    audit: AuditLogger = Depends(get_audit_logger),
) -> JSONResponse:
    tenant_id = ctx.principal.require_tenant()
    rows = await audit.list_for_tenant(
        tenant_id,
        limit=limit,
        action=action.value if action is not None else None,
        resource=resource.value if resource is not None else None,
        since=since,
    )
    extra: dict[str, Any] = {"count": len(rows)}
    if verify:
        extra["chainValid"] = await audit.verify_chain(tenant_id, limit=limit)
    return success([audit_log_to_dict(row) for row in rows], **extra)
