from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ecotrack.api.dependencies import (
    get_audit_logger,
    get_bill_extractor,
    get_quota_tracker,
    get_usage_guard,
)
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import quota_headers, success
from ecotrack.application.auth.context import RequestContext
from ecotrack.application.services.quota_tracker import QuotaTracker
from ecotrack.application.services.usage_guard import UsageGuard
from ecotrack.core.audit import AuditLogger
from ecotrack.core.errors import ValidationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.audit import AuditAction, AuditResource
from ecotrack.domain.entries import LOW_CONFIDENCE_THRESHOLD
from ecotrack.domain.extraction import BillExtractor, BillImage
from ecotrack.domain.limits import Operation
from ecotrack.domain.permissions import Permission

router = APIRouter(prefix="/api/analyze", tags=["analyze"])
logger = get_logger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"


class AnalyzeBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_base64: str | None = None
    image_url: str | None = None
    mime_type: str | None = None


@router.post("")
async def analyze_bill(
    body: AnalyzeBody,
    ctx: RequestContext = Depends(permission_required(Permission.CREATE_ENTRIES)),
    guard: UsageGuard = Depends(get_usage_guard),
    quota: QuotaTracker = Depends(get_quota_tracker),
    extractor: BillExtractor = Depends(get_bill_extractor),
    audit: AuditLogger = Depends(get_audit_logger),
) -> JSONResponse:
    """Extract bill fields from an image, charging one billAnalysis unit."""

    tenant_id = ctx.principal.require_tenant()
    if not body.image_base64 and not body.image_url:
        raise ValidationError("No image provided", code="MISSING_IMAGE")

    await guard.admit(
        tenant_id,
        Operation.BILL_ANALYSIS,
        bypass=ctx.principal.is_superadmin,
    )

    request_id = uuid.uuid4().hex
    extraction = await extractor.extract(
        BillImage(
            mime_type=body.mime_type or DEFAULT_MIME_TYPE,
            data_base64=body.image_base64,
            url=body.image_url,
        ),
        request_id=request_id,
    )

    await guard.record(tenant_id, Operation.BILL_ANALYSIS)
    status = await quota.get_quota_status(tenant_id, Operation.BILL_ANALYSIS)

    fields = extraction.fields
    await audit.log(
        tenant_id=tenant_id,
        user_id=ctx.principal.user_id,
        user_name=ctx.principal.name,
        user_email=ctx.principal.email,
        user_role=ctx.principal.role.value,
        action=AuditAction.UPLOAD,
        resource=AuditResource.BILL,
        details=(
            f"Analyzed {fields.get('utilityType')} bill"
            f" from {fields.get('provider') or 'unknown provider'} via {extractor.name}"
        ),
        ip_address=ctx.client_ip,
        user_agent=ctx.user_agent,
        request_id=request_id,
    )

    confidence = extraction.confidence
    if confidence is not None and confidence < LOW_CONFIDENCE_THRESHOLD:
        message = "Low confidence extraction - please review carefully"
    else:
        message = "Bill extracted successfully"
    logger.info(
        "Bill analyzed",
        extra={"eco_extra": {"tenant_id": tenant_id, "request_id": request_id, "confidence": confidence}},
    )
    return success(fields, message=message, headers=quota_headers(status))
