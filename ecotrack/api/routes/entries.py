from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ecotrack.api.dependencies import get_entry_service
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import iso, success
from ecotrack.application.auth.context import RequestContext
from ecotrack.application.services.entries import DEFAULT_LIST_LIMIT, EntryService, NewEntry
from ecotrack.domain.entries import Entry, EntryStatus, ExtractionMethod, UsageUnit, UtilityType
from ecotrack.domain.permissions import Permission

router = APIRouter(prefix="/api/entries", tags=["entries"])


class CreateEntryBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    utility_type: UtilityType | None = None
    usage: float | None = Field(default=None, ge=0)
    unit: UsageUnit | None = None
    billing_date: datetime | None = None
    amount: float | None = Field(default=None, ge=0)
    extraction_method: ExtractionMethod | None = None
    provider: str | None = None
    currency: str | None = Field(default=None, max_length=3)
    account_number: str | None = None
    meter_number: str | None = None
    billing_period_start: datetime | None = None
    billing_period_end: datetime | None = None
    bill_image_url: str | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)


def entry_to_dict(entry: Entry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "tenantId": entry.tenant_id,
        "userId": entry.user_id,
        "userName": entry.user_name,
        "utilityType": entry.utility_type.value,
        "provider": entry.provider,
        "region": entry.region,
        "usage": entry.usage,
        "unit": entry.unit.value,
        "amount": entry.amount,
        "currency": entry.currency,
        "co2e": entry.co2e,
        "emissionFactor": entry.emission_factor,
        "calculationMethod": entry.calculation_method,
        "billingDate": iso(entry.billing_date),
        "billingPeriodStart": iso(entry.billing_period_start),
        "billingPeriodEnd": iso(entry.billing_period_end),
        "accountNumber": entry.account_number,
        "meterNumber": entry.meter_number,
        "extractionMethod": entry.extraction_method.value,
        "confidence": entry.confidence,
        "status": entry.status.value,
        "billImageUrl": entry.bill_image_url,
        "notes": entry.notes,
        "tags": entry.tags,
        "createdAt": iso(entry.created_at),
    }


@router.post("", status_code=201)
async def create_entry(
    body: CreateEntryBody,
    ctx: RequestContext = Depends(permission_required(Permission.CREATE_ENTRIES)),
    service: EntryService = Depends(get_entry_service),
) -> JSONResponse:
    entry = await service.create_entry(ctx, NewEntry(**body.model_dump()))
    return success(entry_to_dict(entry), message="Entry created successfully", status_code=201)


@router.get("")
async def list_entries(
    limit: int = Query(default=DEFAULT_LIST_LIMIT),
    utility_type: UtilityType | None = Query(default=None, alias="utilityType"),
    status: EntryStatus | None = Query(default=None),
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_ENTRIES)),
    service: EntryService = Depends(get_entry_service),
) -> JSONResponse:
    entries = await service.list_entries(
        ctx.principal.require_tenant(),
        limit=limit,
        utility_type=utility_type,
        status=status,
    )
    return success([entry_to_dict(e) for e in entries], count=len(entries))
