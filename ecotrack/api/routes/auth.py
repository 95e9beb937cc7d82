from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ecotrack.api.dependencies import get_tenant_service
from ecotrack.api.middleware.auth import client_ip_from
from ecotrack.api.responses import iso, success
from ecotrack.application.services.tenants import TenantRegistration, TenantService
from ecotrack.domain.tenants import Tenant
from ecotrack.domain.users import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


class _CamelBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterTenantBody(_CamelBody):
    company_name: str | None = None
    uen: str | None = None
    sector: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    admin_name: str | None = None
    admin_email: str | None = None
    admin_phone: str | None = None
    admin_password: str | None = None
    pdpa_consent: bool | None = None


class SignInBody(_CamelBody):
    email: str | None = None
    password: str | None = None


def tenant_to_dict(tenant: Tenant) -> dict[str, Any]:
    return {
        "id": tenant.id,
        "name": tenant.company_name,
        "uen": tenant.uen,
        "sector": tenant.sector,
        "address": tenant.address,
        "city": tenant.city,
        "state": tenant.state,
        "postalCode": tenant.postal_code,
        "phone": tenant.phone,
        "email": tenant.email,
        "status": tenant.status.value,
        "subscriptionTier": tenant.subscription_tier.value,
        "monthlyUsage": {
            "billAnalysisCount": tenant.usage.bill_analysis_count,
            "reportGenerationCount": tenant.usage.report_generation_count,
            "periodStart": iso(tenant.usage.period_start),
            "periodEnd": iso(tenant.usage.period_end),
            "lastReset": iso(tenant.usage.last_reset),
        },
        "pdpaConsentAt": iso(tenant.pdpa_consent_at),
        "createdAt": iso(tenant.created_at),
    }


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "tenantId": user.tenant_id,
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "status": user.status.value,
        "phone": user.phone,
        "jobTitle": user.job_title,
        "avatarUrl": user.avatar_url,
        "entriesCreated": user.entries_created,
        "lastActivity": iso(user.last_activity),
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


@router.post("/register-tenant", status_code=201)
async def register_tenant(
    body: RegisterTenantBody,
    request: Request,
    service: TenantService = Depends(get_tenant_service),
) -> JSONResponse:
    tenant, admin = await service.register_tenant(
        TenantRegistration(**body.model_dump()),
        client_ip=client_ip_from(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    )
    return success(
        {"tenant": tenant_to_dict(tenant), "admin": user_to_dict(admin)},
        status_code=201,
    )


@router.post("/sign-in")
async def sign_in(
    body: SignInBody,
    request: Request,
    service: TenantService = Depends(get_tenant_service),
) -> JSONResponse:
    result = await service.sign_in(
        body.email,
        body.password,
        client_ip=client_ip_from(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    )
    return success(
        {
            "token": result.token,
            "tokenType": "Bearer",
            "user": user_to_dict(result.user),
            "tenantName": result.tenant_name,
        },
    )
