from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient

from ecotrack.application.auth.tokens import TokenService
from ecotrack.core.settings import Settings
from ecotrack.domain.extraction import BillExtraction, BillImage
from ecotrack.domain.tenants import SubscriptionTier
from ecotrack.domain.users import User, UserRole
from ecotrack.infrastructure.db import create_engine, create_schema, create_session_factory
from ecotrack.infrastructure.memory_client import InMemoryRedis
from ecotrack.infrastructure.models import TenantModel
from ecotrack.main import create_app

STUB_BILL = {
    "utilityType": "electricity",
    "provider": "TNB",
    "usage": 1250.0,
    "unit": "kWh",
    "billingDate": "2026-09-30",
    "amount": 412.5,
    "currency": "MYR",
    "confidence": 0.92,
}


class StubExtractor:
    """Bill extractor returning canned fields and counting calls."""

    name = "stub"

    def __init__(self, fields: dict[str, Any] | None = None) -> None:
        self.fields = dict(fields or STUB_BILL)
        self.calls = 0

    async def extract(self, image: BillImage, *, request_id: str) -> BillExtraction:
        self.calls += 1
        return BillExtraction(fields=dict(self.fields), raw_response="{}")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="dev",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ecotrack-test.db'}",
        redis_url="memory://",
        jwt_secret="test-secret",
        password_bcrypt_rounds=4,
        gemini_api_key=None,
    )


@pytest.fixture
def session_factory(settings):
    engine = create_engine(settings.database_url)
    asyncio.run(create_schema(engine))
    yield create_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def extractor() -> StubExtractor:
    return StubExtractor()


@pytest.fixture
def app(settings, session_factory, redis, extractor):
    return create_app(settings, session_factory=session_factory, redis=redis, extractor=extractor)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def tokens(settings) -> TokenService:
    return TokenService(settings)


def seed_tenant(
    session_factory,
    *,
    tier: SubscriptionTier = SubscriptionTier.TRIAL,
    bill_count: int = 0,
    report_count: int = 0,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    uen: str = "ROC123456",
) -> str:
    """Insert a tenant row directly and return its id."""

    async def _insert() -> str:
        async with session_factory() as session:
            row = TenantModel(
                company_name="Kedai Hijau Sdn Bhd",
                uen=uen,
                sector="Retail",
                address="1 Jalan Ampang",
                email="ops@kedaihijau.my",
                status="active",
                subscription_tier=tier.value,
                usage_bill_analysis_count=bill_count,
                usage_report_generation_count=report_count,
                usage_period_start=period_start,
                usage_period_end=period_end,
            )
            session.add(row)
            await session.commit()
            return row.id

    return asyncio.run(_insert())


def registration_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "companyName": "Kedai Hijau Sdn Bhd",
        "uen": "202301234567",
        "sector": "Retail",
        "address": "1 Jalan Ampang",
        "city": "Kuala Lumpur",
        "state": "WP Kuala Lumpur",
        "postalCode": "50450",
        "adminName": "Aisyah Rahman",
        "adminEmail": "aisyah@kedaihijau.my",
        "adminPhone": "012-345 6789",
        "adminPassword": "hijau-2026!",
        "pdpaConsent": True,
    }
    payload.update(overrides)
    return payload


def register_and_sign_in(client: TestClient, **overrides: Any) -> tuple[dict[str, Any], dict[str, str]]:
    """Register a tenant and return ``(registration data, auth headers)``."""

    payload = registration_payload(**overrides)
    resp = client.post("/api/auth/register-tenant", json=payload)
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]

    resp = client.post(
        "/api/auth/sign-in",
        json={"email": payload["adminEmail"], "password": payload["adminPassword"]},
    )
    assert resp.status_code == 200, resp.text
    token = resp.json()["data"]["token"]
    return data, {"Authorization": f"Bearer {token}"}


def bearer_for(
    tokens: TokenService,
    *,
    role: UserRole,
    tenant_id: str | None,
    user_id: str = "user-1",
    name: str = "Test User",
) -> dict[str, str]:
    user = User(
        id=user_id,
        tenant_id=tenant_id,
        email=f"{user_id}@example.my",
        name=name,
        role=role,
        password_hash="",
        is_active=True,
    )
    return {"Authorization": f"Bearer {tokens.issue_token(user, tenant_name='Kedai Hijau Sdn Bhd')}"}
