from __future__ import annotations

import pytest

from conftest import bearer_for, register_and_sign_in
from ecotrack.domain.users import UserRole

BILL_IMAGE = {"imageBase64": "aGVsbG8=", "mimeType": "image/png"}


@pytest.fixture
def superadmin(tokens):
    return bearer_for(tokens, role=UserRole.SUPERADMIN, tenant_id=None, user_id="root")


def test_get_rate_limits_returns_defaults_and_cache_status(client, superadmin):
    resp = client.get("/api/system-admin/rate-limits", headers=superadmin)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["rateLimits"]["billAnalysis"] == {
        "requestsPerMinute": 10,
        "requestsPerHour": 100,
        "requestsPerDay": 500,
    }
    assert data["quotas"]["enterprise"]["maxBillsPerMonth"] == -1
    assert data["cache"]["cached"] is True


def test_tenant_admin_cannot_read_system_config(client):
    _, headers = register_and_sign_in(client)

    resp = client.get("/api/system-admin/rate-limits", headers=headers)

    assert resp.status_code == 403
    assert resp.json()["data"]["requiredPermission"] == "VIEW_SYSTEM_CONFIG"


def test_patch_merges_partial_update(client, superadmin):
    resp = client.patch(
        "/api/system-admin/rate-limits",
        json={"rateLimits": {"reportGeneration": {"requestsPerDay": 300}}},
        headers=superadmin,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Rate limit configuration updated successfully"
    report = body["data"]["rateLimits"]["reportGeneration"]
    assert report == {"requestsPerMinute": 5, "requestsPerHour": 50, "requestsPerDay": 300}

    fresh = client.get("/api/system-admin/rate-limits", headers=superadmin).json()["data"]
    assert fresh["rateLimits"]["reportGeneration"]["requestsPerDay"] == 300
    assert fresh["rateLimits"]["lastUpdated"] is not None


@pytest.mark.parametrize(
    "payload",
    [
        {"rateLimits": {"billAnalysis": {"requestsPerMinute": 0}}},
        {"quotas": {"trial": {"maxBillsPerMonth": -5}}},
        {},
    ],
)
def test_patch_rejects_invalid_values(client, superadmin, payload):
    resp = client.patch("/api/system-admin/rate-limits", json=payload, headers=superadmin)

    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"

    current = client.get("/api/system-admin/rate-limits", headers=superadmin).json()["data"]
    assert current["rateLimits"]["billAnalysis"]["requestsPerMinute"] == 10


def test_reset_clears_counters_and_quota(client, superadmin):
    data, headers = register_and_sign_in(client)
    tenant_id = data["tenant"]["id"]
    for _ in range(3):
        client.post("/api/analyze", json=BILL_IMAGE, headers=headers)

    resp = client.post(
        "/api/system-admin/rate-limits",
        json={"tenantId": tenant_id, "resetQuota": True},
        headers=superadmin,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == f"All rate limits reset for tenant {tenant_id} (monthly quota reset)"
    assert body["data"]["clearedCounters"] >= 3

    usage = client.get("/api/tenant/usage", headers=headers).json()["data"]
    assert usage["billAnalysis"]["current"] == 0
    assert client.post("/api/analyze", json=BILL_IMAGE, headers=headers).status_code == 200

    logs = client.get("/api/audit-logs", params={"action": "SETTINGS_CHANGE"}, headers=headers)
    assert logs.json()["data"][0]["severity"] == "warning"


def test_reset_requires_known_tenant(client, superadmin):
    missing = client.post("/api/system-admin/rate-limits", json={}, headers=superadmin)
    unknown = client.post(
        "/api/system-admin/rate-limits",
        json={"tenantId": "no-such-tenant"},
        headers=superadmin,
    )

    assert missing.status_code == 400
    assert missing.json()["error"] == "tenantId is required"
    assert unknown.status_code == 404
