from __future__ import annotations

from conftest import bearer_for, register_and_sign_in
from ecotrack.domain.users import UserRole

BILL_IMAGE = {"imageBase64": "aGVsbG8=", "mimeType": "image/png"}


def test_trial_tenant_third_bill_is_rejected_with_quota_headers(client, extractor):
    _, headers = register_and_sign_in(client)

    first = client.post("/api/analyze", json=BILL_IMAGE, headers=headers)
    second = client.post("/api/analyze", json=BILL_IMAGE, headers=headers)
    third = client.post("/api/analyze", json=BILL_IMAGE, headers=headers)

    assert first.status_code == 200
    assert first.json()["message"] == "Bill extracted successfully"
    assert first.headers["X-Quota-Remaining"] == "1"
    assert second.status_code == 200
    assert second.headers["X-Quota-Remaining"] == "0"

    assert third.status_code == 429
    body = third.json()
    assert body["success"] is False
    assert body["code"] == "QUOTA_EXCEEDED"
    assert body["data"]["current"] == 2
    assert body["data"]["limit"] == 2
    assert body["data"]["remaining"] == 0
    assert third.headers["X-Quota-Limit"] == "2"
    assert third.headers["X-Quota-Remaining"] == "0"
    assert third.headers["X-Quota-Reset"] == body["data"]["resetTime"]
    assert int(third.headers["Retry-After"]) > 0
    assert extractor.calls == 2

    quota = client.get("/api/tenant/quota", headers=headers).json()["data"]
    assert quota["billAnalysis"]["current"] == 2
    assert quota["billAnalysis"]["percentUsed"] == 100


def test_superadmin_bypasses_quota_and_rate_limits(client, tokens, extractor):
    data, headers = register_and_sign_in(client)
    tenant_id = data["tenant"]["id"]
    for _ in range(2):
        client.post("/api/analyze", json=BILL_IMAGE, headers=headers)

    superadmin = bearer_for(tokens, role=UserRole.SUPERADMIN, tenant_id=tenant_id, user_id="root")
    resp = client.post("/api/analyze", json=BILL_IMAGE, headers=superadmin)

    assert resp.status_code == 200
    assert extractor.calls == 3
    quota = client.get("/api/tenant/quota", headers=headers).json()["data"]
    assert quota["billAnalysis"]["current"] == 2


def test_low_confidence_extraction_is_flagged(client, extractor):
    extractor.fields["confidence"] = 0.4
    _, headers = register_and_sign_in(client)

    resp = client.post("/api/analyze", json=BILL_IMAGE, headers=headers)

    assert resp.status_code == 200
    assert resp.json()["message"] == "Low confidence extraction - please review carefully"
    assert resp.json()["data"]["confidence"] == 0.4


def test_missing_image_does_not_consume_quota(client, extractor):
    _, headers = register_and_sign_in(client)

    resp = client.post("/api/analyze", json={}, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == "MISSING_IMAGE"
    quota = client.get("/api/tenant/quota", headers=headers).json()["data"]
    assert quota["billAnalysis"]["current"] == 0


def test_short_window_rate_limit_applies_after_quota(client, tokens):
    _, headers = register_and_sign_in(client)
    superadmin = bearer_for(tokens, role=UserRole.SUPERADMIN, tenant_id=None)
    resp = client.patch(
        "/api/system-admin/rate-limits",
        json={
            "rateLimits": {"billAnalysis": {"requestsPerMinute": 1}},
            "quotas": {"trial": {"maxBillsPerMonth": 10}},
        },
        headers=superadmin,
    )
    assert resp.status_code == 200

    first = client.post("/api/analyze", json=BILL_IMAGE, headers=headers)
    second = client.post("/api/analyze", json=BILL_IMAGE, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert second.json()["data"]["window"] == "minute"

    usage = client.get("/api/tenant/usage", headers=headers).json()["data"]
    assert usage["billAnalysis"]["current"] == 1
    assert usage["billAnalysis"]["limit"] == 1
    assert usage["billAnalysis"]["percentage"] == 100
