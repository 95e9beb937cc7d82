from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import bearer_for, register_and_sign_in
from ecotrack.application.services import reports as reports_module
from ecotrack.domain.users import UserRole
from ecotrack.main import create_app


def _entry(**overrides):
    payload = {
        "utilityType": "electricity",
        "provider": "Sabah Electricity Sdn Bhd (SESB)",
        "usage": 1000,
        "unit": "kWh",
        "billingDate": "2026-09-30T00:00:00Z",
        "amount": 350.0,
        "extractionMethod": "manual",
    }
    payload.update(overrides)
    return payload


class RecordingWarehouse:
    def __init__(self) -> None:
        self.rows = []

    async def insert_entry(self, entry) -> None:
        self.rows.append(entry)


class FailingWarehouse:
    async def insert_entry(self, entry) -> None:
        raise ConnectionError("warehouse offline")


def test_create_entry_computes_co2e_for_inferred_region(client):
    _, headers = register_and_sign_in(client)

    resp = client.post("/api/entries", json=_entry(), headers=headers)

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Entry created successfully"
    entry = body["data"]
    assert entry["region"] == "sabah"
    assert entry["co2e"] == 742.0
    assert entry["emissionFactor"] == 0.742
    assert entry["status"] == "verified"
    assert entry["currency"] == "MYR"


def test_create_entry_reports_first_missing_field(client):
    _, headers = register_and_sign_in(client)

    resp = client.post("/api/entries", json=_entry(unit=None), headers=headers)

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "error": "Missing required field: unit",
        "code": "MISSING_FIELDS",
    }


def test_invalid_enum_is_a_validation_error(client):
    _, headers = register_and_sign_in(client)

    resp = client.post("/api/entries", json=_entry(utilityType="gas"), headers=headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_list_entries_filters_and_orders(client):
    _, headers = register_and_sign_in(client)
    client.post("/api/entries", json=_entry(billingDate="2026-07-31T00:00:00Z"), headers=headers)
    client.post(
        "/api/entries",
        json=_entry(utilityType="water", unit="m³", usage=40, confidence=0.5),
        headers=headers,
    )
    client.post("/api/entries", json=_entry(billingDate="2026-08-31T00:00:00Z"), headers=headers)

    all_entries = client.get("/api/entries", headers=headers).json()
    electricity = client.get("/api/entries", params={"utilityType": "electricity"}, headers=headers).json()
    pending = client.get("/api/entries", params={"status": "pending"}, headers=headers).json()
    limited = client.get("/api/entries", params={"limit": 1}, headers=headers).json()

    assert all_entries["count"] == 3
    assert [e["billingDate"][:10] for e in all_entries["data"]] == [
        "2026-09-30",
        "2026-08-31",
        "2026-07-31",
    ]
    assert electricity["count"] == 2
    assert [e["utilityType"] for e in pending["data"]] == ["water"]
    assert limited["count"] == 1


def test_entries_are_tenant_scoped(client):
    _, first = register_and_sign_in(client)
    _, second = register_and_sign_in(
        client,
        uen="ROC7654321",
        adminEmail="lim@syarikatlestari.my",
        companyName="Syarikat Lestari",
    )
    client.post("/api/entries", json=_entry(), headers=first)

    resp = client.get("/api/entries", headers=second)

    assert resp.json()["count"] == 0


def test_warehouse_receives_entries_and_its_failures_are_ignored(settings, session_factory, redis, extractor):
    recording = RecordingWarehouse()
    app = create_app(settings, session_factory=session_factory, redis=redis, extractor=extractor, warehouse=recording)
    with TestClient(app) as client:
        _, headers = register_and_sign_in(client)
        assert client.post("/api/entries", json=_entry(), headers=headers).status_code == 201
    assert len(recording.rows) == 1

    app = create_app(
        settings,
        session_factory=session_factory,
        redis=redis,
        extractor=extractor,
        warehouse=FailingWarehouse(),
    )
    with TestClient(app) as client:
        resp = client.post(
            "/api/auth/sign-in",
            json={"email": "aisyah@kedaihijau.my", "password": "hijau-2026!"},
        )
        headers = {"Authorization": f"Bearer {resp.json()['data']['token']}"}
        assert client.post("/api/entries", json=_entry(), headers=headers).status_code == 201


def test_report_generation_is_quota_guarded_for_trial(client):
    _, headers = register_and_sign_in(client)

    resp = client.post("/api/reports", json={}, headers=headers)

    assert resp.status_code == 429
    assert resp.json()["data"]["limit"] == 0


def test_report_generation_summarises_period(client, tokens):
    data, headers = register_and_sign_in(client)
    tenant_id = data["tenant"]["id"]
    superadmin = bearer_for(tokens, role=UserRole.SUPERADMIN, tenant_id=None)
    client.patch(
        "/api/system-admin/rate-limits",
        json={"quotas": {"trial": {"maxReportsPerMonth": 5}}},
        headers=superadmin,
    )
    client.post("/api/entries", json=_entry(), headers=headers)
    client.post(
        "/api/entries",
        json=_entry(utilityType="fuel", unit="L", usage=100, provider="Petronas"),
        headers=headers,
    )

    resp = client.post(
        "/api/reports",
        json={
            "reportType": "custom",
            "title": "Q3 emissions",
            "periodStart": "2026-09-01T00:00:00Z",
            "periodEnd": "2026-10-01T00:00:00Z",
        },
        headers=headers,
    )

    assert resp.status_code == 201
    report = resp.json()["data"]
    assert report["tenantId"] == tenant_id
    assert report["status"] == "completed"
    assert report["entryCount"] == 2
    assert report["totalCo2e"] == 973.0
    assert report["breakdown"]["fuel"]["co2e"] == 231.0

    listed = client.get("/api/reports", headers=headers).json()["data"]
    assert listed["count"] == 1
    assert listed["reports"][0]["title"] == "Q3 emissions"
    quota = client.get("/api/tenant/quota", headers=headers).json()["data"]
    assert quota["reportGeneration"]["current"] == 1


def test_report_period_must_be_ordered(client, tokens):
    _, headers = register_and_sign_in(client)
    superadmin = bearer_for(tokens, role=UserRole.SUPERADMIN, tenant_id=None)
    client.patch(
        "/api/system-admin/rate-limits",
        json={"quotas": {"trial": {"maxReportsPerMonth": 5}}},
        headers=superadmin,
    )

    resp = client.post(
        "/api/reports",
        json={"periodStart": "2026-10-01T00:00:00Z", "periodEnd": "2026-09-01T00:00:00Z"},
        headers=headers,
    )

    assert resp.status_code == 400
    quota = client.get("/api/tenant/quota", headers=headers).json()["data"]
    assert quota["reportGeneration"]["current"] == 0


def test_audit_logs_record_and_list(client):
    _, headers = register_and_sign_in(client)

    created = client.post(
        "/api/audit-logs",
        json={
            "action": "EXPORT",
            "resource": "Report",
            "details": "Exported September report",
            "changeLog": [{"fieldName": "email", "oldValue": "a@x.my", "newValue": "b@x.my"}],
        },
        headers={**headers, "X-Forwarded-For": "198.51.100.4, 10.0.0.1"},
    )
    missing = client.post("/api/audit-logs", json={"action": "EXPORT"}, headers=headers)

    assert created.status_code == 201
    assert missing.status_code == 400
    assert missing.json()["code"] == "MISSING_FIELDS"

    listed = client.get("/api/audit-logs", params={"verify": True}, headers=headers).json()
    assert listed["chainValid"] is True
    latest = listed["data"][0]
    assert latest["action"] == "EXPORT"
    assert latest["ipAddress"] == "198.51.100.4"
    assert latest["status"] == "success"
    assert latest["severity"] == "info"
    assert latest["changeLog"][0]["newValue"] == "[REDACTED]"
    assert latest["prevHash"] == listed["data"][1]["hash"]


def test_clerk_cannot_read_audit_logs(client, tokens):
    headers = bearer_for(tokens, role=UserRole.CLERK, tenant_id="tenant-1")

    resp = client.get("/api/audit-logs", headers=headers)

    assert resp.status_code == 403


def test_report_period_with_mixed_offsets_is_normalised_to_utc(client, tokens):
    _, headers = register_and_sign_in(client)
    superadmin = bearer_for(tokens, role=UserRole.SUPERADMIN, tenant_id=None)
    client.patch(
        "/api/system-admin/rate-limits",
        json={"quotas": {"trial": {"maxReportsPerMonth": 5}}},
        headers=superadmin,
    )
    client.post("/api/entries", json=_entry(), headers=headers)

    resp = client.post(
        "/api/reports",
        json={"periodStart": "2026-09-01T08:00:00+08:00", "periodEnd": "2026-10-01T00:00:00"},
        headers=headers,
    )

    assert resp.status_code == 201
    report = resp.json()["data"]
    assert report["periodStart"].startswith("2026-09-01T00:00:00")
    assert report["periodEnd"].startswith("2026-10-01T00:00:00")
    assert report["entryCount"] == 1


def test_inverted_report_period_is_rejected_before_quota(client, tokens):
    _, headers = register_and_sign_in(client)

    resp = client.post(
        "/api/reports",
        json={"periodStart": "2026-10-01T00:00:00", "periodEnd": "2026-09-01T00:00:00Z"},
        headers=headers,
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert "periodStart must be before periodEnd" in resp.json()["error"]


def test_report_list_limit_is_clamped(client, monkeypatch):
    seen = []

    class CapturingRepository:
        def __init__(self, session) -> None:
            pass

        async def list_for_tenant(self, tenant_id, *, limit, status=None, report_type=None):
            seen.append(limit)
            return []

    monkeypatch.setattr(reports_module, "SqlAlchemyReportRepository", CapturingRepository)
    _, headers = register_and_sign_in(client)

    client.get("/api/reports", params={"limit": 1000}, headers=headers)
    client.get("/api/reports", params={"limit": 0}, headers=headers)

    assert seen == [100, 1]
