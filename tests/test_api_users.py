from __future__ import annotations

import asyncio

from sqlalchemy import select

from conftest import bearer_for, register_and_sign_in
from ecotrack.domain.users import UserRole
from ecotrack.infrastructure.models import InvitationModel


def _add_member(client, headers, session_factory, *, email="farid@kedaihijau.my", role="clerk") -> str:
    """Invite and accept a tenant member; returns the new user's id."""

    invited = client.post(
        "/api/users/invite",
        json={"email": email, "name": "Farid Ismail", "role": role},
        headers=headers,
    )
    assert invited.status_code == 200, invited.text

    async def _token() -> str:
        async with session_factory() as session:
            result = await session.execute(
                select(InvitationModel.token).where(
                    InvitationModel.id == invited.json()["data"]["invitationId"],
                ),
            )
            return result.scalar_one()

    accepted = client.post(
        "/api/users/accept-invite",
        json={"token": asyncio.run(_token()), "password": "farid-secure-1"},
    )
    assert accepted.status_code == 200, accepted.text
    return accepted.json()["data"]["userId"]


def _sign_in(client, email="farid@kedaihijau.my", password="farid-secure-1"):
    return client.post("/api/auth/sign-in", json={"email": email, "password": password})


def test_list_users_returns_tenant_members(client, session_factory):
    data, headers = register_and_sign_in(client)
    _add_member(client, headers, session_factory)

    resp = client.get("/api/users", headers=headers)

    assert resp.status_code == 200
    users = {u["email"]: u for u in resp.json()["data"]}
    assert set(users) == {"aisyah@kedaihijau.my", "farid@kedaihijau.my"}
    admin = users["aisyah@kedaihijau.my"]
    assert admin["role"] == "admin"
    assert admin["status"] == "active"
    assert admin["phone"] == "012-345 6789"
    assert admin["tenantId"] == data["tenant"]["id"]
    assert "passwordHash" not in admin


def test_role_change_is_audited_and_applies_on_next_sign_in(client, session_factory):
    _, headers = register_and_sign_in(client)
    member_id = _add_member(client, headers, session_factory)

    resp = client.patch(
        "/api/users/update",
        json={"userId": member_id, "role": "viewer"},
        headers=headers,
    )

    assert resp.status_code == 200
    assert resp.json()["message"] == "User updated successfully"
    assert resp.json()["data"]["role"] == "viewer"
    assert resp.json()["data"]["updatedAt"] is not None

    latest = client.get("/api/audit-logs", params={"resource": "User"}, headers=headers).json()["data"][0]
    assert latest["action"] == "UPDATE"
    assert latest["resourceId"] == member_id
    assert latest["changeLog"] == [{"fieldName": "role", "oldValue": "clerk", "newValue": "viewer"}]

    assert _sign_in(client).json()["data"]["user"]["role"] == "viewer"


def test_deactivated_user_cannot_sign_in(client, session_factory):
    _, headers = register_and_sign_in(client)
    member_id = _add_member(client, headers, session_factory)

    resp = client.patch(
        "/api/users/update",
        json={"userId": member_id, "status": "inactive"},
        headers=headers,
    )

    assert resp.json()["data"]["status"] == "inactive"
    latest = client.get("/api/audit-logs", params={"resource": "User"}, headers=headers).json()["data"][0]
    assert latest["severity"] == "warning"
    rejected = _sign_in(client)
    assert rejected.status_code == 401
    assert rejected.json()["code"] == "INVALID_CREDENTIALS"


def test_update_user_validates_input(client, session_factory):
    _, headers = register_and_sign_in(client)
    member_id = _add_member(client, headers, session_factory)

    missing = client.patch("/api/users/update", json={"role": "viewer"}, headers=headers)
    superadmin = client.patch(
        "/api/users/update",
        json={"userId": member_id, "role": "superadmin"},
        headers=headers,
    )
    status = client.patch(
        "/api/users/update",
        json={"userId": member_id, "status": "paused"},
        headers=headers,
    )
    unknown = client.patch(
        "/api/users/update",
        json={"userId": "no-such-user", "role": "viewer"},
        headers=headers,
    )

    assert missing.json()["code"] == "MISSING_USER_ID"
    assert superadmin.json()["code"] == "INVALID_ROLE"
    assert status.json()["code"] == "INVALID_STATUS"
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "USER_NOT_FOUND"


def test_unchanged_update_writes_no_audit_entry(client, session_factory):
    _, headers = register_and_sign_in(client)
    member_id = _add_member(client, headers, session_factory)

    resp = client.patch(
        "/api/users/update",
        json={"userId": member_id, "role": "clerk", "status": "active"},
        headers=headers,
    )

    assert resp.status_code == 200
    logs = client.get("/api/audit-logs", params={"action": "UPDATE"}, headers=headers).json()["data"]
    assert logs == []


def test_admin_cannot_touch_users_of_another_tenant(client, session_factory):
    _, first = register_and_sign_in(client)
    member_id = _add_member(client, first, session_factory)
    _, second = register_and_sign_in(
        client,
        uen="ROC7654321",
        adminEmail="lim@syarikatlestari.my",
        companyName="Syarikat Lestari",
    )

    updated = client.patch(
        "/api/users/update",
        json={"userId": member_id, "role": "admin"},
        headers=second,
    )
    deleted = client.request("DELETE", "/api/users/delete", json={"userId": member_id}, headers=second)
    listed = client.get("/api/users", headers=second).json()["data"]

    assert updated.status_code == 403
    assert updated.json()["code"] == "FORBIDDEN"
    assert deleted.status_code == 403
    assert [u["email"] for u in listed] == ["lim@syarikatlestari.my"]


def test_clerk_cannot_manage_users(client, tokens):
    headers = bearer_for(tokens, role=UserRole.CLERK, tenant_id="tenant-1")

    listed = client.get("/api/users", headers=headers)
    updated = client.patch("/api/users/update", json={"userId": "u-2", "role": "viewer"}, headers=headers)

    assert listed.status_code == 403
    assert updated.status_code == 403
    assert updated.json()["data"]["requiredPermission"] == "UPDATE_USERS"


def test_delete_user(client, session_factory):
    data, headers = register_and_sign_in(client)
    member_id = _add_member(client, headers, session_factory)

    itself = client.request(
        "DELETE",
        "/api/users/delete",
        json={"userId": data["admin"]["id"]},
        headers=headers,
    )
    missing = client.request("DELETE", "/api/users/delete", json={}, headers=headers)
    unknown = client.request("DELETE", "/api/users/delete", json={"userId": "nobody"}, headers=headers)
    resp = client.request("DELETE", "/api/users/delete", json={"userId": member_id}, headers=headers)

    assert itself.json()["code"] == "CANNOT_DELETE_SELF"
    assert missing.json()["code"] == "MISSING_USER_ID"
    assert unknown.status_code == 404
    assert resp.status_code == 200
    assert resp.json()["message"] == "User deleted successfully"
    assert resp.json()["data"] == {"id": member_id, "email": "farid@kedaihijau.my"}
    remaining = client.get("/api/users", headers=headers).json()["data"]
    assert [u["email"] for u in remaining] == ["aisyah@kedaihijau.my"]
    latest = client.get("/api/audit-logs", params={"action": "DELETE"}, headers=headers).json()["data"][0]
    assert latest["severity"] == "warning"
    assert _sign_in(client).status_code == 401


def test_profile_update_sets_only_given_fields(client):
    _, headers = register_and_sign_in(client)

    first = client.patch(
        "/api/users/profile",
        json={
            "displayName": "  Aisyah R.  ",
            "jobTitle": "Sustainability Lead",
            "photoURL": "https://cdn.kedaihijau.my/aisyah.png",
        },
        headers=headers,
    )
    second = client.patch(
        "/api/users/profile",
        json={"displayName": "Aisyah Rahman", "phone": ""},
        headers=headers,
    )

    assert first.status_code == 200
    assert first.json()["message"] == "Profile updated successfully"
    profile = first.json()["data"]
    assert profile["name"] == "Aisyah R."
    assert profile["jobTitle"] == "Sustainability Lead"
    assert profile["avatarUrl"] == "https://cdn.kedaihijau.my/aisyah.png"
    assert profile["phone"] == "012-345 6789"

    cleared = second.json()["data"]
    assert cleared["name"] == "Aisyah Rahman"
    assert cleared["phone"] is None
    assert cleared["jobTitle"] == "Sustainability Lead"


def test_profile_update_requires_a_usable_name(client):
    _, headers = register_and_sign_in(client)

    missing = client.patch("/api/users/profile", json={"jobTitle": "Lead"}, headers=headers)
    short = client.patch("/api/users/profile", json={"displayName": " A "}, headers=headers)

    assert missing.status_code == 400
    assert missing.json()["code"] == "MISSING_FIELDS"
    assert short.json()["code"] == "INVALID_NAME"


def test_viewer_may_edit_own_profile(client, session_factory):
    _, headers = register_and_sign_in(client)
    _add_member(client, headers, session_factory, email="nurul@kedaihijau.my", role="viewer")
    token = _sign_in(client, email="nurul@kedaihijau.my").json()["data"]["token"]

    resp = client.patch(
        "/api/users/profile",
        json={"displayName": "Nurul Huda"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["role"] == "viewer"
