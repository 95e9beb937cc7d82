from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from conftest import register_and_sign_in
from ecotrack.core.clock import utcnow
from ecotrack.domain.invitations import InvitationStatus, can_transition
from ecotrack.infrastructure.models import InvitationModel
from ecotrack.infrastructure.repositories.invitations import SqlAlchemyInvitationRepository


def _token_for(session_factory, invitation_id: str) -> str:
    async def _read() -> str:
        async with session_factory() as session:
            result = await session.execute(
                select(InvitationModel.token).where(InvitationModel.id == invitation_id),
            )
            return result.scalar_one()

    return asyncio.run(_read())


def _expire(session_factory, invitation_id: str) -> None:
    async def _write() -> None:
        async with session_factory() as session:
            await session.execute(
                update(InvitationModel)
                .where(InvitationModel.id == invitation_id)
                .values(expires_at=utcnow() - timedelta(minutes=1)),
            )
            await session.commit()

    asyncio.run(_write())


def _invite(client, headers, email="farid@kedaihijau.my", role="clerk"):
    return client.post(
        "/api/users/invite",
        json={"email": email, "name": "Farid", "role": role},
        headers=headers,
    )


def test_invite_and_accept_flow(client, session_factory):
    _, headers = register_and_sign_in(client)

    resp = _invite(client, headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Invitation sent successfully"
    invitation_id = resp.json()["data"]["invitationId"]
    token = _token_for(session_factory, invitation_id)
    assert len(token) == 64

    details = client.get("/api/users/accept-invite", params={"token": token})
    assert details.status_code == 200
    assert details.json()["data"]["tenantName"] == "Kedai Hijau Sdn Bhd"

    accepted = client.post(
        "/api/users/accept-invite",
        json={"token": token, "password": "farid-secure-1"},
    )
    assert accepted.status_code == 200

    sign_in = client.post(
        "/api/auth/sign-in",
        json={"email": "farid@kedaihijau.my", "password": "farid-secure-1"},
    )
    assert sign_in.json()["data"]["user"]["role"] == "clerk"

    again = client.post(
        "/api/users/accept-invite",
        json={"token": token, "password": "farid-secure-1"},
    )
    assert again.status_code == 400
    assert again.json()["code"] == "INVITATION_NOT_PENDING"

    listed = client.get("/api/users/invitations", headers=headers).json()["data"]
    assert [i["status"] for i in listed] == ["accepted"]


def test_invite_validation(client):
    _, headers = register_and_sign_in(client)

    bad_role = _invite(client, headers, role="superadmin")
    existing_user = _invite(client, headers, email="aisyah@kedaihijau.my")
    first = _invite(client, headers)
    duplicate = _invite(client, headers)

    assert bad_role.status_code == 400
    assert bad_role.json()["code"] == "INVALID_ROLE"
    assert existing_user.status_code == 409
    assert existing_user.json()["code"] == "EMAIL_EXISTS"
    assert first.status_code == 200
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "INVITATION_EXISTS"


def test_expired_invitation_is_flipped_on_lookup(client, session_factory):
    _, headers = register_and_sign_in(client)
    invitation_id = _invite(client, headers).json()["data"]["invitationId"]
    token = _token_for(session_factory, invitation_id)
    _expire(session_factory, invitation_id)

    resp = client.get("/api/users/accept-invite", params={"token": token})

    assert resp.status_code == 400
    assert resp.json()["code"] == "INVITATION_EXPIRED"
    listed = client.get("/api/users/invitations", headers=headers).json()["data"]
    assert listed[0]["status"] == "expired"

    retry = client.get("/api/users/accept-invite", params={"token": token})
    assert retry.json()["code"] == "INVITATION_NOT_PENDING"

    reinvite = _invite(client, headers)
    assert reinvite.status_code == 200


def test_accept_invite_errors(client):
    missing = client.get("/api/users/accept-invite")
    unknown = client.get("/api/users/accept-invite", params={"token": "f" * 64})
    short_password = client.post(
        "/api/users/accept-invite",
        json={"token": "f" * 64, "password": "short"},
    )

    assert missing.status_code == 400
    assert missing.json()["code"] == "MISSING_TOKEN"
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "INVALID_TOKEN"
    assert short_password.json()["code"] == "INVALID_PASSWORD"


def test_cancel_only_pending_invitations(client):
    _, headers = register_and_sign_in(client)
    invitation_id = _invite(client, headers).json()["data"]["invitationId"]

    cancelled = client.delete("/api/users/invitations", params={"id": invitation_id}, headers=headers)
    again = client.delete("/api/users/invitations", params={"id": invitation_id}, headers=headers)
    missing_id = client.delete("/api/users/invitations", headers=headers)

    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "cancelled"
    assert again.status_code == 400
    assert again.json()["code"] == "INVITATION_NOT_PENDING"
    assert missing_id.json()["code"] == "MISSING_ID"


def test_cancel_accepted_invitation_is_rejected(client, session_factory):
    _, headers = register_and_sign_in(client)
    invitation_id = _invite(client, headers).json()["data"]["invitationId"]
    token = _token_for(session_factory, invitation_id)
    client.post("/api/users/accept-invite", json={"token": token, "password": "farid-secure-1"})

    resp = client.delete("/api/users/invitations", params={"id": invitation_id}, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == "INVITATION_NOT_PENDING"
    listed = client.get("/api/users/invitations", headers=headers).json()["data"]
    assert listed[0]["status"] == "accepted"


def test_cancel_past_expiry_marks_invitation_expired(client, session_factory):
    _, headers = register_and_sign_in(client)
    invitation_id = _invite(client, headers).json()["data"]["invitationId"]
    _expire(session_factory, invitation_id)

    resp = client.delete("/api/users/invitations", params={"id": invitation_id}, headers=headers)
    again = client.delete("/api/users/invitations", params={"id": invitation_id}, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == "INVITATION_EXPIRED"
    listed = client.get("/api/users/invitations", headers=headers).json()["data"]
    assert listed[0]["status"] == "expired"
    assert again.json()["code"] == "INVITATION_NOT_PENDING"


def test_transitions_only_leave_pending():
    assert can_transition(InvitationStatus.PENDING, InvitationStatus.CANCELLED)
    assert can_transition(InvitationStatus.PENDING, InvitationStatus.EXPIRED)
    assert not can_transition(InvitationStatus.PENDING, InvitationStatus.PENDING)
    assert not can_transition(InvitationStatus.EXPIRED, InvitationStatus.CANCELLED)
    assert not can_transition(InvitationStatus.ACCEPTED, InvitationStatus.EXPIRED)


def test_repository_refuses_transition_back_to_pending(session_factory):
    async def _move() -> None:
        async with session_factory() as session:
            await SqlAlchemyInvitationRepository(session).transition(
                "missing",
                InvitationStatus.PENDING,
                now=utcnow(),
            )

    with pytest.raises(ValueError):
        asyncio.run(_move())
