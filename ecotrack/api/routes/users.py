from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ecotrack.api.dependencies import get_invitation_service, get_request_context, get_user_service
from ecotrack.api.middleware.auth import client_ip_from
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import iso, success
from ecotrack.api.routes.auth import user_to_dict
from ecotrack.application.auth.context import RequestContext
from ecotrack.application.services.invitations import InvitationRequest, InvitationService
from ecotrack.application.services.users import ProfileUpdate, UserService, UserUpdate
from ecotrack.domain.invitations import Invitation, InvitationStatus
from ecotrack.domain.permissions import Permission

router = APIRouter(prefix="/api/users", tags=["users"])


class InviteBody(BaseModel):
    email: str | None = None
    name: str | None = None
    role: str | None = None


class AcceptInviteBody(BaseModel):
    token: str | None = None
    password: str | None = None


class _CamelBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UpdateUserBody(_CamelBody):
    user_id: str | None = None
    role: str | None = None
    status: str | None = None


class DeleteUserBody(_CamelBody):
    user_id: str | None = None


class ProfileBody(_CamelBody):
    display_name: str | None = None
    phone: str | None = None
    job_title: str | None = None
    avatar_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("photoURL", "avatarUrl", "avatar_url"),
    )


def invitation_to_dict(invitation: Invitation) -> dict[str, Any]:
    return {
        "id": invitation.id,
        "email": invitation.email,
        "name": invitation.name,
        "role": invitation.role.value,
        "status": invitation.status.value,
        "tenantName": invitation.tenant_name,
        "invitedBy": invitation.invited_by,
        "invitedByName": invitation.invited_by_name,
        "createdAt": iso(invitation.created_at),
        "expiresAt": iso(invitation.expires_at),
        "acceptedAt": iso(invitation.accepted_at),
    }


@router.post("/invite")
async def invite_user(
    body: InviteBody,
    ctx: RequestContext = Depends(permission_required(Permission.CREATE_USERS)),
    service: InvitationService = Depends(get_invitation_service),
) -> JSONResponse:
    invitation = await service.invite(
        ctx,
        InvitationRequest(email=body.email, name=body.name, role=body.role),
    )
    return success(
        {
            "invitationId": invitation.id,
            "email": invitation.email,
            "expiresAt": iso(invitation.expires_at),
        },
        message="Invitation sent successfully",
    )


@router.get("/invitations")
async def list_invitations(
    status: InvitationStatus | None = Query(default=None),
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_USERS)),
    service: InvitationService = Depends(get_invitation_service),
) -> JSONResponse:
    invitations = await service.list_invitations(ctx.principal.require_tenant(), status)
    return success([invitation_to_dict(i) for i in invitations])


@router.delete("/invitations")
async def cancel_invitation(
    invitation_id: str | None = Query(default=None, alias="id"),
    ctx: RequestContext = Depends(permission_required(Permission.DELETE_USERS)),
    service: InvitationService = Depends(get_invitation_service),
) -> JSONResponse:
    invitation = await service.cancel(ctx, invitation_id)
    return success(
        {"id": invitation.id, "status": invitation.status.value},
        message="Invitation cancelled successfully",
    )


@router.get("/accept-invite")
async def get_invitation(
    token: str | None = Query(default=None),
    service: InvitationService = Depends(get_invitation_service),
) -> JSONResponse:
    """Public: invitation details for the acceptance page."""

    invitation = await service.get_by_token(token)
    return success(
        {
            "id": invitation.id,
            "email": invitation.email,
            "name": invitation.name,
            "role": invitation.role.value,
            "tenantName": invitation.tenant_name,
            "invitedByName": invitation.invited_by_name,
            "expiresAt": iso(invitation.expires_at),
            "status": invitation.status.value,
        },
    )


@router.post("/accept-invite")
async def accept_invitation(
    body: AcceptInviteBody,
    request: Request,
    service: InvitationService = Depends(get_invitation_service),
) -> JSONResponse:
    user = await service.accept(
        body.token,
        body.password,
        client_ip=client_ip_from(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    )
    return success(
        {"userId": user.id, "email": user.email},
        message="Account created successfully",
    )


@router.get("")
async def list_users(
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_USERS)),
    service: UserService = Depends(get_user_service),
) -> JSONResponse:
    users = await service.list_users(ctx.principal.require_tenant())
    return success([user_to_dict(u) for u in users])


@router.patch("/update")
async def update_user(
    body: UpdateUserBody,
    ctx: RequestContext = Depends(permission_required(Permission.UPDATE_USERS)),
    service: UserService = Depends(get_user_service),
) -> JSONResponse:
    user = await service.update_user(
        ctx,
        UserUpdate(user_id=body.user_id, role=body.role, status=body.status),
    )
    return success(user_to_dict(user), message="User updated successfully")


@router.delete("/delete")
async def delete_user(
    body: DeleteUserBody,
    ctx: RequestContext = Depends(permission_required(Permission.DELETE_USERS)),
    service: UserService = Depends(get_user_service),
) -> JSONResponse:
    user = await service.delete_user(ctx, body.user_id)
    return success({"id": user.id, "email": user.email}, message="User deleted successfully")


@router.patch("/profile")
async def update_profile(
    body: ProfileBody,
    ctx: RequestContext = Depends(get_request_context),
    service: UserService = Depends(get_user_service),
) -> JSONResponse:
    """Any signed-in user may edit their own profile."""

    user = await service.update_profile(
        ctx,
        ProfileUpdate(
            display_name=body.display_name,
            phone=body.phone,
            job_title=body.job_title,
            avatar_url=body.avatar_url,
            fields_set=frozenset(body.model_fields_set),
        ),
    )
    return success(user_to_dict(user), message="Profile updated successfully")
