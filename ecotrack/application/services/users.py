from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.application.auth.context import RequestContext
from ecotrack.core.audit import AuditLogger
from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import AuthorizationError, NotFoundError, ValidationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.audit import AuditAction, AuditResource, AuditSeverity
from ecotrack.domain.users import (
    INVITABLE_ROLES,
    MIN_DISPLAY_NAME_LENGTH,
    User,
    UserRole,
    UserStatus,
)
from ecotrack.infrastructure.repositories.users import SqlAlchemyUserRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserUpdate:
    user_id: str | None
    role: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class ProfileUpdate:
    display_name: str | None
    phone: str | None = None
    job_title: str | None = None
    avatar_url: str | None = None
    fields_set: frozenset[str] = frozenset()


class UserService:
    """Tenant user administration and self-service profile edits.

    Role and status changes are audited with a change log; a changed role
    reaches the user's token the next time they sign in.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: AuditLogger,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._clock = clock

    async def list_users(self, tenant_id: str) -> list[User]:
        async with self._session_factory() as session:
            return await SqlAlchemyUserRepository(session).list_for_tenant(tenant_id)

    async def update_user(self, ctx: RequestContext, request: UserUpdate) -> User:
        """Change another user's role and/or status within the caller's tenant.

        Raises:
            ValidationError: on a missing user id or an unknown role or status.
            NotFoundError: if the user does not exist.
            AuthorizationError: if the user belongs to another tenant.
        """

        tenant_id = ctx.principal.require_tenant()
        if not request.user_id:
            raise ValidationError("Missing userId", code="MISSING_USER_ID")
        if request.role is not None and request.role not in {r.value for r in INVITABLE_ROLES}:
            raise ValidationError("Invalid role", code="INVALID_ROLE")
        if request.status is not None and request.status not in {s.value for s in UserStatus}:
            raise ValidationError("Invalid status", code="INVALID_STATUS")

        async with self._session_factory() as session:
            users = SqlAlchemyUserRepository(session)
            target = await self._get_in_tenant(users, request.user_id, tenant_id, verb="update")

            values: dict[str, Any] = {}
            changes: list[dict[str, Any]] = []
            if request.role is not None and request.role != target.role.value:
                values["role"] = request.role
                changes.append({"fieldName": "role", "oldValue": target.role.value, "newValue": request.role})
            if request.status is not None and request.status != target.status.value:
                values["is_active"] = request.status == UserStatus.ACTIVE.value
                changes.append(
                    {"fieldName": "status", "oldValue": target.status.value, "newValue": request.status},
                )
            if not values:
                return target
            updated = await users.update_fields(target.id, values, now=self._clock())
            if updated is None:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

        for change in changes:
            field = change["fieldName"]
            deactivated = field == "status" and change["newValue"] == UserStatus.INACTIVE.value
            await self._audit.log(
                tenant_id=tenant_id,
                user_id=ctx.principal.user_id,
                user_name=ctx.principal.name,
                user_email=ctx.principal.email,
                user_role=ctx.principal.role.value,
                action=AuditAction.UPDATE,
                resource=AuditResource.USER,
                resource_id=target.id,
                details=(
                    f'Changed {field} of "{target.name}" from {change["oldValue"]} to {change["newValue"]}'
                ),
                ip_address=ctx.client_ip,
                user_agent=ctx.user_agent,
                severity=AuditSeverity.WARNING if deactivated else AuditSeverity.INFO,
                change_log=[change],
            )
        return updated

    async def delete_user(self, ctx: RequestContext, user_id: str | None) -> User:
        tenant_id = ctx.principal.require_tenant()
        if not user_id:
            raise ValidationError("Missing userId", code="MISSING_USER_ID")
        if user_id == ctx.principal.user_id:
            raise ValidationError("Cannot delete your own account", code="CANNOT_DELETE_SELF")

        async with self._session_factory() as session:
            users = SqlAlchemyUserRepository(session)
            target = await self._get_in_tenant(users, user_id, tenant_id, verb="delete")
            if not await users.delete(target.id):
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

        await self._audit.log(
            tenant_id=tenant_id,
            user_id=ctx.principal.user_id,
            user_name=ctx.principal.name,
            user_email=ctx.principal.email,
            user_role=ctx.principal.role.value,
            action=AuditAction.DELETE,
            resource=AuditResource.USER,
            resource_id=target.id,
            details=f'Deleted user "{target.name}" ({target.email})',
            ip_address=ctx.client_ip,
            user_agent=ctx.user_agent,
            severity=AuditSeverity.WARNING,
        )
        return target

    async def update_profile(self, ctx: RequestContext, request: ProfileUpdate) -> User:
        """Update the caller's own display name and optional contact fields.

        Optional fields absent from the request are left as they are; an
        empty string clears them.
        """

        name = (request.display_name or "").strip()
        if not name:
            raise ValidationError("Display name is required", code="MISSING_FIELDS")
        if len(name) < MIN_DISPLAY_NAME_LENGTH:
            raise ValidationError(
                f"Display name must be at least {MIN_DISPLAY_NAME_LENGTH} characters",
                code="INVALID_NAME",
            )

        values: dict[str, Any] = {"name": name}
        for field in ("phone", "job_title", "avatar_url"):
            if field in request.fields_set:
                value = getattr(request, field)
                values[field] = (value or "").strip() or None

        async with self._session_factory() as session:
            updated = await SqlAlchemyUserRepository(session).update_fields(
                ctx.principal.user_id,
                values,
                now=self._clock(),
            )
        if updated is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        if updated.tenant_id:
            await self._audit.log(
                tenant_id=updated.tenant_id,
                user_id=updated.id,
                user_name=updated.name,
                user_email=updated.email,
                user_role=updated.role.value,
                action=AuditAction.UPDATE,
                resource=AuditResource.USER,
                resource_id=updated.id,
                details="Updated own profile",
                ip_address=ctx.client_ip,
                user_agent=ctx.user_agent,
            )
        logger.info("Profile updated", extra={"eco_extra": {"user_id": updated.id}})
        return updated

    @staticmethod
    async def _get_in_tenant(
        users: SqlAlchemyUserRepository,
        user_id: str,
        tenant_id: str,
        *,
        verb: str,
    ) -> User:
        target = await users.get(user_id)
        if target is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        if target.tenant_id != tenant_id or target.role is UserRole.SUPERADMIN:
            raise AuthorizationError(f"Cannot {verb} users from other tenants")
        return target
