from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.application.auth.context import RequestContext
from ecotrack.application.auth.tokens import hash_password
from ecotrack.core.audit import AuditLogger
from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import ConflictError, NotFoundError, ValidationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.audit import AuditAction, AuditResource
from ecotrack.domain.invitations import Invitation, InvitationStatus, generate_invitation_token
from ecotrack.domain.users import INVITABLE_ROLES, MIN_PASSWORD_LENGTH, User
from ecotrack.infrastructure.models import InvitationModel, UserModel
from ecotrack.infrastructure.repositories.invitations import SqlAlchemyInvitationRepository
from ecotrack.infrastructure.repositories.tenants import SqlAlchemyTenantRepository
from ecotrack.infrastructure.repositories.users import SqlAlchemyUserRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class InvitationRequest:
    email: str | None
    name: str | None
    role: str | None


class InvitationService:
    """Invite-only user onboarding for a tenant.

    An invitation moves out of ``pending`` exactly once. Every transition is a
    conditional update on ``status = 'pending'``, so a link accepted twice in
    parallel creates one account, and an expired link is marked ``expired``
    the first time anyone presents it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: AuditLogger,
        *,
        ttl_days: int = 7,
        app_base_url: str = "http://localhost:3000",
        bcrypt_rounds: int = 12,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._ttl = timedelta(days=ttl_days)
        self._app_base_url = app_base_url.rstrip("/")
        self._bcrypt_rounds = bcrypt_rounds
        self._clock = clock

    def invite_link(self, token: str) -> str:
        return f"{self._app_base_url}/accept-invite?token={token}"

    async def invite(self, ctx: RequestContext, request: InvitationRequest) -> Invitation:
        """Create a pending invitation in the caller's tenant.

        Raises:
            ValidationError: on missing fields or a role that cannot be invited.
            NotFoundError: if the caller's tenant no longer exists.
            ConflictError: if the e-mail already has an account or a live
                pending invitation.
        """

        tenant_id = ctx.principal.require_tenant()
        if not request.email or not request.name or not request.role:
            raise ValidationError("Missing required fields", code="MISSING_FIELDS")
        if request.role not in {r.value for r in INVITABLE_ROLES}:
            raise ValidationError("Invalid role", code="INVALID_ROLE")

        email = request.email.strip().lower()
        now = self._clock()
        async with self._session_factory() as session:
            tenant = await SqlAlchemyTenantRepository(session).get(tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found", code="TENANT_NOT_FOUND")
            if await SqlAlchemyUserRepository(session).get_by_email(email) is not None:
                raise ConflictError(
                    "A user with this email already exists",
                    code="EMAIL_EXISTS",
                )

            invitations = SqlAlchemyInvitationRepository(session)
            if await invitations.find_live_pending(tenant_id, email, now) is not None:
                raise ConflictError(
                    "An active invitation for this email already exists. "
                    "Please wait for it to expire or cancel it first.",
                    code="INVITATION_EXISTS",
                )

            row = InvitationModel(
                tenant_id=tenant_id,
                tenant_name=tenant.company_name,
                email=email,
                name=request.name,
                role=request.role,
                token=generate_invitation_token(),
                status=InvitationStatus.PENDING.value,
                invited_by=ctx.principal.user_id,
                invited_by_name=ctx.principal.name,
                expires_at=now + self._ttl,
                created_at=now,
            )
            await invitations.add(row)
            invitation = SqlAlchemyInvitationRepository._to_domain(row)

        # Delivery is handled outside this service; the link is logged for operators.
        logger.info(
            "Invitation created",
            extra={
                "eco_extra": {
                    "tenant_id": tenant_id,
                    "invitation_id": invitation.id,
                    "invite_link": self.invite_link(invitation.token),
                },
            },
        )
        await self._audit.log(
            tenant_id=tenant_id,
            user_id=ctx.principal.user_id,
            user_name=ctx.principal.name,
            user_email=ctx.principal.email,
            user_role=ctx.principal.role.value,
            action=AuditAction.CREATE,
            resource=AuditResource.USER,
            resource_id=invitation.id,
            details=(
                f'Invited user "{invitation.name}" ({invitation.email}) '
                f"with role {invitation.role.value}"
            ),
            ip_address=ctx.client_ip,
            user_agent=ctx.user_agent,
        )
        return invitation

    async def list_invitations(
        self,
        tenant_id: str,
        status: InvitationStatus | None = None,
    ) -> list[Invitation]:
        async with self._session_factory() as session:
            return await SqlAlchemyInvitationRepository(session).list_for_tenant(
                tenant_id,
                status=status,
            )

    async def cancel(self, ctx: RequestContext, invitation_id: str | None) -> Invitation:
        """Cancel a pending invitation in the caller's tenant.

        Settled invitations raise ``INVITATION_NOT_PENDING``; a pending one
        past its expiry is marked ``expired`` and raises ``INVITATION_EXPIRED``.
        """

        tenant_id = ctx.principal.require_tenant()
        if not invitation_id:
            raise ValidationError("Missing invitation ID", code="MISSING_ID")

        async with self._session_factory() as session:
            repo = SqlAlchemyInvitationRepository(session)
            invitation = await repo.get(invitation_id)
            if invitation is None or invitation.tenant_id != tenant_id:
                raise NotFoundError("Invitation not found")
            await self._ensure_usable(repo, invitation, expired_message="This invitation has expired")
            if not await repo.transition(invitation_id, InvitationStatus.CANCELLED, now=self._clock()):
                raise ValidationError(
                    "This invitation is no longer pending",
                    code="INVITATION_NOT_PENDING",
                )

        await self._audit.log(
            tenant_id=tenant_id,
            user_id=ctx.principal.user_id,
            user_name=ctx.principal.name,
            user_email=ctx.principal.email,
            user_role=ctx.principal.role.value,
            action=AuditAction.DELETE,
            resource=AuditResource.USER,
            resource_id=invitation_id,
            details=f"Cancelled invitation for {invitation.email}",
            ip_address=ctx.client_ip,
            user_agent=ctx.user_agent,
        )
        return replace(invitation, status=InvitationStatus.CANCELLED)

    async def get_by_token(self, token: str | None) -> Invitation:
        """Return a usable invitation for the acceptance page.

        A pending invitation past its expiry is moved to ``expired`` before
        ``INVITATION_EXPIRED`` is raised.
        """

        if not token:
            raise ValidationError("Missing invitation token", code="MISSING_TOKEN")

        async with self._session_factory() as session:
            repo = SqlAlchemyInvitationRepository(session)
            invitation = await repo.get_by_token(token)
            if invitation is None:
                raise NotFoundError("Invalid invitation link", code="INVALID_TOKEN")
            await self._ensure_usable(
                repo,
                invitation,
                expired_message="This invitation has expired. Please request a new one.",
            )
        return invitation

    async def accept(
        self,
        token: str | None,
        password: str | None,
        *,
        client_ip: str,
        user_agent: str,
    ) -> User:
        """Create the invitee's account and mark the invitation accepted.

        Raises:
            ValidationError: on missing fields, a short password, or an
                invitation that is no longer pending or has expired.
            NotFoundError: if the token matches no invitation.
            ConflictError: if an account already uses the invited e-mail.
        """

        if not token or not password:
            raise ValidationError("Missing required fields", code="MISSING_FIELDS")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                code="INVALID_PASSWORD",
            )

        now = self._clock()
        async with self._session_factory() as session:
            repo = SqlAlchemyInvitationRepository(session)
            users = SqlAlchemyUserRepository(session)

            invitation = await repo.get_by_token(token)
            if invitation is None:
                raise NotFoundError("Invalid invitation link", code="INVALID_TOKEN")
            await self._ensure_usable(repo, invitation, expired_message="This invitation has expired")

            if await users.get_by_email(invitation.email) is not None:
                raise ConflictError(
                    "An account with this email already exists",
                    code="EMAIL_EXISTS",
                )

            row = UserModel(
                tenant_id=invitation.tenant_id,
                email=invitation.email,
                name=invitation.name,
                role=invitation.role.value,
                password_hash=hash_password(password, self._bcrypt_rounds),
                is_active=True,
                entries_created=0,
                created_at=now,
            )
            try:
                await users.add(row)
                moved = await repo.transition(
                    invitation.id,
                    InvitationStatus.ACCEPTED,
                    now=now,
                    commit=False,
                )
                if not moved:
                    await session.rollback()
                    raise ValidationError(
                        "This invitation is no longer pending",
                        code="INVITATION_NOT_PENDING",
                    )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(
                    "An account with this email already exists",
                    code="EMAIL_EXISTS",
                ) from exc
            user = SqlAlchemyUserRepository._to_domain(row)

        await self._audit.log(
            tenant_id=invitation.tenant_id,
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            user_role=user.role.value,
            action=AuditAction.CREATE,
            resource=AuditResource.USER,
            resource_id=user.id,
            details=f"User accepted invitation and created account with role {user.role.value}",
            ip_address=client_ip,
            user_agent=user_agent,
        )
        return user

    async def _ensure_usable(
        self,
        repo: SqlAlchemyInvitationRepository,
        invitation: Invitation,
        *,
        expired_message: str,
    ) -> None:
        try:
            invitation.ensure_usable(self._clock())
        except ValidationError as exc:
            if exc.code != "INVITATION_EXPIRED":
                raise
            await repo.transition(invitation.id, InvitationStatus.EXPIRED, now=self._clock())
            logger.info(
                "Invitation expired",
                extra={"eco_extra": {"invitation_id": invitation.id}},
            )
            raise ValidationError(expired_message, code="INVITATION_EXPIRED") from exc

