from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.application.auth.tokens import TokenService, hash_password, verify_password
from ecotrack.core.audit import AuditLogger
from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import AuthenticationError, ConflictError, ValidationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.audit import AuditAction, AuditResource
from ecotrack.domain.quota import month_bounds
from ecotrack.domain.tenants import (
    SubscriptionTier,
    Tenant,
    TenantStatus,
    is_valid_phone,
    is_valid_uen,
    normalize_phone,
    normalize_uen,
)
from ecotrack.domain.users import MIN_PASSWORD_LENGTH, User, UserRole
from ecotrack.infrastructure.models import TenantModel, UserModel
from ecotrack.infrastructure.repositories.tenants import SqlAlchemyTenantRepository
from ecotrack.infrastructure.repositories.users import SqlAlchemyUserRepository

logger = get_logger(__name__)

INVALID_UEN_MESSAGE = (
    "Invalid UEN format. Must be ROC format (e.g., ROC123456) "
    "or 12-digit number (e.g., 201501012345)"
)


@dataclass(frozen=True)
class TenantRegistration:
    """Self-service sign-up payload for a company and its first admin."""

    company_name: str | None
    uen: str | None
    sector: str | None
    address: str | None
    admin_name: str | None
    admin_email: str | None
    admin_password: str | None
    pdpa_consent: bool | None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    admin_phone: str | None = None


@dataclass(frozen=True)
class SignInResult:
    token: str
    user: User
    tenant_name: str | None


class TenantService:
    """Tenant onboarding and password sign-in."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tokens: TokenService,
        audit: AuditLogger,
        *,
        bcrypt_rounds: int = 12,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._tokens = tokens
        self._audit = audit
        self._bcrypt_rounds = bcrypt_rounds
        self._clock = clock

    async def register_tenant(
        self,
        registration: TenantRegistration,
        *,
        client_ip: str,
        user_agent: str,
    ) -> tuple[Tenant, User]:
        """Create a trial tenant and its admin user.

        Raises:
            ValidationError: on missing fields, a malformed UEN or phone
                number, a short password or missing PDPA consent.
            ConflictError: if the UEN or the admin e-mail is already taken.
        """

        r = registration
        if not all(
            (
                r.company_name,
                r.uen,
                r.sector,
                r.address,
                r.admin_name,
                r.admin_email,
                r.admin_password,
                r.pdpa_consent is not None,
            ),
        ):
            raise ValidationError("Missing required fields", code="MISSING_FIELDS")

        if not is_valid_uen(r.uen):
            raise ValidationError(INVALID_UEN_MESSAGE, code="INVALID_UEN")
        uen = normalize_uen(r.uen)
        email = r.admin_email.strip().lower()

        now = self._clock()
        async with self._session_factory() as session:
            tenants = SqlAlchemyTenantRepository(session)
            users = SqlAlchemyUserRepository(session)

            if await tenants.exists_with_uen(uen):
                raise ConflictError(
                    "A company with this UEN is already registered",
                    code="UEN_EXISTS",
                )
            if r.admin_phone and not is_valid_phone(r.admin_phone):
                raise ValidationError(
                    "Invalid Malaysian phone number format",
                    code="INVALID_PHONE",
                )
            if not r.pdpa_consent:
                raise ValidationError("PDPA consent is required", code="CONSENT_REQUIRED")
            if len(r.admin_password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                    code="INVALID_PASSWORD",
                )
            if await users.get_by_email(email) is not None:
                raise ConflictError(
                    "An account with this email already exists",
                    code="EMAIL_EXISTS",
                )

            period_start, period_end = month_bounds(now)
            tenant_row = TenantModel(
                company_name=r.company_name,
                uen=uen,
                sector=r.sector,
                address=r.address,
                city=r.city,
                state=r.state,
                postal_code=r.postal_code,
                phone=normalize_phone(r.admin_phone) if r.admin_phone else None,
                email=email,
                status=TenantStatus.TRIAL.value,
                subscription_tier=SubscriptionTier.TRIAL.value,
                pdpa_consent_at=now,
                total_entries=0,
                total_emissions=0.0,
                current_month_emissions=0.0,
                usage_bill_analysis_count=0,
                usage_report_generation_count=0,
                usage_period_start=period_start,
                usage_period_end=period_end,
                usage_last_reset=now,
                usage_updated_at=now,
                created_at=now,
            )
            try:
                await tenants.add(tenant_row)
                user_row = UserModel(
                    tenant_id=tenant_row.id,
                    email=email,
                    name=r.admin_name,
                    role=UserRole.ADMIN.value,
                    phone=tenant_row.phone,
                    password_hash=hash_password(r.admin_password, self._bcrypt_rounds),
                    is_active=True,
                    entries_created=0,
                    created_at=now,
                )
                await users.add(user_row)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(
                    "A company with this UEN or an account with this email already exists",
                ) from exc

            tenant = SqlAlchemyTenantRepository._to_domain(tenant_row)
            admin = SqlAlchemyUserRepository._to_domain(user_row)

        logger.info(
            "Tenant registered",
            extra={"eco_extra": {"tenant_id": tenant.id, "admin_user_id": admin.id}},
        )
        await self._audit.log(
            tenant_id=tenant.id,
            user_id=admin.id,
            user_name=admin.name,
            user_email=admin.email,
            user_role=admin.role.value,
            action=AuditAction.CREATE,
            resource=AuditResource.TENANT,
            resource_id=tenant.id,
            details=f'Tenant "{tenant.company_name}" registered with UEN {tenant.uen}',
            ip_address=client_ip,
            user_agent=user_agent,
        )
        return tenant, admin

    async def sign_in(
        self,
        email: str | None,
        password: str | None,
        *,
        client_ip: str,
        user_agent: str,
    ) -> SignInResult:
        if not email or not password:
            raise ValidationError("Missing required fields", code="MISSING_FIELDS")

        async with self._session_factory() as session:
            user = await SqlAlchemyUserRepository(session).get_by_email(email.strip())
            tenant = None
            if user is not None and user.tenant_id:
                tenant = await SqlAlchemyTenantRepository(session).get(user.tenant_id)

        if user is None or not user.is_active or not verify_password(password, user.password_hash):
            logger.warning("Sign-in rejected", extra={"eco_extra": {"client_ip": client_ip}})
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

        tenant_name = tenant.company_name if tenant is not None else None
        token = self._tokens.issue_token(user, tenant_name=tenant_name)

        if user.tenant_id:
            await self._audit.log(
                tenant_id=user.tenant_id,
                user_id=user.id,
                user_name=user.name,
                user_email=user.email,
                user_role=user.role.value,
                action=AuditAction.LOGIN,
                resource=AuditResource.USER,
                resource_id=user.id,
                details=f"User {user.name} signed in",
                ip_address=client_ip,
                user_agent=user_agent,
            )
        return SignInResult(token=token, user=user, tenant_name=tenant_name)
