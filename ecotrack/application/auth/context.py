from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping

from ecotrack.core.errors import AuthenticationError, AuthorizationError
from ecotrack.domain.users import UserRole


@dataclass(slots=True)
class AuthenticatedPrincipal:
    """Information about the authenticated caller derived from a bearer token."""

    user_id: str
    role: UserRole
    tenant_id: str | None
    tenant_name: str | None
    email: str | None
    name: str

    @property
    def is_superadmin(self) -> bool:
        return self.role is UserRole.SUPERADMIN

    def require_tenant(self) -> str:
        if not self.tenant_id:
            raise AuthorizationError("User is not associated with a tenant")
        return self.tenant_id


@dataclass(slots=True)
class RequestContext:
    """Per-request context injected by the authentication middleware."""

    principal: AuthenticatedPrincipal
    client_ip: str
    user_agent: str


@dataclass(slots=True)
class CachedClaims:
    """Verified token claims serialized into the counter store."""

    sub: str
    role: str
    tenant_id: str | None
    tenant_name: str | None
    email: str | None
    name: str
    exp: float | None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "CachedClaims":
        sub = claims.get("sub")
        role = claims.get("role")
        if not sub or not role:
            raise AuthenticationError("Token is missing required claims")
        if role not in {r.value for r in UserRole}:
            raise AuthenticationError("Token carries an unknown role")
        tenant_id = claims.get("tenantId")
        if not tenant_id and role != UserRole.SUPERADMIN.value:
            raise AuthenticationError("Token is missing required claims")
        exp = claims.get("exp")
        return cls(
            sub=str(sub),
            role=str(role),
            tenant_id=str(tenant_id) if tenant_id else None,
            tenant_name=claims.get("tenantName"),
            email=claims.get("email"),
            name=str(claims.get("name") or "Unknown"),
            exp=float(exp) if exp is not None else None,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CachedClaims":
        return cls(**payload)

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    def to_principal(self) -> AuthenticatedPrincipal:
        return AuthenticatedPrincipal(
            user_id=self.sub,
            role=UserRole(self.role),
            tenant_id=self.tenant_id,
            tenant_name=self.tenant_name,
            email=self.email,
            name=self.name,
        )
