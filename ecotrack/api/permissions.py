from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from ecotrack.api.responses import from_app_error
from ecotrack.application.auth.context import AuthenticatedPrincipal, RequestContext
from ecotrack.core.errors import AppError, AuthenticationError, AuthorizationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.permissions import Permission, has_permission
from ecotrack.monitoring.metrics import PERMISSION_DENIALS_TOTAL

logger = get_logger(__name__)


@dataclass(slots=True)
class PermissionDecision:
    """Result of a permission check.

    When authorized, ``context`` is set. Otherwise ``error`` holds the 401 or
    403 error and ``response`` its prepared envelope.
    """

    authorized: bool
    context: RequestContext | None = None
    error: AppError | None = None
    response: JSONResponse | None = None

    @property
    def principal(self) -> AuthenticatedPrincipal | None:
        return self.context.principal if self.context is not None else None


def _deny(error: AppError) -> PermissionDecision:
    return PermissionDecision(authorized=False, error=error, response=from_app_error(error))


def require_permission(request: Request, permission: Permission) -> PermissionDecision:
    """Check the authenticated caller against the allow-list for ``permission``.

    Only the role is consulted; the caller's tenant plays no part.
    """

    context = getattr(request.state, "request_context", None)
    if context is None:
        return _deny(AuthenticationError("Unauthenticated"))

    role = context.principal.role
    if not has_permission(role, permission):
        PERMISSION_DENIALS_TOTAL.labels(permission=permission.value).inc()
        logger.warning(
            "Permission denied",
            extra={
                "eco_extra": {
                    "user_id": context.principal.user_id,
                    "role": role.value,
                    "permission": permission.value,
                },
            },
        )
        return _deny(
            AuthorizationError(
                f"Insufficient permissions. Required: {permission.value}",
                data={"requiredPermission": permission.value, "role": role.value},
            ),
        )
    return PermissionDecision(authorized=True, context=context)


def permission_required(permission: Permission) -> Callable[[Request], Awaitable[RequestContext]]:
    """FastAPI dependency that raises 401/403 unless the caller holds ``permission``."""

    async def dependency(request: Request) -> RequestContext:
        decision = require_permission(request, permission)
        if not decision.authorized:
            raise decision.error
        return decision.context

    return dependency
