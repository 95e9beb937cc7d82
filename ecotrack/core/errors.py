"""Application error taxonomy.

Every error carries the HTTP status and machine-readable code that the API
layer places in the response envelope. Call sites may override ``code`` to
give clients a more specific reason (``INVALID_UEN``, ``INVITATION_EXPIRED``).
"""
from __future__ import annotations

from typing import Any, Mapping


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.data = dict(data) if data else None
        self.headers = dict(headers) if headers else None


class AuthenticationError(AppError):
    """Missing, invalid or expired bearer token."""

    status_code = 401
    default_code = "UNAUTHORIZED"


class AuthorizationError(AppError):
    """Role lacks the permission, or cross-tenant access was attempted."""

    status_code = 403
    default_code = "FORBIDDEN"


class ValidationError(AppError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    default_code = "CONFLICT"


class QuotaExceededError(AppError):
    """Monthly cap for an operation has been reached."""

    status_code = 429
    default_code = "QUOTA_EXCEEDED"


class RateLimitExceededError(AppError):
    """Short-window request cap for an operation has been reached."""

    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"


class ExternalServiceError(AppError):
    """Generative-AI call failed or returned an unusable response."""

    status_code = 502
    default_code = "EXTERNAL_SERVICE_ERROR"


class InternalError(AppError):
    status_code = 500
    default_code = "INTERNAL_ERROR"
