from __future__ import annotations

import time
from hashlib import sha256
from typing import Any, Callable

import msgpack
from fastapi import Request
from fastapi.responses import Response
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ecotrack.api.responses import from_app_error
from ecotrack.application.auth.context import CachedClaims, RequestContext
from ecotrack.application.auth.tokens import TokenService
from ecotrack.core.errors import AuthenticationError
from ecotrack.core.logging import get_logger
from ecotrack.monitoring.metrics import AUTH_FAILURES_TOTAL

logger = get_logger(__name__)

PUBLIC_PATHS = frozenset(
    {
        "/",
        "/internal/health",
        "/internal/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
        "/api/auth/register-tenant",
        "/api/auth/sign-in",
        "/api/users/accept-invite",
    },
)

CLAIMS_CACHE_TTL_S = 300


def client_ip_from(request: Request) -> str:
    """First ``x-forwarded-for`` hop, then ``x-real-ip``, then the peer address."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Verify bearer tokens and attach the caller's RequestContext.

    Verified claims are cached in the counter store under the token's SHA-256
    for at most five minutes and never past the token's own expiry.
    """

    def __init__(self, app: Callable, *, tokens: TokenService, redis_client: Any) -> None:
        super().__init__(app)
        self._tokens = tokens
        self._redis_client = redis_client

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.method == "OPTIONS" or request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        try:
            claims = await self._authenticate(request)
        except AuthenticationError as exc:
            logger.warning(
                "Authentication failed for %s: %s",
                request.url.path,
                exc.message,
            )
            return from_app_error(exc)

        request.state.request_context = RequestContext(
            principal=claims.to_principal(),
            client_ip=client_ip_from(request),
            user_agent=request.headers.get("user-agent", "unknown"),
        )
        return await call_next(request)

    async def _authenticate(self, request: Request) -> CachedClaims:
        token = self._extract_token(request)
        if token is None:
            AUTH_FAILURES_TOTAL.labels(reason="missing").inc()
            raise AuthenticationError("Missing or invalid authorization header")

        lookup_hash = sha256(token.encode("utf-8")).hexdigest()
        cached = await self._get_cached_claims(lookup_hash)
        if cached is not None:
            return cached

        try:
            claims = CachedClaims.from_claims(self._tokens.decode(token))
        except AuthenticationError:
            AUTH_FAILURES_TOTAL.labels(reason="invalid").inc()
            raise
        await self._cache_claims(lookup_hash, claims)
        return claims

    @staticmethod
    def _extract_token(request: Request) -> str | None:
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.lower().startswith("bearer "):
            token = auth_header[7:].strip()
            return token or None
        return None

    async def _get_cached_claims(self, lookup_hash: str) -> CachedClaims | None:
        key = f"eco:auth:token:{lookup_hash}"
        try:
            raw = await self._redis_client.get(key)
        except (RedisError, OSError) as exc:
            logger.warning("Token cache unavailable: %s", exc)
            return None
        if raw is None:
            return None
        cached = CachedClaims.from_payload(msgpack.unpackb(raw, raw=False))
        if cached.exp is not None and cached.exp <= time.time():
            return None
        return cached

    async def _cache_claims(self, lookup_hash: str, claims: CachedClaims) -> None:
        ttl_seconds = CLAIMS_CACHE_TTL_S
        if claims.exp is not None:
            seconds_until_expiry = int(claims.exp - time.time())
            if seconds_until_expiry <= 0:
                return
            ttl_seconds = min(ttl_seconds, seconds_until_expiry)
        key = f"eco:auth:token:{lookup_hash}"
        try:
            await self._redis_client.set(key, msgpack.packb(claims.to_payload()), ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            logger.warning("Failed to cache token claims: %s", exc)
