from __future__ import annotations

from datetime import timedelta
from typing import Any

import bcrypt
import jwt

from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import AuthenticationError
from ecotrack.core.settings import Settings
from ecotrack.domain.users import User


def hash_password(password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class TokenService:
    """Issues and verifies HS256 bearer tokens carrying role and tenant claims."""

    def __init__(self, settings: Settings, *, clock: Clock = utcnow) -> None:
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._issuer = settings.jwt_issuer
        self._ttl = timedelta(seconds=settings.jwt_ttl_s)
        self._clock = clock

    def issue_token(self, user: User, *, tenant_name: str | None = None) -> str:
        now = self._clock()
        claims: dict[str, Any] = {
            "sub": user.id,
            "role": user.role.value,
            "tenantId": user.tenant_id,
            "tenantName": tenant_name,
            "email": user.email,
            "name": user.name,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        if self._issuer:
            claims["iss"] = self._issuer
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> dict[str, Any]:
        """Verify ``token`` and return its claims.

        Raises:
            AuthenticationError: if the token is malformed, badly signed or
                expired.
        """

        options = {"require": ["exp", "sub"]}
        try:
            if self._issuer:
                return jwt.decode(
                    token,
                    self._secret,
                    algorithms=[self._algorithm],
                    issuer=self._issuer,
                    options=options,
                )
            return jwt.decode(token, self._secret, algorithms=[self._algorithm], options=options)
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid or expired token") from exc
