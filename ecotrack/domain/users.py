from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    CLERK = "clerk"
    VIEWER = "viewer"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


INVITABLE_ROLES = frozenset({UserRole.ADMIN, UserRole.CLERK, UserRole.VIEWER})

MIN_PASSWORD_LENGTH = 8
MIN_DISPLAY_NAME_LENGTH = 2


@dataclass(frozen=True)
class User:
    """A user account. Every non-superadmin user belongs to exactly one tenant."""

    id: str
    tenant_id: str | None
    email: str
    name: str
    role: UserRole
    password_hash: str
    is_active: bool
    created_at: datetime | None = None
    phone: str | None = None
    job_title: str | None = None
    avatar_url: str | None = None
    entries_created: int = 0
    last_activity: datetime | None = None
    updated_at: datetime | None = None

    @property
    def status(self) -> UserStatus:
        return UserStatus.ACTIVE if self.is_active else UserStatus.INACTIVE
