from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ecotrack.core.errors import ValidationError
from ecotrack.domain.users import UserRole


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# Transitions are one-way out of PENDING.
_TRANSITIONS: dict[InvitationStatus, frozenset[InvitationStatus]] = {
    InvitationStatus.PENDING: frozenset(
        {InvitationStatus.ACCEPTED, InvitationStatus.EXPIRED, InvitationStatus.CANCELLED},
    ),
    InvitationStatus.ACCEPTED: frozenset(),
    InvitationStatus.EXPIRED: frozenset(),
    InvitationStatus.CANCELLED: frozenset(),
}


def can_transition(current: InvitationStatus, target: InvitationStatus) -> bool:
    return target in _TRANSITIONS[current]


def generate_invitation_token() -> str:
    """Return a 64-character hex token."""
    return secrets.token_hex(32)


@dataclass(frozen=True)
class Invitation:
    """A pending (or settled) invitation for a user to join a tenant.

    Args:
        id: Invitation identifier.
        tenant_id: Tenant the invitee will join.
        tenant_name: Company name shown on the acceptance page.
        email: Invitee e-mail address, lower-cased.
        name: Invitee display name.
        role: Role granted on acceptance.
        token: Opaque single-use token carried in the invite link.
        status: Current lifecycle status.
        invited_by: User id of the inviter.
        invited_by_name: Display name of the inviter.
        expires_at: Instant after which the invitation can no longer be used.
    """

    id: str
    tenant_id: str
    tenant_name: str
    email: str
    name: str
    role: UserRole
    token: str
    status: InvitationStatus
    invited_by: str
    invited_by_name: str
    expires_at: datetime
    created_at: datetime | None = None
    accepted_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def ensure_usable(self, now: datetime) -> None:
        """Raise unless the invitation is pending and not past its expiry.

        The caller is responsible for persisting the ``expired`` status when
        ``INVITATION_EXPIRED`` is raised.
        """
        if self.status is not InvitationStatus.PENDING:
            raise ValidationError(
                f"This invitation has already been {self.status.value}",
                code="INVITATION_NOT_PENDING",
            )
        if self.is_expired(now):
            raise ValidationError(
                "This invitation has expired",
                code="INVITATION_EXPIRED",
            )
