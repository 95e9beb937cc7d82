from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.domain.invitations import Invitation, InvitationStatus, can_transition
from ecotrack.domain.users import UserRole
from ecotrack.infrastructure.models import InvitationModel


class SqlAlchemyInvitationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, invitation_id: str) -> Invitation | None:
        row = await self._session.get(InvitationModel, invitation_id)
        return self._to_domain(row) if row is not None else None

    async def get_by_token(self, token: str) -> Invitation | None:
        stmt = select(InvitationModel).where(InvitationModel.token == token)
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_domain(row) if row is not None else None

    async def find_live_pending(self, tenant_id: str, email: str, now: datetime) -> Invitation | None:
        stmt = (
            select(InvitationModel)
            .where(
                InvitationModel.tenant_id == tenant_id,
                InvitationModel.email == email,
                InvitationModel.status == InvitationStatus.PENDING.value,
                InvitationModel.expires_at > now,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_domain(row) if row is not None else None

    async def list_for_tenant(
        self,
        tenant_id: str,
        *,
        status: InvitationStatus | None = None,
    ) -> list[Invitation]:
        stmt = select(InvitationModel).where(InvitationModel.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(InvitationModel.status == status.value)
        stmt = stmt.order_by(InvitationModel.created_at.desc())
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def add(self, model: InvitationModel) -> None:
        self._session.add(model)
        await self._session.commit()

    async def transition(
        self,
        invitation_id: str,
        target: InvitationStatus,
        *,
        now: datetime,
        commit: bool = True,
    ) -> bool:
        """Move a pending invitation to ``target``.

        The update only matches rows still ``pending``, so two concurrent
        transitions cannot both succeed. Returns whether the row moved.
        """

        if not can_transition(InvitationStatus.PENDING, target):
            raise ValueError(f"Invitations cannot move from pending to {target.value}")

        values: dict[str, Any] = {"status": target.value}
        if target is InvitationStatus.ACCEPTED:
            values["accepted_at"] = now
        elif target is InvitationStatus.CANCELLED:
            values["cancelled_at"] = now

        result = await self._session.execute(
            update(InvitationModel)
            .where(
                InvitationModel.id == invitation_id,
                InvitationModel.status == InvitationStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False),
        )
        if commit:
            await self._session.commit()
        return result.rowcount > 0

    @staticmethod
    def _to_domain(model: InvitationModel) -> Invitation:
        return Invitation(
            id=model.id,
            tenant_id=model.tenant_id,
            tenant_name=model.tenant_name,
            email=model.email,
            name=model.name,
            role=UserRole(model.role),
            token=model.token,
            status=InvitationStatus(model.status),
            invited_by=model.invited_by,
            invited_by_name=model.invited_by_name,
            expires_at=model.expires_at,
            created_at=model.created_at,
            accepted_at=model.accepted_at,
        )
