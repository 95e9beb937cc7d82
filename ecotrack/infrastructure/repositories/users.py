from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.domain.users import User, UserRole
from ecotrack.infrastructure.models import UserModel


class SqlAlchemyUserRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> User | None:
        row = await self._session.get(UserModel, user_id)
        return self._to_domain(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserModel).where(UserModel.email == email.lower())
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._to_domain(row) if row is not None else None

    async def list_for_tenant(self, tenant_id: str) -> list[User]:
        stmt = (
            select(UserModel)
            .where(UserModel.tenant_id == tenant_id)
            .order_by(UserModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def add(self, model: UserModel) -> None:
        self._session.add(model)
        await self._session.flush()

    async def update_fields(self, user_id: str, values: dict[str, Any], *, now: datetime) -> User | None:
        """Apply ``values`` to the user row and return the stored user."""

        row = await self._session.get(UserModel, user_id)
        if row is None:
            return None
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = now
        await self._session.commit()
        return self._to_domain(row)

    async def delete(self, user_id: str) -> bool:
        result = await self._session.execute(delete(UserModel).where(UserModel.id == user_id))
        await self._session.commit()
        return result.rowcount > 0

    async def record_entry_created(self, user_id: str, *, now: datetime) -> None:
        await self._session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(entries_created=UserModel.entries_created + 1, last_activity=now)
            .execution_options(synchronize_session=False),
        )
        await self._session.commit()

    @staticmethod
    def _to_domain(model: UserModel) -> User:
        return User(
            id=model.id,
            tenant_id=model.tenant_id,
            email=model.email,
            name=model.name,
            role=UserRole(model.role),
            password_hash=model.password_hash,
            is_active=model.is_active,
            created_at=model.created_at,
            phone=model.phone,
            job_title=model.job_title,
            avatar_url=model.avatar_url,
            entries_created=model.entries_created or 0,
            last_activity=model.last_activity,
            updated_at=model.updated_at,
        )
