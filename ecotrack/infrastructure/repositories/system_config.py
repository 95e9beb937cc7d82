from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.infrastructure.models import SystemConfigModel


class SqlAlchemySystemConfigRepository:
    """Reads and writes named records in the ``system_config`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, config_id: str) -> SystemConfigModel | None:
        return await self._session.get(SystemConfigModel, config_id)

    async def upsert(
        self,
        config_id: str,
        *,
        rate_limits: dict[str, Any],
        quotas: dict[str, Any],
        updated_by: str | None,
        when: datetime,
    ) -> SystemConfigModel:
        existing = await self._session.get(SystemConfigModel, config_id)
        if existing is None:
            existing = SystemConfigModel(id=config_id)
            self._session.add(existing)

        existing.rate_limits = rate_limits
        existing.quotas = quotas
        existing.updated_by = updated_by
        existing.updated_at = when

        await self._session.commit()
        return existing
