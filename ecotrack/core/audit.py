from __future__ import annotations

import hashlib
import json
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.logging import get_logger
from ecotrack.domain.audit import (
    RETENTION_DAYS,
    AuditAction,
    AuditResource,
    AuditSeverity,
    AuditStatus,
)
from ecotrack.infrastructure.models import AuditLogModel

logger = get_logger(__name__)

GENESIS_HASH = "0" * 64

SENSITIVE_KEYS = frozenset(
    {"email", "password", "api_key", "secret", "token", "phone", "ic_number", "passport"},
)


def redact_pii(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace values of sensitive keys, recursing into nested mappings."""
    redacted = data.copy()
    for k, v in redacted.items():
        if k.lower() in SENSITIVE_KEYS:
            redacted[k] = "[REDACTED]"
        elif isinstance(v, dict):
            redacted[k] = redact_pii(v)
    return redacted


def redact_change_log(change_log: Sequence[Dict[str, Any]]) -> list[Dict[str, Any]]:
    """Hide old/new values of changes to sensitive fields."""
    result = []
    for change in change_log:
        field = str(change.get("fieldName", ""))
        if field.lower() in SENSITIVE_KEYS:
            result.append({"fieldName": field, "oldValue": "[REDACTED]", "newValue": "[REDACTED]"})
        else:
            result.append(redact_pii(dict(change)))
    return result


class AuditLogger:
    """
    PDPA audit logging with per-tenant tamper-evident chaining.

    Each record stores the hash of the tenant's previous record, so editing
    or deleting a row breaks every later link.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def _get_last_hash(self, session: AsyncSession, tenant_id: str) -> str:
        stmt = (
            select(AuditLogModel.hash)
            .where(AuditLogModel.tenant_id == tenant_id)
            .order_by(AuditLogModel.created_at.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        last_hash = result.scalar_one_or_none()
        return last_hash or GENESIS_HASH

    @staticmethod
    def _calculate_hash(prev_hash: str, payload: Dict[str, Any]) -> str:
        message = f"{prev_hash}|{json.dumps(payload, sort_keys=True, default=str)}"
        return hashlib.sha256(message.encode("utf-8")).hexdigest()

    @staticmethod
    def _hash_payload(row: AuditLogModel) -> Dict[str, Any]:
        return {
            "tenant_id": row.tenant_id,
            "user_id": row.user_id,
            "action": row.action,
            "resource": row.resource,
            "resource_id": row.resource_id,
            "details": row.details,
            "status": row.status,
            "severity": row.severity,
            "change_log": row.change_log,
            "timestamp": row.created_at.isoformat(),
        }

    async def log(
        self,
        *,
        tenant_id: str,
        user_id: Optional[str],
        user_name: str,
        action: AuditAction,
        resource: AuditResource,
        details: str,
        ip_address: str,
        user_agent: str,
        status: AuditStatus = AuditStatus.SUCCESS,
        severity: AuditSeverity = AuditSeverity.INFO,
        user_email: Optional[str] = None,
        user_role: Optional[str] = None,
        resource_id: Optional[str] = None,
        request_id: Optional[str] = None,
        error_message: Optional[str] = None,
        error_code: Optional[str] = None,
        change_log: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> AuditLogModel:
        """Record an audit event and return the stored row."""

        now = self._clock()
        async with self._session_factory() as session:
            prev_hash = await self._get_last_hash(session, tenant_id)

            entry = AuditLogModel(
                tenant_id=tenant_id,
                user_id=user_id,
                user_name=user_name,
                user_email=user_email,
                user_role=user_role,
                action=action.value,
                resource=resource.value,
                resource_id=resource_id,
                details=details,
                ip_address=ip_address,
                user_agent=user_agent,
                request_id=request_id,
                status=status.value,
                severity=severity.value,
                error_message=error_message,
                error_code=error_code,
                change_log=redact_change_log(change_log) if change_log is not None else None,
                retain_until=now + timedelta(days=RETENTION_DAYS),
                prev_hash=prev_hash,
                created_at=now,
            )
            entry.hash = self._calculate_hash(prev_hash, self._hash_payload(entry))

            session.add(entry)
            await session.commit()

        logger.info(
            "Audit log entry created: %s %s",
            action.value,
            resource.value,
            extra={
                "eco_extra": {
                    "tenant_id": tenant_id,
                    "audit_hash": entry.hash,
                    "user_id": user_id,
                },
            },
        )
        return entry

    async def list_for_tenant(
        self,
        tenant_id: str,
        *,
        limit: int = 50,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[AuditLogModel]:
        async with self._session_factory() as session:
            stmt = select(AuditLogModel).where(AuditLogModel.tenant_id == tenant_id)
            if action:
                stmt = stmt.where(AuditLogModel.action == action)
            if resource:
                stmt = stmt.where(AuditLogModel.resource == resource)
            if since is not None:
                stmt = stmt.where(AuditLogModel.created_at >= since)
            stmt = stmt.order_by(AuditLogModel.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def verify_chain(self, tenant_id: str, limit: int = 100) -> bool:
        """Verify the integrity of the tenant's most recent ``limit`` records."""

        entries = await self.list_for_tenant(tenant_id, limit=limit)
        for i, current in enumerate(entries):
            if current.hash != self._calculate_hash(current.prev_hash, self._hash_payload(current)):
                logger.error("Audit record hash mismatch at %s", current.id)
                return False
            if i + 1 < len(entries) and current.prev_hash != entries[i + 1].hash:
                logger.error("Audit chain broken at %s", current.id)
                return False
        return True
