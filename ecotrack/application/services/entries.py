from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.application.auth.context import RequestContext
from ecotrack.core.audit import AuditLogger
from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import ValidationError
from ecotrack.core.logging import get_logger
from ecotrack.domain.audit import AuditAction, AuditResource
from ecotrack.domain.carbon import Region, calculate_co2e, infer_region_from_provider
from ecotrack.domain.entries import (
    MAX_LIST_LIMIT,
    AnalyticsWarehouse,
    Entry,
    EntryStatus,
    ExtractionMethod,
    NullWarehouse,
    UsageUnit,
    UtilityType,
    status_for_confidence,
)
from ecotrack.infrastructure.repositories.entries import SqlAlchemyEntryRepository
from ecotrack.infrastructure.repositories.tenants import SqlAlchemyTenantRepository
from ecotrack.infrastructure.repositories.users import SqlAlchemyUserRepository
from ecotrack.monitoring.metrics import BEST_EFFORT_FAILURES_TOTAL

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 20

_REQUIRED_FIELDS = (
    ("utility_type", "utilityType"),
    ("usage", "usage"),
    ("unit", "unit"),
    ("billing_date", "billingDate"),
    ("amount", "amount"),
    ("extraction_method", "extractionMethod"),
)


@dataclass(frozen=True)
class NewEntry:
    """Entry fields as submitted; required ones are checked by the service."""

    utility_type: UtilityType | None = None
    usage: float | None = None
    unit: UsageUnit | None = None
    billing_date: datetime | None = None
    amount: float | None = None
    extraction_method: ExtractionMethod | None = None
    provider: str | None = None
    currency: str | None = None
    account_number: str | None = None
    meter_number: str | None = None
    billing_period_start: datetime | None = None
    billing_period_end: datetime | None = None
    bill_image_url: str | None = None
    confidence: float | None = None
    notes: str | None = None
    tags: list[str] = field(default_factory=list)


class EntryService:
    """Creates and lists emission entries for a tenant."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: AuditLogger,
        *,
        warehouse: AnalyticsWarehouse | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._warehouse = warehouse or NullWarehouse()
        self._clock = clock

    async def create_entry(self, ctx: RequestContext, new: NewEntry) -> Entry:
        """Compute CO2e for ``new`` and store it in the caller's tenant.

        Tenant and user aggregates and the analytics warehouse are updated
        after the entry is stored; failures there are logged and do not fail
        the request.
        """

        tenant_id = ctx.principal.require_tenant()
        for attr, name in _REQUIRED_FIELDS:
            if getattr(new, attr) is None:
                raise ValidationError(f"Missing required field: {name}", code="MISSING_FIELDS")

        region = infer_region_from_provider(new.provider) if new.provider else Region.PENINSULAR
        result = calculate_co2e(new.usage, new.utility_type, region=region)

        entry = Entry(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            user_id=ctx.principal.user_id,
            user_name=ctx.principal.name,
            utility_type=new.utility_type,
            provider=new.provider or "Unknown",
            region=region.value,
            usage=new.usage,
            unit=new.unit,
            amount=new.amount,
            currency=new.currency or "MYR",
            co2e=result.co2e,
            emission_factor=result.emission_factor,
            calculation_method=result.calculation_method,
            billing_date=new.billing_date,
            billing_period_start=new.billing_period_start,
            billing_period_end=new.billing_period_end,
            account_number=new.account_number or None,
            meter_number=new.meter_number or None,
            extraction_method=new.extraction_method,
            confidence=new.confidence,
            status=status_for_confidence(new.confidence),
            bill_image_url=new.bill_image_url or None,
            notes=new.notes or None,
            tags=list(new.tags),
        )

        async with self._session_factory() as session:
            stored = await SqlAlchemyEntryRepository(session).add(entry)

        await self._update_aggregates(stored)
        await self._send_to_warehouse(stored)

        await self._audit.log(
            tenant_id=tenant_id,
            user_id=ctx.principal.user_id,
            user_name=ctx.principal.name,
            user_email=ctx.principal.email,
            user_role=ctx.principal.role.value,
            action=AuditAction.CREATE,
            resource=AuditResource.ENTRY,
            resource_id=stored.id,
            details=(
                f"Created {stored.utility_type.value} entry: {stored.usage} {stored.unit.value}, "
                f"{stored.co2e} kg CO2e"
            ),
            ip_address=ctx.client_ip,
            user_agent=ctx.user_agent,
        )
        return stored

    async def list_entries(
        self,
        tenant_id: str,
        *,
        limit: int = DEFAULT_LIST_LIMIT,
        utility_type: UtilityType | None = None,
        status: EntryStatus | None = None,
    ) -> list[Entry]:
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        async with self._session_factory() as session:
            return await SqlAlchemyEntryRepository(session).list_for_tenant(
                tenant_id,
                limit=limit,
                utility_type=utility_type,
                status=status,
            )

    async def _update_aggregates(self, entry: Entry) -> None:
        now = self._clock()
        try:
            async with self._session_factory() as session:
                await SqlAlchemyTenantRepository(session).add_entry_aggregates(
                    entry.tenant_id,
                    co2e=entry.co2e,
                    now=now,
                )
                await SqlAlchemyUserRepository(session).record_entry_created(entry.user_id, now=now)
        except SQLAlchemyError:
            BEST_EFFORT_FAILURES_TOTAL.labels(target="aggregates").inc()
            logger.warning(
                "Failed to update entry aggregates",
                exc_info=True,
                extra={"eco_extra": {"tenant_id": entry.tenant_id, "entry_id": entry.id}},
            )

    async def _send_to_warehouse(self, entry: Entry) -> None:
        try:
            await self._warehouse.insert_entry(entry)
        except Exception:
            BEST_EFFORT_FAILURES_TOTAL.labels(target="warehouse").inc()
            logger.warning(
                "Failed to write entry to analytics warehouse",
                exc_info=True,
                extra={"eco_extra": {"tenant_id": entry.tenant_id, "entry_id": entry.id}},
            )
