from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol


class UtilityType(str, Enum):
    ELECTRICITY = "electricity"
    WATER = "water"
    FUEL = "fuel"
    OTHER = "other"


class UsageUnit(str, Enum):
    KWH = "kWh"
    CUBIC_METER = "m³"
    LITER = "L"
    KILOGRAM = "kg"


class ExtractionMethod(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class EntryStatus(str, Enum):
    VERIFIED = "verified"
    PENDING = "pending"
    FLAGGED = "flagged"
    REJECTED = "rejected"


LOW_CONFIDENCE_THRESHOLD = 0.7
MAX_LIST_LIMIT = 100


def status_for_confidence(confidence: float | None) -> EntryStatus:
    """Low-confidence extractions wait for human review."""
    if confidence is not None and confidence < LOW_CONFIDENCE_THRESHOLD:
        return EntryStatus.PENDING
    return EntryStatus.VERIFIED


@dataclass(frozen=True)
class Entry:
    """A utility-bill-derived emission record owned by one tenant."""

    id: str
    tenant_id: str
    user_id: str
    user_name: str
    utility_type: UtilityType
    provider: str
    region: str
    usage: float
    unit: UsageUnit
    amount: float
    currency: str
    co2e: float
    emission_factor: float
    calculation_method: str
    billing_date: datetime
    billing_period_start: datetime | None
    billing_period_end: datetime | None
    account_number: str | None
    meter_number: str | None
    extraction_method: ExtractionMethod
    confidence: float | None
    status: EntryStatus
    bill_image_url: str | None = None
    notes: str | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None


class AnalyticsWarehouse(Protocol):
    """Sink for denormalised entry rows used by analytics dashboards."""

    async def insert_entry(self, entry: Entry) -> None:
        """Append an entry row."""


class NullWarehouse:
    """Warehouse that discards every row."""

    async def insert_entry(self, entry: Entry) -> None:
        return None
