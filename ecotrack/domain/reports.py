from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ReportType(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    CUSTOM = "custom"


class ReportStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100


@dataclass(frozen=True)
class Report:
    id: str
    tenant_id: str
    title: str
    report_type: ReportType
    status: ReportStatus
    period_start: datetime
    period_end: datetime
    total_co2e: float
    entry_count: int
    breakdown: dict[str, dict[str, float]] = field(default_factory=dict)
    generated_by: str | None = None
    generated_by_name: str | None = None
    created_at: datetime | None = None
    generation_completed_at: datetime | None = None
