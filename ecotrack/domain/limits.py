from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ecotrack.domain.tenants import SubscriptionTier


class Operation(str, Enum):
    """Expensive operations tracked by the rate limiter and quota tracker."""

    BILL_ANALYSIS = "billAnalysis"
    REPORT_GENERATION = "reportGeneration"


class RateLimitWindow(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    @property
    def milliseconds(self) -> int:
        return _WINDOW_MS[self]


_WINDOW_MS = {
    RateLimitWindow.MINUTE: 60_000,
    RateLimitWindow.HOUR: 3_600_000,
    RateLimitWindow.DAY: 86_400_000,
}


UNLIMITED = -1


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OperationLimits(_CamelModel):
    """Requests allowed per window for a single operation."""

    requests_per_minute: int = Field(ge=1)
    requests_per_hour: int = Field(ge=1)
    requests_per_day: int = Field(ge=1)

    def for_window(self, window: RateLimitWindow) -> int:
        if window is RateLimitWindow.HOUR:
            return self.requests_per_hour
        if window is RateLimitWindow.DAY:
            return self.requests_per_day
        return self.requests_per_minute


class RateLimitConfig(_CamelModel):
    bill_analysis: OperationLimits
    report_generation: OperationLimits
    last_updated: datetime | None = None

    def for_operation(self, operation: Operation) -> OperationLimits:
        if operation is Operation.REPORT_GENERATION:
            return self.report_generation
        return self.bill_analysis


class TierQuota(_CamelModel):
    """Monthly caps for a subscription tier; -1 means unlimited."""

    max_users: int = Field(ge=UNLIMITED)
    max_bills_per_month: int = Field(ge=UNLIMITED)
    max_reports_per_month: int = Field(ge=UNLIMITED)

    def for_operation(self, operation: Operation) -> int:
        if operation is Operation.REPORT_GENERATION:
            return self.max_reports_per_month
        return self.max_bills_per_month


class QuotaConfig(_CamelModel):
    trial: TierQuota
    standard: TierQuota
    premium: TierQuota
    enterprise: TierQuota

    def for_tier(self, tier: SubscriptionTier) -> TierQuota:
        return getattr(self, tier.value)

    def limit_for(self, tier: SubscriptionTier, operation: Operation) -> int:
        return self.for_tier(tier).for_operation(operation)


DEFAULT_RATE_LIMITS = RateLimitConfig(
    bill_analysis=OperationLimits(
        requests_per_minute=10,
        requests_per_hour=100,
        requests_per_day=500,
    ),
    report_generation=OperationLimits(
        requests_per_minute=5,
        requests_per_hour=50,
        requests_per_day=200,
    ),
)

DEFAULT_QUOTAS = QuotaConfig(
    trial=TierQuota(max_users=1, max_bills_per_month=2, max_reports_per_month=0),
    standard=TierQuota(max_users=10, max_bills_per_month=50, max_reports_per_month=50),
    premium=TierQuota(max_users=50, max_bills_per_month=2000, max_reports_per_month=200),
    enterprise=TierQuota(
        max_users=UNLIMITED,
        max_bills_per_month=UNLIMITED,
        max_reports_per_month=UNLIMITED,
    ),
)


def merge_section(
    defaults: BaseModel,
    stored: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Overlay a stored (camelCase) config section onto its defaults.

    Missing keys at any depth fall back to the default value, mirroring how
    partially-populated config records are read.
    """
    merged: dict[str, Any] = defaults.model_dump(by_alias=True)
    for key, value in (stored or {}).items():
        if key not in merged:
            continue
        if isinstance(value, Mapping) and isinstance(merged[key], dict):
            merged[key] = {**merged[key], **{k: v for k, v in value.items() if v is not None}}
        elif value is not None:
            merged[key] = value
    return merged
