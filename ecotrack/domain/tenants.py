from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SubscriptionTier(str, Enum):
    TRIAL = "trial"
    STANDARD = "standard"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class TenantStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


_UEN_PATTERNS = (
    re.compile(r"^ROC\d{6,7}$"),
    re.compile(r"^\d{12}$"),
)

_PHONE_PATTERNS = (
    re.compile(r"^01[0-9]{8,9}$"),
    re.compile(r"^0[2-9][0-9]{7,8}$"),
    re.compile(r"^\+60[1-9][0-9]{7,9}$"),
    re.compile(r"^60[1-9][0-9]{7,9}$"),
)


def normalize_uen(uen: str) -> str:
    """Strip whitespace and upper-case a business registration number."""
    return re.sub(r"\s+", "", uen).upper()


def is_valid_uen(uen: str) -> bool:
    """Accept old-format ``ROC`` + 6-7 digits or the 12-digit SSM format."""
    normalized = normalize_uen(uen)
    return any(p.match(normalized) for p in _UEN_PATTERNS)


def normalize_phone(phone: str) -> str:
    return re.sub(r"[\s\-()]", "", phone)


def is_valid_phone(phone: str) -> bool:
    """Malaysian mobile or landline, local or international prefix."""
    normalized = normalize_phone(phone)
    return any(p.match(normalized) for p in _PHONE_PATTERNS)


@dataclass(frozen=True)
class MonthlyUsage:
    """Per-tenant monthly counters for quota-tracked operations.

    Args:
        bill_analysis_count: Successful bill analyses in the current period.
        report_generation_count: Successful report generations in the period.
        period_start: First instant of the period (inclusive, UTC).
        period_end: First instant of the next period (exclusive, UTC).
        last_reset: When the counters were last zeroed.
    """

    bill_analysis_count: int
    report_generation_count: int
    period_start: datetime | None
    period_end: datetime | None
    last_reset: datetime | None

    def needs_rollover(self, now: datetime) -> bool:
        return self.period_start is None or self.period_end is None or self.period_end <= now


@dataclass(frozen=True)
class Tenant:
    id: str
    company_name: str
    uen: str
    sector: str
    address: str
    city: str | None
    state: str | None
    postal_code: str | None
    phone: str | None
    email: str
    status: TenantStatus
    subscription_tier: SubscriptionTier
    usage: MonthlyUsage
    pdpa_consent_at: datetime | None
    created_at: datetime | None
