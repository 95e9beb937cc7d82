from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from ecotrack.domain.limits import UNLIMITED


@dataclass(frozen=True)
class QuotaResult:
    """Outcome of a monthly quota lookup.

    ``limit`` and ``remaining`` are -1 for unlimited tiers.
    """

    allowed: bool
    current: int
    limit: int
    remaining: int
    reset_time: datetime
    percent_used: float

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return ``[first of month, first of next month)`` in UTC for ``now``."""
    now = now.astimezone(timezone.utc)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, end


def evaluate_quota(
    *,
    current: int,
    limit: int,
    reset_time: datetime,
    bypass: bool = False,
) -> QuotaResult:
    if limit == UNLIMITED:
        return QuotaResult(
            allowed=True,
            current=current,
            limit=UNLIMITED,
            remaining=UNLIMITED,
            reset_time=reset_time,
            percent_used=0.0,
        )

    remaining = max(0, limit - current)
    percent_used = min(100.0, current / limit * 100) if limit > 0 else 0.0
    return QuotaResult(
        allowed=bypass or current < limit,
        current=current,
        limit=limit,
        remaining=remaining,
        reset_time=reset_time,
        percent_used=percent_used,
    )
