"""Emission benchmarks computed from per-tenant monthly CO2e totals.

Only verified entries count towards a month's total. Lower emissions rank
better; tenants with no emissions in a month are left out of sector
benchmarks and rankings for that month.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Sequence

DEFAULT_TREND_MONTHS = 7
MAX_TREND_MONTHS = 24
TOP_PERFORMERS_LIMIT = 10


@dataclass(frozen=True)
class TenantMonthTotal:
    tenant_id: str
    tenant_name: str
    sector: str
    state: str | None
    total_co2e: float
    entry_count: int


@dataclass(frozen=True)
class SectorBenchmark:
    sector: str
    average: float
    median: float
    p25: float
    p75: float
    min: float
    max: float
    company_count: int


@dataclass(frozen=True)
class TenantRanking:
    rank: int
    percentile: int
    total_companies: int


@dataclass(frozen=True)
class RegionalStat:
    region: str
    avg_emissions: float
    company_count: int


@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    tenant_emissions: float
    sector_average: float


@dataclass(frozen=True)
class Performer:
    tenant_id: str
    tenant_name: str
    sector: str
    current_emissions: float
    previous_emissions: float
    improvement: float


def month_start(value: datetime) -> datetime:
    value = value.astimezone(timezone.utc)
    return datetime(value.year, value.month, 1, tzinfo=timezone.utc)


def shift_month(start: datetime, months: int) -> datetime:
    """First instant of the month ``months`` away from ``start``'s month."""
    index = start.year * 12 + (start.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1, tzinfo=timezone.utc)


def month_label(start: datetime) -> str:
    return f"{start.year:04d}-{start.month:02d}"


def improvement(previous: float, current: float) -> float:
    """Percentage reduction from ``previous`` to ``current``; 0 without a baseline."""
    if previous <= 0:
        return 0.0
    return (previous - current) / previous * 100


def sector_benchmark(sector: str, totals: Iterable[TenantMonthTotal]) -> SectorBenchmark:
    values = sorted(t.total_co2e for t in totals if t.sector == sector and t.total_co2e > 0)
    if not values:
        return SectorBenchmark(sector, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0)

    n = len(values)
    return SectorBenchmark(
        sector=sector,
        average=sum(values) / n,
        median=values[int(n * 0.5)],
        p25=values[int(n * 0.25)],
        p75=values[int(n * 0.75)],
        min=values[0],
        max=values[-1],
        company_count=n,
    )


def rank_in_sector(tenant_id: str, sector: str, totals: Iterable[TenantMonthTotal]) -> TenantRanking:
    ranked = sorted(
        (t for t in totals if t.sector == sector and t.total_co2e > 0),
        key=lambda t: t.total_co2e,
    )
    n = len(ranked)
    for position, total in enumerate(ranked, start=1):
        if total.tenant_id == tenant_id:
            return TenantRanking(rank=position, percentile=round((n - position) / n * 100), total_companies=n)
    return TenantRanking(rank=0, percentile=0, total_companies=n)


def regional_stats(totals: Iterable[TenantMonthTotal]) -> list[RegionalStat]:
    grouped: dict[str, list[float]] = {}
    for total in totals:
        if not total.state or total.total_co2e <= 0:
            continue
        grouped.setdefault(total.state, []).append(total.total_co2e)
    stats = [
        RegionalStat(region=state, avg_emissions=sum(values) / len(values), company_count=len(values))
        for state, values in grouped.items()
    ]
    return sorted(stats, key=lambda s: s.avg_emissions, reverse=True)


def top_performers(
    sector: str,
    current: Sequence[TenantMonthTotal],
    previous: Sequence[TenantMonthTotal],
    *,
    limit: int = TOP_PERFORMERS_LIMIT,
) -> list[Performer]:
    """Sector tenants ordered by month-on-month reduction, best first."""

    current_by_id = {t.tenant_id: t.total_co2e for t in current}
    performers = [
        Performer(
            tenant_id=prev.tenant_id,
            tenant_name=prev.tenant_name,
            sector=prev.sector,
            current_emissions=current_by_id.get(prev.tenant_id, 0.0),
            previous_emissions=prev.total_co2e,
            improvement=improvement(prev.total_co2e, current_by_id.get(prev.tenant_id, 0.0)),
        )
        for prev in previous
        if prev.sector == sector and prev.total_co2e > 0
    ]
    performers.sort(key=lambda p: p.improvement, reverse=True)
    return performers[:limit]
