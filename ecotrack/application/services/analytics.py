from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecotrack.core.clock import Clock, utcnow
from ecotrack.core.errors import NotFoundError
from ecotrack.domain.analytics import (
    DEFAULT_TREND_MONTHS,
    MAX_TREND_MONTHS,
    MonthlyTrend,
    Performer,
    RegionalStat,
    SectorBenchmark,
    TenantMonthTotal,
    TenantRanking,
    improvement,
    month_label,
    month_start,
    rank_in_sector,
    regional_stats,
    sector_benchmark,
    shift_month,
    top_performers,
)
from ecotrack.infrastructure.repositories.entries import SqlAlchemyEntryRepository
from ecotrack.infrastructure.repositories.tenants import SqlAlchemyTenantRepository


@dataclass(frozen=True)
class TenantAnalytics:
    tenant_id: str
    sector: str
    current_emissions: float
    previous_emissions: float
    improvement: float
    below_average: float
    benchmark: SectorBenchmark
    ranking: TenantRanking
    regional: list[RegionalStat]
    trends: list[MonthlyTrend]
    top_performers: list[Performer]


class AnalyticsService:
    """Sector benchmarks for a tenant, built from verified entries across all tenants.

    Only aggregates leave this service; other tenants appear by company name
    in the top performer list and nowhere else.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, clock: Clock = utcnow) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def get_analytics(self, tenant_id: str, *, months: int = DEFAULT_TREND_MONTHS) -> TenantAnalytics:
        months = max(1, min(months, MAX_TREND_MONTHS))
        current = month_start(self._clock())
        previous = shift_month(current, -1)
        trend_starts = [shift_month(current, -offset) for offset in range(months - 1, -1, -1)]

        async with self._session_factory() as session:
            tenant = await SqlAlchemyTenantRepository(session).get(tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found", code="TENANT_NOT_FOUND")

            entries = SqlAlchemyEntryRepository(session)
            totals: dict[datetime, list[TenantMonthTotal]] = {}
            for start in sorted({*trend_starts, previous}):
                totals[start] = await entries.tenant_totals(start, shift_month(start, 1))

        sector = tenant.sector
        this_month = totals[current]
        last_month = totals[previous]
        own_current = _total_for(tenant_id, this_month)
        own_previous = _total_for(tenant_id, last_month)
        benchmark = sector_benchmark(sector, this_month)

        trends = [
            MonthlyTrend(
                month=month_label(start),
                tenant_emissions=_total_for(tenant_id, totals[start]),
                sector_average=round(sector_benchmark(sector, totals[start]).average, 2),
            )
            for start in trend_starts
        ]

        return TenantAnalytics(
            tenant_id=tenant_id,
            sector=sector,
            current_emissions=own_current,
            previous_emissions=own_previous,
            improvement=round(improvement(own_previous, own_current), 1),
            below_average=round(improvement(benchmark.average, own_current), 1),
            benchmark=benchmark,
            ranking=rank_in_sector(tenant_id, sector, this_month),
            regional=regional_stats(this_month),
            trends=trends,
            top_performers=top_performers(sector, this_month, last_month),
        )


def _total_for(tenant_id: str, totals: Iterable[TenantMonthTotal]) -> float:
    for total in totals:
        if total.tenant_id == tenant_id:
            return total.total_co2e
    return 0.0
