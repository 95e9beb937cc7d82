from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ecotrack.api.dependencies import get_analytics_service
from ecotrack.api.permissions import permission_required
from ecotrack.api.responses import success
from ecotrack.application.auth.context import RequestContext
from ecotrack.application.services.analytics import AnalyticsService, TenantAnalytics
from ecotrack.domain.analytics import DEFAULT_TREND_MONTHS, MAX_TREND_MONTHS
from ecotrack.domain.permissions import Permission

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def analytics_to_dict(analytics: TenantAnalytics) -> dict[str, Any]:
    benchmark = analytics.benchmark
    return {
        "yourPerformance": {
            "currentEmissions": analytics.current_emissions,
            "previousEmissions": analytics.previous_emissions,
            "sectorAverage": round(benchmark.average, 2),
            "percentile": analytics.ranking.percentile,
            "rank": analytics.ranking.rank,
            "totalCompanies": analytics.ranking.total_companies,
            "sector": analytics.sector,
            "improvement": analytics.improvement,
            "belowAverage": analytics.below_average,
        },
        "sectorBenchmark": {
            "sector": benchmark.sector,
            "average": round(benchmark.average, 2),
            "median": benchmark.median,
            "p25": benchmark.p25,
            "p75": benchmark.p75,
            "min": benchmark.min,
            "max": benchmark.max,
            "companyCount": benchmark.company_count,
        },
        "regionalComparison": [
            {
                "region": stat.region,
                "avgEmissions": round(stat.avg_emissions, 2),
                "companyCount": stat.company_count,
            }
            for stat in analytics.regional
        ],
        "emissionTrends": [
            {
                "month": trend.month,
                "tenantEmissions": trend.tenant_emissions,
                "sectorAverage": trend.sector_average,
            }
            for trend in analytics.trends
        ],
        "topPerformers": [
            {
                "tenantName": performer.tenant_name,
                "sector": performer.sector,
                "currentEmissions": performer.current_emissions,
                "previousEmissions": performer.previous_emissions,
                "improvement": round(performer.improvement, 1),
                "isYou": performer.tenant_id == analytics.tenant_id,
            }
            for performer in analytics.top_performers
        ],
    }


@router.get("")
async def get_analytics(
    months: int = Query(default=DEFAULT_TREND_MONTHS, ge=1, le=MAX_TREND_MONTHS),
    ctx: RequestContext = Depends(permission_required(Permission.VIEW_ANALYTICS)),
    service: AnalyticsService = Depends(get_analytics_service),
) -> JSONResponse:
    analytics = await service.get_analytics(ctx.principal.require_tenant(), months=months)
    return success(analytics_to_dict(analytics))
