"""Stats endpoints - aggregated metrics for one site."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from sitepulse.dependencies import get_aggregation_engine, get_owned_site
from sitepulse.models.site import Site
from sitepulse.schemas.stats import (
    CountryCount,
    DailyCount,
    FixedWindows,
    PathCount,
    ReferrerCount,
    SiteStats,
    StatsQuery,
    Totals,
    UserAgentCount,
)
from sitepulse.services.aggregation import AggregationEngine, AggregationError

router = APIRouter(prefix="/v1/sites/{site_id}/stats", tags=["stats"])


def stats_query(
    site: Site = Depends(get_owned_site),
    start_date: str | None = Query(None, description="ISO-8601 timestamp or date, inclusive"),
    end_date: str | None = Query(None, description="ISO-8601 timestamp or date, inclusive"),
) -> StatsQuery:
    """Build the query for an owned site.

    Bounds are inclusive. A timestamp without an offset is UTC, and a bare
    date such as ``2024-01-31`` covers that whole UTC day.
    """
    try:
        return StatsQuery(site_id=site.id, start_date=start_date, end_date=end_date)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc


async def _run(coro):
    try:
        return await coro
    except AggregationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stats are temporarily unavailable",
        ) from exc


@router.get("", response_model=SiteStats)
async def get_stats(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> SiteStats:
    """Every dashboard metric for the site and date range.

    Rolling windows (today, 24h, 7d, 30d) are only computed when no range is
    given and are null otherwise.
    """
    return await _run(engine.snapshot(query))


@router.get("/totals", response_model=Totals)
async def get_totals(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> Totals:
    return await _run(engine.totals(query))


@router.get("/windows", response_model=FixedWindows | None)
async def get_windows(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> FixedWindows | None:
    return await _run(engine.fixed_windows(query))


@router.get("/pages", response_model=list[PathCount])
async def get_top_pages(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> list[PathCount]:
    return await _run(engine.top_paths(query))


@router.get("/referrers", response_model=list[ReferrerCount])
async def get_top_referrers(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> list[ReferrerCount]:
    return await _run(engine.top_referrers(query))


@router.get("/user-agents", response_model=list[UserAgentCount])
async def get_top_user_agents(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> list[UserAgentCount]:
    return await _run(engine.top_user_agents(query))


@router.get("/daily", response_model=list[DailyCount])
async def get_daily(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> list[DailyCount]:
    """Pageviews per UTC day; days without traffic are omitted."""
    return await _run(engine.daily_series(query))


@router.get("/countries", response_model=list[CountryCount])
async def get_countries(
    query: StatsQuery = Depends(stats_query),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> list[CountryCount]:
    return await _run(engine.countries(query))
