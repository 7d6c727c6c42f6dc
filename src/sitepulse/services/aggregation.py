"""Aggregation engine - read-side metrics for one site and date range.

Every figure is recomputed from the pageview and visitor rows on each call;
nothing is cached or counted incrementally. All queries are scoped by
site_id. Ranges are inclusive on both ends and open where a bound is
missing. Breakdown ties are broken by first-seen order, i.e. the lowest
pageview id in the group.

A store failure raises AggregationError instead of returning zeros, since a
zero cannot be told apart from a site with no traffic.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitepulse.models.pageview import Pageview
from sitepulse.models.visitor import Visitor
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
    as_utc,
)
from sitepulse.services.user_agent import describe_user_agent

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10


class AggregationError(Exception):
    """An aggregation query could not be completed."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AggregationEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = _utcnow,
        limit: int = DEFAULT_TOP_N,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self.limit = limit

    async def __call__(self, query: StatsQuery) -> SiteStats:
        return await self.snapshot(query)

    @asynccontextmanager
    async def _reading(self, query: StatsQuery) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Aggregation failed for site %s", query.site_id)
            raise AggregationError(f"Aggregation failed for site {query.site_id}") from exc

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def _pageview_filters(self, query: StatsQuery) -> list:
        filters = [Pageview.site_id == query.site_id]
        if query.start_date is not None:
            filters.append(Pageview.timestamp >= as_utc(query.start_date))
        if query.end_date is not None:
            filters.append(Pageview.timestamp <= as_utc(query.end_date))
        return filters

    def _visitor_filters(self, query: StatsQuery) -> list:
        filters = [Visitor.site_id == query.site_id]
        if query.start_date is not None:
            filters.append(Visitor.created_at >= as_utc(query.start_date))
        if query.end_date is not None:
            filters.append(Visitor.created_at <= as_utc(query.end_date))
        return filters

    # ------------------------------------------------------------------
    # Public result shapes
    # ------------------------------------------------------------------

    async def totals(self, query: StatsQuery) -> Totals:
        async with self._reading(query) as session:
            return await self._totals(session, query)

    async def fixed_windows(self, query: StatsQuery) -> FixedWindows | None:
        """Rolling-window counts, or None when the query has an explicit range."""
        if query.has_range:
            return None
        async with self._reading(query) as session:
            return await self._fixed_windows(session, query)

    async def top_paths(self, query: StatsQuery) -> list[PathCount]:
        async with self._reading(query) as session:
            return await self._top_paths(session, query)

    async def top_referrers(self, query: StatsQuery) -> list[ReferrerCount]:
        async with self._reading(query) as session:
            return await self._top_referrers(session, query)

    async def top_user_agents(self, query: StatsQuery) -> list[UserAgentCount]:
        async with self._reading(query) as session:
            return await self._top_user_agents(session, query)

    async def daily_series(self, query: StatsQuery) -> list[DailyCount]:
        async with self._reading(query) as session:
            return await self._daily_series(session, query)

    async def countries(self, query: StatsQuery) -> list[CountryCount]:
        async with self._reading(query) as session:
            return await self._countries(session, query)

    async def snapshot(self, query: StatsQuery) -> SiteStats:
        """Run every aggregate for the query against one session."""
        async with self._reading(query) as session:
            windows = None
            if not query.has_range:
                windows = await self._fixed_windows(session, query)
            return SiteStats(
                site_id=query.site_id,
                start_date=query.start_date,
                end_date=query.end_date,
                totals=await self._totals(session, query),
                windows=windows,
                top_pages=await self._top_paths(session, query),
                top_referrers=await self._top_referrers(session, query),
                top_user_agents=await self._top_user_agents(session, query),
                daily=await self._daily_series(session, query),
                countries=await self._countries(session, query),
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _totals(self, session: AsyncSession, query: StatsQuery) -> Totals:
        visits_stmt = select(func.count(Pageview.id)).where(*self._pageview_filters(query))
        visitors_stmt = select(func.count(Visitor.id)).where(*self._visitor_filters(query))

        total_visits = (await session.execute(visits_stmt)).scalar_one()
        unique_visitors = (await session.execute(visitors_stmt)).scalar_one()
        return Totals(total_visits=total_visits or 0, unique_visitors=unique_visitors or 0)

    async def _fixed_windows(self, session: AsyncSession, query: StatsQuery) -> FixedWindows:
        now = as_utc(self._clock())
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        cutoffs = {
            "today": start_of_today,
            "last_24_hours": now - timedelta(hours=24),
            "last_7_days": now - timedelta(days=7),
            "last_30_days": now - timedelta(days=30),
        }

        stmt = select(
            *[
                func.sum(case((Pageview.timestamp >= cutoff, 1), else_=0)).label(name)
                for name, cutoff in cutoffs.items()
            ]
        ).where(Pageview.site_id == query.site_id)
        row = (await session.execute(stmt)).one()

        return FixedWindows(**{name: getattr(row, name) or 0 for name in cutoffs})

    async def _top(self, session: AsyncSession, query: StatsQuery, column) -> list:
        """Group by the raw column value, busiest first, ties by first seen."""
        count = func.count(Pageview.id)
        stmt = (
            select(column.label("value"), count.label("count"))
            .where(*self._pageview_filters(query))
            .where(column.isnot(None))
            .group_by(column)
            .order_by(count.desc(), func.min(Pageview.id).asc())
            .limit(self.limit)
        )
        result = await session.execute(stmt)
        return result.all()

    async def _top_paths(self, session: AsyncSession, query: StatsQuery) -> list[PathCount]:
        rows = await self._top(session, query, Pageview.path)
        return [PathCount(path=row.value, count=row.count) for row in rows]

    async def _top_referrers(
        self, session: AsyncSession, query: StatsQuery
    ) -> list[ReferrerCount]:
        rows = await self._top(session, query, Pageview.referrer)
        return [ReferrerCount(referrer=row.value, count=row.count) for row in rows]

    async def _top_user_agents(
        self, session: AsyncSession, query: StatsQuery
    ) -> list[UserAgentCount]:
        rows = await self._top(session, query, Pageview.user_agent)
        user_agents = []
        for row in rows:
            browser, os_name = describe_user_agent(row.value)
            user_agents.append(
                UserAgentCount(user_agent=row.value, count=row.count, browser=browser, os=os_name)
            )
        return user_agents

    async def _daily_series(self, session: AsyncSession, query: StatsQuery) -> list[DailyCount]:
        # Timestamps are stored in UTC, so the date part is the UTC calendar day.
        day = func.date(Pageview.timestamp)
        stmt = (
            select(day.label("day"), func.count(Pageview.id).label("views"))
            .where(*self._pageview_filters(query))
            .group_by(day)
            .order_by(day.asc())
        )
        result = await session.execute(stmt)
        return [DailyCount(day=str(row.day), views=row.views) for row in result.all()]

    async def _countries(self, session: AsyncSession, query: StatsQuery) -> list[CountryCount]:
        filters = self._pageview_filters(query)

        count = func.count(Pageview.id)
        counts_stmt = (
            select(Pageview.country.label("country"), count.label("count"))
            .where(*filters)
            .where(Pageview.country.isnot(None))
            .group_by(Pageview.country)
            .order_by(count.desc(), func.min(Pageview.id).asc())
        )

        ranked = (
            select(
                Pageview.country.label("country"),
                Pageview.latitude.label("latitude"),
                Pageview.longitude.label("longitude"),
                func.row_number()
                .over(
                    partition_by=Pageview.country,
                    order_by=[Pageview.timestamp.desc(), Pageview.id.desc()],
                )
                .label("rn"),
            )
            .where(*filters)
            .where(Pageview.country.isnot(None))
            .where(Pageview.latitude.isnot(None))
            .where(Pageview.longitude.isnot(None))
            .subquery()
        )
        coords_stmt = select(ranked.c.country, ranked.c.latitude, ranked.c.longitude).where(
            ranked.c.rn == 1
        )

        counts = (await session.execute(counts_stmt)).all()
        latest = {
            row.country: (row.latitude, row.longitude)
            for row in (await session.execute(coords_stmt)).all()
        }

        countries = []
        for row in counts:
            latitude, longitude = latest.get(row.country, (None, None))
            countries.append(
                CountryCount(
                    country=row.country,
                    count=row.count,
                    latitude=latitude,
                    longitude=longitude,
                )
            )
        return countries
