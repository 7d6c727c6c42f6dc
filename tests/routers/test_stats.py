"""Tests for the /v1/sites/{site_id}/stats endpoints."""

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import OWNER, add_pageviews, add_site, add_visitors, utc
from sitepulse.dependencies import get_aggregation_engine
from sitepulse.services.aggregation import AggregationEngine

JAN_1 = {"start_date": "2024-01-01T00:00:00Z", "end_date": "2024-01-01T23:59:59Z"}


@pytest_asyncio.fixture
async def seeded_site(site: dict, db_session: AsyncSession) -> dict:
    """Three pageviews and two new visitors on 2024-01-01."""
    await add_pageviews(
        db_session,
        site["id"],
        [
            {"path": "/", "visitor_id": "v-1", "timestamp": utc(2024, 1, 1, 9)},
            {"path": "/", "visitor_id": "v-2", "timestamp": utc(2024, 1, 1, 10)},
            {"path": "/about", "visitor_id": "v-1", "timestamp": utc(2024, 1, 1, 11)},
        ],
    )
    await add_visitors(
        db_session, site["id"], [("v-1", utc(2024, 1, 1, 9)), ("v-2", utc(2024, 1, 1, 10))]
    )
    return site


class TestSiteStats:
    @pytest.mark.asyncio
    async def test_single_day_scenario(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(f"/v1/sites/{seeded_site['id']}/stats", params=JAN_1, headers=OWNER)
        assert resp.status_code == 200

        data = resp.json()
        assert data["totals"] == {"total_visits": 3, "unique_visitors": 2}
        assert data["top_pages"] == [{"path": "/", "count": 2}, {"path": "/about", "count": 1}]
        assert data["daily"] == [{"day": "2024-01-01", "views": 3}]
        assert data["windows"] is None

    @pytest.mark.asyncio
    async def test_windows_present_without_range(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(f"/v1/sites/{seeded_site['id']}/stats", headers=OWNER)
        data = resp.json()
        assert set(data["windows"]) == {"today", "last_24_hours", "last_7_days", "last_30_days"}
        assert data["totals"]["total_visits"] == 3

    @pytest.mark.asyncio
    async def test_range_outside_traffic_is_zero(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(
            f"/v1/sites/{seeded_site['id']}/stats/totals",
            params={"start_date": "2024-02-01T00:00:00Z"},
            headers=OWNER,
        )
        assert resp.json() == {"total_visits": 0, "unique_visitors": 0}

    @pytest.mark.asyncio
    async def test_start_after_end_is_422(self, client: AsyncClient, site: dict):
        resp = await client.get(
            f"/v1/sites/{site['id']}/stats",
            params={"start_date": "2024-01-02T00:00:00Z", "end_date": "2024-01-01T00:00:00Z"},
            headers=OWNER,
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_mixed_offset_and_naive_bounds(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(
            f"/v1/sites/{seeded_site['id']}/stats/totals",
            params={"start_date": "2024-01-01T00:00:00", "end_date": "2024-01-02T00:00:00Z"},
            headers=OWNER,
        )
        assert resp.status_code == 200
        assert resp.json() == {"total_visits": 3, "unique_visitors": 2}

    @pytest.mark.asyncio
    async def test_date_only_end_includes_that_day(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(
            f"/v1/sites/{seeded_site['id']}/stats/totals",
            params={"start_date": "2024-01-01", "end_date": "2024-01-01"},
            headers=OWNER,
        )
        assert resp.json()["total_visits"] == 3

    @pytest.mark.asyncio
    async def test_other_owner_gets_404(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(
            f"/v1/sites/{seeded_site['id']}/stats", headers={"X-Owner-Id": "owner-2"}
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_sites_are_isolated(
        self, client: AsyncClient, seeded_site: dict, db_session: AsyncSession
    ):
        await add_site(db_session, "site-b")
        await add_pageviews(
            db_session, "site-b", [{"path": "/", "timestamp": utc(2024, 1, 1, 12)}] * 5
        )

        resp = await client.get(
            f"/v1/sites/{seeded_site['id']}/stats/totals", params=JAN_1, headers=OWNER
        )
        assert resp.json()["total_visits"] == 3

    @pytest.mark.asyncio
    async def test_store_failure_is_503(self, app, client: AsyncClient, site: dict):
        broken = create_async_engine("sqlite+aiosqlite:///:memory:")
        app.dependency_overrides[get_aggregation_engine] = lambda: AggregationEngine(
            async_sessionmaker(bind=broken, class_=AsyncSession)
        )

        try:
            resp = await client.get(f"/v1/sites/{site['id']}/stats", headers=OWNER)
        finally:
            await broken.dispose()

        assert resp.status_code == 503
        assert resp.json()["detail"] == "Stats are temporarily unavailable"


class TestBreakdownEndpoints:
    @pytest.mark.asyncio
    async def test_pages(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(f"/v1/sites/{seeded_site['id']}/stats/pages", headers=OWNER)
        assert resp.json()[0] == {"path": "/", "count": 2}

    @pytest.mark.asyncio
    async def test_referrers_exclude_missing(
        self, client: AsyncClient, site: dict, db_session: AsyncSession
    ):
        await add_pageviews(
            db_session,
            site["id"],
            [
                {"referrer": "https://google.com/"},
                {"referrer": None},
                {"referrer": "https://google.com/"},
            ],
        )

        resp = await client.get(f"/v1/sites/{site['id']}/stats/referrers", headers=OWNER)
        assert resp.json() == [{"referrer": "https://google.com/", "count": 2}]

    @pytest.mark.asyncio
    async def test_user_agents_are_labelled(
        self, client: AsyncClient, site: dict, db_session: AsyncSession
    ):
        ua = (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
        await add_pageviews(db_session, site["id"], [{"user_agent": ua}])

        resp = await client.get(f"/v1/sites/{site['id']}/stats/user-agents", headers=OWNER)
        assert resp.json() == [
            {"user_agent": ua, "count": 1, "browser": "Chrome 120", "os": "Windows 10"}
        ]

    @pytest.mark.asyncio
    async def test_countries(self, client: AsyncClient, site: dict, db_session: AsyncSession):
        await add_pageviews(
            db_session,
            site["id"],
            [
                {
                    "country": "DE",
                    "latitude": 52.5,
                    "longitude": 13.4,
                    "timestamp": utc(2024, 1, 1, 9),
                },
                {
                    "country": "DE",
                    "latitude": 48.1,
                    "longitude": 11.6,
                    "timestamp": utc(2024, 1, 1, 10),
                },
                {"country": "US", "timestamp": utc(2024, 1, 1, 11)},
            ],
        )

        resp = await client.get(f"/v1/sites/{site['id']}/stats/countries", headers=OWNER)
        assert resp.json() == [
            {"country": "DE", "count": 2, "latitude": 48.1, "longitude": 11.6},
            {"country": "US", "count": 1, "latitude": None, "longitude": None},
        ]

    @pytest.mark.asyncio
    async def test_windows_null_with_range(self, client: AsyncClient, seeded_site: dict):
        resp = await client.get(
            f"/v1/sites/{seeded_site['id']}/stats/windows", params=JAN_1, headers=OWNER
        )
        assert resp.status_code == 200
        assert resp.json() is None
