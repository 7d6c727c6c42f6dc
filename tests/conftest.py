"""Test fixtures and configuration."""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitepulse.db.engine import create_store, init_db, store_engine
from sitepulse.dependencies import get_db, get_store
from sitepulse.main import create_app
from sitepulse.models import Pageview, Site, Visitor

OWNER = {"X-Owner-Id": "owner-1"}


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite store with all tables (the injected store handle)."""
    store = create_store("sqlite+aiosqlite:///:memory:")
    await init_db(store)
    yield store
    await store_engine(store).dispose()


def unreachable_store() -> async_sessionmaker[AsyncSession]:
    """A store whose every query fails: its database file cannot be opened."""
    return create_store("sqlite+aiosqlite:////nonexistent-dir/sitepulse.db")


def store_without_tables() -> async_sessionmaker[AsyncSession]:
    """A reachable store with no schema: every insert and select fails."""
    return create_store("sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def app(session_factory):
    """App with DB dependencies pointed at the test engine."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: session_factory
    return app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client against the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def site(client: AsyncClient) -> dict:
    """Create a site for OWNER via POST /v1/sites and return its JSON."""
    response = await client.post(
        "/v1/sites",
        json={"name": "Fixture Site", "domain": "fixture-site.example.com"},
        headers=OWNER,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def add_site(session: AsyncSession, site_id: str, owner_id: str = "owner-1") -> Site:
    """Insert a site row directly."""
    site = Site(id=site_id, name=site_id, domain=f"{site_id}.example.com", owner_id=owner_id)
    session.add(site)
    await session.commit()
    return site


async def add_pageviews(session: AsyncSession, site_id: str, rows: list[dict]) -> None:
    """Insert pageview rows directly; each dict may set any Pageview column."""
    for row in rows:
        values = {"visitor_id": "v-default", **row}
        session.add(Pageview(site_id=site_id, **values))
    await session.commit()


async def add_visitors(session: AsyncSession, site_id: str, rows: list[tuple[str, datetime]]) -> None:
    for visitor_id, created_at in rows:
        session.add(Visitor(id=visitor_id, site_id=site_id, created_at=created_at))
    await session.commit()


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
