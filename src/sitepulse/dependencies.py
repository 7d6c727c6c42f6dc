"""FastAPI dependency injection functions."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitepulse.config import Settings, get_settings
from sitepulse.db.engine import get_session, get_session_factory
from sitepulse.models.site import Site
from sitepulse.services.aggregation import AggregationEngine
from sitepulse.services.broadcast import InsertBroadcaster
from sitepulse.services.recorder import EventRecorder


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async for session in get_session():
        yield session


def get_store() -> async_sessionmaker[AsyncSession]:
    """Return the session factory shared by the recorder and the aggregation engine."""
    return get_session_factory()


def get_app_settings() -> Settings:
    """Return application settings."""
    return get_settings()


def get_broadcaster(request: Request) -> InsertBroadcaster:
    """Return the app-wide insert broadcaster."""
    return request.app.state.broadcaster


def get_recorder(
    request: Request,
    store: async_sessionmaker[AsyncSession] = Depends(get_store),
) -> EventRecorder:
    return EventRecorder(store, get_broadcaster(request))


def get_aggregation_engine(
    store: async_sessionmaker[AsyncSession] = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> AggregationEngine:
    return AggregationEngine(store, limit=settings.top_n_limit)


async def get_owner_id(
    x_owner_id: str = Header(..., description="Account id asserted by the identity provider"),
) -> str:
    """Return the authenticated owner id.

    Authentication is done upstream; the identity provider's proxy forwards
    the account id in X-Owner-Id.
    """
    owner_id = x_owner_id.strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Owner id is required",
        )
    return owner_id


async def get_owned_site(
    site_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> Site:
    """Load a site owned by the caller, or 404.

    Sites of other owners are reported as missing rather than forbidden.
    """
    stmt = select(Site).where(Site.id == site_id).where(Site.owner_id == owner_id)
    result = await db.execute(stmt)
    site = result.scalar_one_or_none()

    if site is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Site not found",
        )

    return site
