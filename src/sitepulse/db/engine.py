"""Async store handle: engine plus session factory.

Everything that reads or writes rows (the recorder, the aggregation engine,
the live sync coordinator) is built from one ``async_sessionmaker``. The
application shares a lazily created one; tests and tools can build their
own with ``create_store``.
"""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sitepulse.config import get_settings

_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_store(database_url: str, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to a new engine for ``database_url``."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_async_engine(database_url, echo=echo, connect_args=connect_args)
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def store_engine(store: async_sessionmaker[AsyncSession]) -> AsyncEngine:
    return store.kw["bind"]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Create or return the application's shared store."""
    global _session_factory
    if _session_factory is None:
        settings = get_settings()
        _session_factory = create_store(
            settings.database_url,
            echo=(settings.environment == "development"),
        )
    return _session_factory


async def init_db(store: async_sessionmaker[AsyncSession] | None = None) -> None:
    """Create all tables from metadata. Used for development/testing."""
    from sitepulse.models import Base

    engine = store_engine(store or get_session_factory())
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(store: async_sessionmaker[AsyncSession]) -> None:
    """Run a trivial query; raises SQLAlchemyError if the store is unreachable."""
    async with store() as session:
        await session.execute(text("SELECT 1"))


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for FastAPI dependency injection."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Dispose of the shared engine. Called on app shutdown."""
    global _session_factory
    if _session_factory is not None:
        await store_engine(_session_factory).dispose()
        _session_factory = None
