"""FastAPI application factory and entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitepulse import __version__, middleware
from sitepulse.config import get_settings
from sitepulse.db.engine import dispose_engine, init_db
from sitepulse.routers import health, live, sites, stats, track
from sitepulse.services.broadcast import InsertBroadcaster

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    # Startup
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.environment == "development" else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting sitepulse API v%s in %s mode", __version__, settings.environment)

    settings.validate_production()

    # Create tables (for SQLite dev mode; production uses Alembic migrations)
    if settings.environment == "development":
        await init_db()
        logger.info("Database tables created/verified")

    yield

    # Shutdown
    await dispose_engine()
    logger.info("sitepulse API shut down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Interactive docs only in development
    dev = settings.environment == "development"

    app = FastAPI(
        title="sitepulse API",
        description="Multi-site pageview tracking and live analytics",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if dev else None,
        redoc_url="/redoc" if dev else None,
        openapi_url="/openapi.json" if dev else None,
    )

    # One broadcaster per app; the recorder publishes and live viewers subscribe
    app.state.broadcaster = InsertBroadcaster()

    # Dashboard API CORS; the track endpoint sets its own headers.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.dashboard_origins(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    middleware.install(app, settings)

    # Include routers
    app.include_router(health.router)
    app.include_router(track.router)
    app.include_router(sites.router)
    app.include_router(stats.router)
    app.include_router(live.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sitepulse.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=(settings.environment == "development"),
    )
