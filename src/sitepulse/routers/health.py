"""Health check endpoint."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitepulse import __version__
from sitepulse.db.engine import ping
from sitepulse.dependencies import get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    store: async_sessionmaker[AsyncSession] = Depends(get_store),
) -> JSONResponse:
    """Return API health status and version.

    Reports ``degraded`` with a 503 when the store cannot be queried, since
    tracking and stats are both unavailable then.
    """
    try:
        await ping(store)
    except SQLAlchemyError:
        logger.warning("Health check could not reach the store")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "version": __version__, "store": "unreachable"},
        )
    return JSONResponse(content={"status": "ok", "version": __version__, "store": "ok"})
