"""Track endpoint - hot path for recording pageviews from tracked sites."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.config import Settings
from sitepulse.dependencies import get_app_settings, get_db, get_recorder
from sitepulse.models.site import Site
from sitepulse.schemas.track import PageviewDraft, TrackPayload, TrackResponse
from sitepulse.services.enrichment import geo_from_headers
from sitepulse.services.identity import resolve_identity
from sitepulse.services.recorder import EventRecorder, PageviewWriteError

logger = logging.getLogger(__name__)

TRACK_PATH = "/v1/track"

router = APIRouter(prefix="/v1", tags=["track"])


def tracking_cors_headers(origin: str | None, settings: Settings) -> dict[str, str]:
    """CORS headers for the track endpoint.

    The tracker is embedded on third-party sites and sends its cookie, so an
    allowed Origin is echoed back with credentials enabled.
    """
    allowed = settings.tracking_origins()
    headers = {
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Vary": "Origin",
    }
    if origin and ("*" in allowed or origin in allowed):
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    elif "*" in allowed or not allowed:
        headers["Access-Control-Allow-Origin"] = "*"
    else:
        headers["Access-Control-Allow-Origin"] = allowed[0]
    return headers


@router.post(
    "/track",
    response_model=TrackResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def track(
    payload: TrackPayload,
    request: Request,
    db: AsyncSession = Depends(get_db),
    recorder: EventRecorder = Depends(get_recorder),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """Record one pageview and hand a visitor cookie to first-time browsers.

    Called on every page load of every tracked site. Not idempotent: a
    retried request is recorded again.
    """
    # 1. The site must exist
    site = await db.get(Site, payload.site_id)
    if site is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown site_id",
        )

    # 2. Returning or new visitor
    identity = resolve_identity(request.headers.get("cookie"), settings)

    # 3. Enrichment from edge headers
    draft = PageviewDraft(
        **payload.model_dump(),
        **geo_from_headers(request.headers, settings),
    )

    # 4. Persist
    try:
        await recorder.record(draft, identity)
    except PageviewWriteError:
        logger.warning("Pageview for site %s was not recorded", payload.site_id)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    headers = {}
    if identity.set_cookie is not None:
        headers["Set-Cookie"] = identity.set_cookie

    return JSONResponse(
        content=TrackResponse().model_dump(),
        status_code=status.HTTP_202_ACCEPTED,
        headers=headers,
    )
