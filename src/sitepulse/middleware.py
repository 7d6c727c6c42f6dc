"""HTTP middlewares for the tracking path and response hardening."""

import logging

from fastapi import FastAPI, Request, Response, status

from sitepulse.config import Settings
from sitepulse.routers.track import TRACK_PATH, tracking_cors_headers

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-store",
}


async def beacon_as_json(request: Request, call_next):
    """Treat ``text/plain`` track bodies as JSON.

    ``navigator.sendBeacon`` and no-preflight fetches can only send text/plain.
    """
    if request.url.path == TRACK_PATH and request.method == "POST":
        if "text/plain" in request.headers.get("content-type", ""):
            request.scope["headers"] = [
                (key, b"application/json" if key == b"content-type" else value)
                for key, value in request.scope["headers"]
            ]
    return await call_next(request)


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.update(SECURITY_HEADERS)
    return response


def tracking_cors(settings: Settings):
    """Answer track preflights and stamp CORS headers on every track response.

    Unhandled errors become a bodiless 500 that still carries the headers, so
    the embedding page sees a server error rather than an opaque network one.
    """

    async def middleware(request: Request, call_next):
        if request.url.path != TRACK_PATH:
            return await call_next(request)

        headers = tracking_cors_headers(request.headers.get("origin"), settings)
        if request.method == "OPTIONS":
            return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s", TRACK_PATH)
            response = Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        response.headers.update(headers)
        return response

    return middleware


def install(app: FastAPI, settings: Settings) -> None:
    # Added last runs first: tracking CORS must see every track request.
    app.middleware("http")(beacon_as_json)
    app.middleware("http")(security_headers)
    app.middleware("http")(tracking_cors(settings))
