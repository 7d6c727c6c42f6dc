"""Schemas for the /v1/track endpoint."""

from pydantic import BaseModel, Field


class TrackPayload(BaseModel):
    """Payload sent by the tracking snippet on every page load."""

    site_id: str = Field(min_length=1, max_length=36)
    path: str | None = Field(default=None, max_length=2048)
    referrer: str | None = Field(default=None, max_length=2048)
    user_agent: str | None = Field(default=None, max_length=1024)
    browser_language: str | None = Field(default=None, max_length=64)
    screen_resolution: str | None = Field(default=None, max_length=32)
    viewport_width: int | None = Field(default=None, ge=0)
    viewport_height: int | None = Field(default=None, ge=0)
    user_id: str | None = Field(default=None, max_length=255)


class PageviewDraft(TrackPayload):
    """A pageview ready for recording: the payload plus enrichment output."""

    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class TrackResponse(BaseModel):
    """Response returned from the track endpoint."""

    status: str = "recorded"
