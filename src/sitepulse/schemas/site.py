"""Schemas for site management endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class SiteCreate(BaseModel):
    """Request body for registering a new site."""

    name: str = Field(min_length=1, max_length=255)
    domain: str = Field(min_length=1, max_length=255)


class SiteUpdate(BaseModel):
    """Request body for renaming a site."""

    name: str = Field(min_length=1, max_length=255)


class SiteResponse(BaseModel):
    """Response for a single site."""

    id: str
    name: str
    domain: str
    owner_id: str
    created_at: datetime

    model_config = {"from_attributes": True}
