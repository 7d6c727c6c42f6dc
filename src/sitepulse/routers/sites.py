"""Site management endpoints."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sitepulse.dependencies import get_db, get_owned_site, get_owner_id
from sitepulse.models.pageview import Pageview
from sitepulse.models.site import Site
from sitepulse.models.visitor import Visitor
from sitepulse.schemas.site import SiteCreate, SiteResponse, SiteUpdate

router = APIRouter(prefix="/v1/sites", tags=["sites"])


@router.post(
    "",
    response_model=SiteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_site(
    body: SiteCreate,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> SiteResponse:
    """Register a site for the calling owner.

    The returned id is what the tracking snippet sends as site_id.
    """
    site = Site(
        id=str(uuid.uuid4()),
        name=body.name.strip(),
        domain=body.domain.strip().lower(),
        owner_id=owner_id,
    )
    db.add(site)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A site with this domain already exists for your account",
        )

    return SiteResponse.model_validate(site)


@router.get("", response_model=list[SiteResponse])
async def list_sites(
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> list[SiteResponse]:
    """List the caller's sites by name."""
    stmt = select(Site).where(Site.owner_id == owner_id).order_by(Site.name.asc())
    result = await db.execute(stmt)
    sites = result.scalars().all()
    return [SiteResponse.model_validate(s) for s in sites]


@router.patch("/{site_id}", response_model=SiteResponse)
async def rename_site(
    body: SiteUpdate,
    site: Site = Depends(get_owned_site),
    db: AsyncSession = Depends(get_db),
) -> SiteResponse:
    """Rename a site. Domain and owner never change."""
    site.name = body.name.strip()
    await db.flush()
    return SiteResponse.model_validate(site)


@router.delete("/{site_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_site(
    site: Site = Depends(get_owned_site),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a site together with its pageviews.

    Visitors first seen on the site are kept, since the same cookie may
    still be in use on other tracked sites; they only lose the link.
    """
    await db.execute(delete(Pageview).where(Pageview.site_id == site.id))
    await db.execute(update(Visitor).where(Visitor.site_id == site.id).values(site_id=None))
    await db.delete(site)
    await db.flush()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
