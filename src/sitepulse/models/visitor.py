"""Visitor model - a cookie-backed identity for one browser instance."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from sitepulse.models.base import Base


class Visitor(Base):
    __tablename__ = "unique_visitors"

    # The cookie value itself; the primary key is what makes the first write win.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Site the visitor was first seen on. The cookie is shared by every tracked
    # site, so the row outlives that site and only loses the attribution.
    site_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_unique_visitors_site_id_created_at", "site_id", "created_at"),
    )
