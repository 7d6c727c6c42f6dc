"""Pageview model - one recorded visit to one path on one site.

Rows are append-only. The integer primary key follows insertion order and
is what "first seen" means when breaking ties in breakdowns; timestamps
from concurrent writers are not strictly increasing.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sitepulse.models.base import Base


class Pageview(Base):
    __tablename__ = "pageviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    path: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    browser_language: Mapped[str | None] = mapped_column(String(64), nullable=True)
    screen_resolution: Mapped[str | None] = mapped_column(String(32), nullable=True)
    viewport_width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    viewport_height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Not a database-level foreign key: the visitor row is written separately
    # and may lose a first-write race.
    visitor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    country: Mapped[str | None] = mapped_column(String(8), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_pageviews_site_id_timestamp", "site_id", "timestamp"),
    )
