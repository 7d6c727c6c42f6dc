"""Schemas for aggregation queries and their result shapes."""

import re
from datetime import date, datetime, time, timezone

from pydantic import BaseModel, field_validator, model_validator

DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a bound to UTC; naive datetimes are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_day(value) -> date | None:
    if isinstance(value, datetime):
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str) and DATE_ONLY.match(value.strip()):
        return date.fromisoformat(value.strip())
    return None


class StatsQuery(BaseModel):
    """A site plus an optional inclusive UTC date range.

    A missing bound means the range is open on that side. Bounds without an
    offset are UTC. A bare date covers the whole UTC day: ``start_date``
    becomes its midnight and ``end_date`` its last microsecond.
    """

    site_id: str
    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("start_date", mode="before")
    @classmethod
    def _start_of_day(cls, value):
        day = _as_day(value)
        if day is None:
            return value
        return datetime.combine(day, time.min, tzinfo=timezone.utc)

    @field_validator("end_date", mode="before")
    @classmethod
    def _end_of_day(cls, value):
        day = _as_day(value)
        if day is None:
            return value
        return datetime.combine(day, time.max, tzinfo=timezone.utc)

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_range(self) -> "StatsQuery":
        if (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date > self.end_date
        ):
            raise ValueError("start_date must not be after end_date")
        return self

    @property
    def has_range(self) -> bool:
        return self.start_date is not None or self.end_date is not None


class Totals(BaseModel):
    total_visits: int
    unique_visitors: int


class FixedWindows(BaseModel):
    """Pageview counts for the rolling windows shown without a custom range."""

    today: int
    last_24_hours: int
    last_7_days: int
    last_30_days: int


class PathCount(BaseModel):
    path: str
    count: int


class ReferrerCount(BaseModel):
    referrer: str
    count: int


class UserAgentCount(BaseModel):
    user_agent: str
    count: int
    browser: str
    os: str


class DailyCount(BaseModel):
    day: str
    views: int


class CountryCount(BaseModel):
    country: str
    count: int
    latitude: float | None = None
    longitude: float | None = None


class SiteStats(BaseModel):
    """Every aggregate for one query, as shown on the dashboard."""

    site_id: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    totals: Totals
    windows: FixedWindows | None = None
    top_pages: list[PathCount]
    top_referrers: list[ReferrerCount]
    top_user_agents: list[UserAgentCount]
    daily: list[DailyCount]
    countries: list[CountryCount]
