"""Tests for the stats query schema."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from sitepulse.schemas.stats import StatsQuery


class TestStatsQuery:
    def test_no_range(self):
        query = StatsQuery(site_id="site-a")
        assert query.has_range is False

    @pytest.mark.parametrize(
        "bounds",
        [
            {"start_date": "2024-01-01T00:00:00Z"},
            {"end_date": "2024-01-01T00:00:00Z"},
            {"start_date": "2024-01-01T00:00:00Z", "end_date": "2024-01-31T00:00:00Z"},
        ],
    )
    def test_any_bound_is_a_range(self, bounds):
        assert StatsQuery(site_id="site-a", **bounds).has_range is True

    def test_parses_iso_timestamps(self):
        query = StatsQuery(site_id="site-a", start_date="2024-01-01T10:00:00+02:00")
        assert query.start_date == datetime(2024, 1, 1, 8, tzinfo=timezone.utc)

    def test_equal_bounds_allowed(self):
        StatsQuery(
            site_id="site-a",
            start_date="2024-01-01T00:00:00Z",
            end_date="2024-01-01T00:00:00Z",
        )

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            StatsQuery(
                site_id="site-a",
                start_date="2024-01-02T00:00:00Z",
                end_date="2024-01-01T00:00:00Z",
            )


class TestStatsQueryNormalisation:
    def test_naive_bound_is_utc(self):
        query = StatsQuery(site_id="site-a", end_date="2024-01-01T12:00:00")
        assert query.end_date == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_mixed_naive_and_offset_bounds_compare(self):
        query = StatsQuery(
            site_id="site-a",
            start_date="2024-01-01T00:00:00",
            end_date="2024-01-02T00:00:00Z",
        )
        assert query.start_date < query.end_date

    def test_mixed_bounds_out_of_order_rejected(self):
        with pytest.raises(ValidationError):
            StatsQuery(
                site_id="site-a",
                start_date="2024-01-02T00:00:00",
                end_date="2024-01-01T00:00:00+00:00",
            )

    def test_date_only_end_covers_whole_day(self):
        query = StatsQuery(site_id="site-a", end_date="2024-01-31")
        assert query.end_date == datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_date_only_start_is_midnight(self):
        query = StatsQuery(site_id="site-a", start_date="2024-01-31")
        assert query.start_date == datetime(2024, 1, 31, tzinfo=timezone.utc)

    def test_same_date_for_both_bounds_is_one_day(self):
        query = StatsQuery(site_id="site-a", start_date="2024-01-31", end_date="2024-01-31")
        assert (query.end_date - query.start_date).days == 0
        assert query.end_date.hour == 23
