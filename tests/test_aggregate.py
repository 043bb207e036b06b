"""
Tests for traffic reports.

These tests verify:
1. Summary stats: totals, request-type split, unique visitors, top referrers
2. Daily views: zero-filled date spine keyed on ingestion day
3. Breakdowns: placeholders, ordering and percentages
"""

from __future__ import annotations

import pytest

from orbiter.runtime.aggregate import MAX_TIME_MS, MIN_TIME_MS, TOP_REFERRERS_LIMIT
from orbiter.runtime.types import (
    BreakdownRow,
    DailyViews,
    SummaryReport,
    TrafficRecord,
    breakdown_row_to_dict,
    epoch_day_to_iso,
    summary_report_to_dict,
)

from conftest import BASE_TIME, SECONDS_PER_DAY

# 2024-03-10T00:00:00Z in ms
DAY_START_MS = (BASE_TIME - BASE_TIME % SECONDS_PER_DAY) * 1000
MS_PER_DAY = SECONDS_PER_DAY * 1000


def _add(db, site_id="s", timestamp=1000, **fields):
    return db.append(TrafficRecord(site_id=site_id, timestamp=timestamp, **fields))


class TestSummaryStats:
    """Tests for get_summary_stats."""

    def test_empty_window_is_all_zero(self, memory_db):
        report = memory_db.get_summary_stats("s", 0, 10_000)
        assert report == SummaryReport()
        assert report.top_referrers == []

    def test_request_type_split(self, memory_db):
        """static and NULL count as website requests, api as server requests."""
        _add(memory_db, request_type="static")
        _add(memory_db, request_type="api")
        _add(memory_db)
        _add(memory_db, request_type="other")

        report = memory_db.get_summary_stats("s", 0, 10_000)
        assert report.total_requests == 4
        assert report.total_website_requests == 2
        assert report.total_server_requests == 1

    def test_unique_visitors_ignore_null_ip(self, memory_db):
        _add(memory_db, ip_address="1.1.1.1")
        _add(memory_db, ip_address="1.1.1.1")
        _add(memory_db, ip_address="2.2.2.2")
        _add(memory_db)

        assert memory_db.get_summary_stats("s", 0, 10_000).unique_visitors == 2

    def test_window_and_site_filter(self, memory_db):
        _add(memory_db, timestamp=100)
        _add(memory_db, timestamp=200)
        _add(memory_db, timestamp=300)
        _add(memory_db, site_id="other", timestamp=200)

        assert memory_db.get_summary_stats("s", 100, 200).total_requests == 2

    def test_top_referrers_grouping_and_order(self, memory_db):
        for _ in range(3):
            _add(memory_db, referrer="https://google.com")
        _add(memory_db, referrer="https://github.com")
        _add(memory_db)
        _add(memory_db)

        top = memory_db.get_summary_stats("s", 0, 10_000).top_referrers
        assert [(r.referrer, r.count) for r in top] == [
            ("https://google.com", 3),
            ("(direct)", 2),
            ("https://github.com", 1),
        ]

    def test_top_referrers_limited(self, memory_db):
        for i in range(TOP_REFERRERS_LIMIT + 2):
            _add(memory_db, referrer=f"https://ref{i:02d}.example")

        top = memory_db.get_summary_stats("s", 0, 10_000).top_referrers
        assert len(top) == TOP_REFERRERS_LIMIT
        # Ties break alphabetically
        assert top[0].referrer == "https://ref00.example"

    def test_summary_to_dict(self, memory_db):
        _add(memory_db, referrer="https://google.com", ip_address="1.1.1.1")
        data = summary_report_to_dict(memory_db.get_summary_stats("s", 0, 10_000))
        assert data == {
            "total_requests": 1,
            "unique_visitors": 1,
            "total_website_requests": 1,
            "total_server_requests": 0,
            "top_referrers": [{"referrer": "https://google.com", "count": 1}],
        }


class TestDailyViews:
    """Tests for get_daily_views and get_daily_views_by_path."""

    def test_zero_filled_spine(self, memory_db, clock):
        """Three-day window with traffic on the first and last day."""
        _add(memory_db)
        _add(memory_db)
        clock.advance_days(2)
        _add(memory_db)

        views = memory_db.get_daily_views("s", DAY_START_MS, DAY_START_MS + 3 * MS_PER_DAY - 1)
        assert views == [
            DailyViews(date="2024-03-10", count=2),
            DailyViews(date="2024-03-11", count=0),
            DailyViews(date="2024-03-12", count=1),
        ]

    def test_empty_store_gives_zero_rows(self, memory_db):
        views = memory_db.get_daily_views("s", DAY_START_MS, DAY_START_MS + 6 * MS_PER_DAY)
        assert len(views) == 7
        assert all(v.count == 0 for v in views)

    def test_single_instant_window(self, memory_db):
        _add(memory_db)
        views = memory_db.get_daily_views("s", DAY_START_MS, DAY_START_MS)
        assert views == [DailyViews(date="2024-03-10", count=1)]

    def test_buckets_by_ingestion_time(self, memory_db):
        """The event timestamp does not move an event to another day."""
        _add(memory_db, timestamp=0)
        views = memory_db.get_daily_views("s", DAY_START_MS, DAY_START_MS + MS_PER_DAY - 1)
        assert views[0].count == 1

    def test_other_sites_not_counted(self, memory_db):
        _add(memory_db, site_id="other")
        views = memory_db.get_daily_views("s", DAY_START_MS, DAY_START_MS)
        assert views[0].count == 0

    def test_by_path(self, memory_db, clock):
        _add(memory_db, path="/docs")
        _add(memory_db, path="/blog")
        clock.advance_days(1)
        _add(memory_db, path="/docs")
        _add(memory_db, path="/docs")

        views = memory_db.get_daily_views_by_path(
            "s", DAY_START_MS, DAY_START_MS + 2 * MS_PER_DAY - 1, "/docs"
        )
        assert [(v.date, v.count) for v in views] == [("2024-03-10", 1), ("2024-03-11", 2)]

    def test_by_unknown_path_is_zero_filled(self, memory_db):
        _add(memory_db, path="/docs")
        views = memory_db.get_daily_views_by_path("s", DAY_START_MS, DAY_START_MS, "/missing")
        assert views == [DailyViews(date="2024-03-10", count=0)]

    def test_window_past_year_9999_is_empty(self, memory_db):
        """Days without a calendar date produce no rows instead of an error."""
        _add(memory_db)
        assert memory_db.get_daily_views("s", MAX_TIME_MS + 1, MAX_TIME_MS + 1) == []
        assert memory_db.get_daily_views_by_path("s", MAX_TIME_MS + 1, MAX_TIME_MS + 1, "/") == []

    def test_window_straddling_last_date_is_clamped(self, memory_db):
        views = memory_db.get_daily_views("s", MAX_TIME_MS, MAX_TIME_MS + 5 * MS_PER_DAY)
        assert views == [DailyViews(date="9999-12-31", count=0)]

    def test_window_straddling_first_date_is_clamped(self, memory_db):
        views = memory_db.get_daily_views("s", MIN_TIME_MS - 5 * MS_PER_DAY, MIN_TIME_MS)
        assert views == [DailyViews(date="0001-01-01", count=0)]

    def test_epoch_day_to_iso(self):
        assert epoch_day_to_iso(0) == "1970-01-01"
        assert epoch_day_to_iso(BASE_TIME // SECONDS_PER_DAY) == "2024-03-10"


class TestBreakdowns:
    """Tests for referrer, path and country breakdowns."""

    def test_empty_window_returns_empty_list(self, memory_db):
        assert memory_db.get_referrer_breakdown("s", 0, 10_000) == []
        assert memory_db.get_path_breakdown("s", 0, 10_000) == []
        assert memory_db.get_country_breakdown("s", 0, 10_000) == []

    def test_referrer_breakdown(self, memory_db):
        for _ in range(3):
            _add(memory_db, referrer="https://google.com")
        _add(memory_db)

        rows = memory_db.get_referrer_breakdown("s", 0, 10_000)
        assert rows == [
            BreakdownRow(key="https://google.com", count=3, percentage=75.0),
            BreakdownRow(key="(direct)", count=1, percentage=25.0),
        ]

    def test_path_placeholder(self, memory_db):
        _add(memory_db, path="/")
        _add(memory_db)
        keys = {r.key for r in memory_db.get_path_breakdown("s", 0, 10_000)}
        assert keys == {"/", "(no path)"}

    def test_country_placeholder(self, memory_db):
        _add(memory_db, country="US")
        _add(memory_db)
        keys = {r.key for r in memory_db.get_country_breakdown("s", 0, 10_000)}
        assert keys == {"US", "(unknown)"}

    def test_percentages_rounded_to_two_places(self, memory_db):
        _add(memory_db, country="US")
        _add(memory_db, country="DE")
        _add(memory_db, country="JP")

        rows = memory_db.get_country_breakdown("s", 0, 10_000)
        assert [r.percentage for r in rows] == [33.33, 33.33, 33.33]
        # Equal counts order by key
        assert [r.key for r in rows] == ["DE", "JP", "US"]

    def test_counts_sum_to_total_and_percentages_near_100(self, memory_db):
        for country, n in (("US", 5), ("DE", 3), ("GB", 1)):
            for _ in range(n):
                _add(memory_db, country=country)

        rows = memory_db.get_country_breakdown("s", 0, 10_000)
        assert sum(r.count for r in rows) == memory_db.get_summary_stats("s", 0, 10_000).total_requests
        assert sum(r.percentage for r in rows) == pytest.approx(100.0, abs=0.05)
        assert [r.count for r in rows] == [5, 3, 1]

    def test_breakdown_respects_window(self, memory_db):
        _add(memory_db, path="/in", timestamp=150)
        _add(memory_db, path="/out", timestamp=500)
        rows = memory_db.get_path_breakdown("s", 100, 200)
        assert rows == [BreakdownRow(key="/in", count=1, percentage=100.0)]

    def test_breakdown_row_to_dict(self):
        row = BreakdownRow(key="US", count=2, percentage=50.0)
        assert breakdown_row_to_dict(row, "country") == {"country": "US", "count": 2, "percentage": 50.0}
