"""
aggregate.py - Read-only traffic reports.

Five report shapes, each a pure function of (store, site, time window):

- get_summary_stats        totals, unique visitors, top referrers
- get_daily_views          per-day counts over a zero-filled date spine
- get_daily_views_by_path  same, restricted to one path
- get_referrer_breakdown   grouped counts with percentages
- get_path_breakdown
- get_country_breakdown

Time windows are milliseconds since the epoch, inclusive on both ends, and
are applied to the caller-supplied ``timestamp`` column. Daily views are the
exception: they bucket by ``created_at`` (ingestion time, seconds), in UTC.
Empty windows produce zero/empty reports, never errors.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List, Optional

from .types import (
    DIRECT_REFERRER,
    MAX_EPOCH_DAY,
    MIN_EPOCH_DAY,
    NO_PATH,
    UNKNOWN_COUNTRY,
    BreakdownRow,
    DailyViews,
    ReferrerCount,
    SummaryReport,
    epoch_day_to_iso,
)

if TYPE_CHECKING:
    from .db import TrafficDB

logger = logging.getLogger(__name__)

TOP_REFERRERS_LIMIT = 10
SECONDS_PER_DAY = 86400
MS_PER_DAY = SECONDS_PER_DAY * 1000

# Millisecond range whose days have a calendar date
MIN_TIME_MS = MIN_EPOCH_DAY * MS_PER_DAY
MAX_TIME_MS = (MAX_EPOCH_DAY + 1) * MS_PER_DAY - 1

# Breakdown dimension -> NULL placeholder
BREAKDOWN_PLACEHOLDERS = {
    "referrer": DIRECT_REFERRER,
    "path": NO_PATH,
    "country": UNKNOWN_COUNTRY,
}

WINDOW_FILTER = 'site_id = ? AND "timestamp" >= ? AND "timestamp" <= ?'

SUMMARY_SQL = f"""
SELECT
    COUNT(*) AS total_requests,
    COUNT(DISTINCT ip_address) AS unique_visitors,
    COUNT(CASE WHEN request_type = 'static' OR request_type IS NULL THEN 1 END) AS total_website_requests,
    COUNT(CASE WHEN request_type = 'api' THEN 1 END) AS total_server_requests
FROM traffic
WHERE {WINDOW_FILTER}
"""

TOP_REFERRERS_SQL = f"""
SELECT
    COALESCE(referrer, '{DIRECT_REFERRER}') AS label,
    COUNT(*) AS hits
FROM traffic
WHERE {WINDOW_FILTER}
GROUP BY label
ORDER BY hits DESC, label ASC
LIMIT {TOP_REFERRERS_LIMIT}
"""

BREAKDOWN_SQL = """
WITH grouped AS (
    SELECT
        COALESCE({column}, '{placeholder}') AS label,
        COUNT(*) AS hits
    FROM traffic
    WHERE {window}
    GROUP BY label
),
total_count AS (
    SELECT SUM(hits) AS total
    FROM grouped
)
SELECT
    grouped.label,
    grouped.hits,
    ROUND(CAST(grouped.hits AS DOUBLE) / NULLIF(total_count.total, 0) * 100, 2) AS percentage
FROM grouped, total_count
ORDER BY grouped.hits DESC, grouped.label ASC
"""

# The spine bounds are integers computed here, not caller text.
DAILY_VIEWS_SQL = """
SELECT
    spine.epoch_day,
    COUNT(traffic.id) AS views
FROM range({first_day}, {last_day} + 1) AS spine(epoch_day)
LEFT JOIN traffic ON (
    traffic.site_id = ?
    AND traffic.created_at // {seconds_per_day} = spine.epoch_day
    {path_filter}
)
GROUP BY spine.epoch_day
ORDER BY spine.epoch_day ASC
"""


def _window_params(site_id: str, start_time: int, end_time: int) -> List[Any]:
    return [site_id, int(start_time), int(end_time)]


def _epoch_day(ms: int) -> int:
    """Day number (UTC) containing the given millisecond timestamp."""
    return (int(ms) // 1000) // SECONDS_PER_DAY


# =============================================================================
# Summary
# =============================================================================


def get_summary_stats(db: "TrafficDB", site_id: str, start_time: int, end_time: int) -> SummaryReport:
    """Totals and top referrers for one site and window.

    ``total_website_requests`` counts ``request_type`` "static" or NULL,
    ``total_server_requests`` counts "api". Visitors are distinct non-null
    IP addresses.
    """
    params = _window_params(site_id, start_time, end_time)

    with db.cursor() as cur:
        totals = cur.execute(SUMMARY_SQL, params).fetchone()
        referrers = cur.execute(TOP_REFERRERS_SQL, params).fetchall()

    return SummaryReport(
        total_requests=int(totals[0] or 0),
        unique_visitors=int(totals[1] or 0),
        total_website_requests=int(totals[2] or 0),
        total_server_requests=int(totals[3] or 0),
        top_referrers=[ReferrerCount(referrer=row[0], count=int(row[1])) for row in referrers],
    )


# =============================================================================
# Daily Views
# =============================================================================


def _daily_views(
    db: "TrafficDB",
    site_id: str,
    start_time: int,
    end_time: int,
    path: Optional[str] = None,
) -> List[DailyViews]:
    # Days without a calendar date are dropped from the spine
    first_day = max(_epoch_day(start_time), MIN_EPOCH_DAY)
    last_day = min(_epoch_day(end_time), MAX_EPOCH_DAY)
    if first_day > last_day:
        return []

    params: List[Any] = [site_id]
    path_filter = ""
    if path is not None:
        path_filter = "AND traffic.path = ?"
        params.append(path)

    sql = DAILY_VIEWS_SQL.format(
        first_day=first_day,
        last_day=last_day,
        seconds_per_day=SECONDS_PER_DAY,
        path_filter=path_filter,
    )
    with db.cursor() as cur:
        rows = cur.execute(sql, params).fetchall()

    logger.debug("Daily views for site %s: %d days (path=%s)", site_id, len(rows), path)
    return [DailyViews(date=epoch_day_to_iso(row[0]), count=int(row[1])) for row in rows]


def get_daily_views(db: "TrafficDB", site_id: str, start_time: int, end_time: int) -> List[DailyViews]:
    """One row per UTC day in the window, zero-filled, ascending.

    Days are matched against ``created_at`` (ingestion day), not the
    event ``timestamp``. Days before 0001-01-01 or after 9999-12-31 have
    no date and are left out.
    """
    return _daily_views(db, site_id, start_time, end_time)


def get_daily_views_by_path(
    db: "TrafficDB",
    site_id: str,
    start_time: int,
    end_time: int,
    path: str,
) -> List[DailyViews]:
    """Like ``get_daily_views`` but only counting events for ``path``."""
    return _daily_views(db, site_id, start_time, end_time, path=path)


# =============================================================================
# Breakdowns
# =============================================================================


def _breakdown(
    db: "TrafficDB",
    column: str,
    site_id: str,
    start_time: int,
    end_time: int,
) -> List[BreakdownRow]:
    placeholder = BREAKDOWN_PLACEHOLDERS[column]
    sql = BREAKDOWN_SQL.format(column=column, placeholder=placeholder, window=WINDOW_FILTER)

    with db.cursor() as cur:
        rows = cur.execute(sql, _window_params(site_id, start_time, end_time)).fetchall()

    total = sum(int(row[1]) for row in rows)
    if total == 0:
        return []

    return [
        BreakdownRow(
            key=row[0],
            count=int(row[1]),
            percentage=float(row[2]) if row[2] is not None else 0.0,
        )
        for row in rows
    ]


def get_referrer_breakdown(db: "TrafficDB", site_id: str, start_time: int, end_time: int) -> List[BreakdownRow]:
    """Referrer share of traffic; NULL referrers are grouped as "(direct)"."""
    return _breakdown(db, "referrer", site_id, start_time, end_time)


def get_path_breakdown(db: "TrafficDB", site_id: str, start_time: int, end_time: int) -> List[BreakdownRow]:
    """Path share of traffic; NULL paths are grouped as "(no path)"."""
    return _breakdown(db, "path", site_id, start_time, end_time)


def get_country_breakdown(db: "TrafficDB", site_id: str, start_time: int, end_time: int) -> List[BreakdownRow]:
    """Country share of traffic; NULL countries are grouped as "(unknown)"."""
    return _breakdown(db, "country", site_id, start_time, end_time)
