"""Traffic event and report types.

This module contains the dataclasses exchanged with the traffic store:
the append input (``TrafficRecord``), the stored row (``TrafficEvent``) and
the report shapes produced by the aggregator. Serialization helpers follow
the ``<type>_to_dict`` convention and use the snake_case column names
of the ``traffic`` table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Column order of the traffic table; SELECT lists and row conversion share it.
EVENT_COLUMNS: Tuple[str, ...] = (
    "id",
    "site_id",
    "timestamp",
    "path",
    "user_agent",
    "ip_address",
    "country",
    "city",
    "referrer",
    "request_type",
    "created_at",
)

OPTIONAL_FIELDS: Tuple[str, ...] = (
    "path",
    "user_agent",
    "ip_address",
    "country",
    "city",
    "referrer",
    "request_type",
)

# Placeholders for NULL values in grouped reports
DIRECT_REFERRER = "(direct)"
NO_PATH = "(no path)"
UNKNOWN_COUNTRY = "(unknown)"

_EPOCH_DAY = date(1970, 1, 1)

# Day numbers that epoch_day_to_iso can format (0001-01-01 .. 9999-12-31)
MIN_EPOCH_DAY = (date.min - _EPOCH_DAY).days
MAX_EPOCH_DAY = (date.max - _EPOCH_DAY).days


@dataclass
class TrafficRecord:
    """Input for ``TrafficDB.append``.

    Only ``site_id`` is required. ``timestamp`` is the caller's event time in
    milliseconds since the epoch; the store fills it in when omitted.
    """

    site_id: str
    path: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    referrer: Optional[str] = None
    request_type: Optional[str] = None
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class TrafficEvent:
    """One stored traffic event.

    Attributes:
        id: Store-assigned sequence number, strictly increasing.
        site_id: Tenant identifier.
        timestamp: Event time in milliseconds since the epoch.
        created_at: Ingestion time in seconds since the epoch.
    """

    id: int
    site_id: str
    timestamp: int
    created_at: int
    path: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    referrer: Optional[str] = None
    request_type: Optional[str] = None


@dataclass
class ReferrerCount:
    """A referrer and how often it was seen."""

    referrer: str
    count: int


@dataclass
class SummaryReport:
    """Summary statistics for one site and time window."""

    total_requests: int = 0
    unique_visitors: int = 0
    total_website_requests: int = 0
    total_server_requests: int = 0
    top_referrers: List[ReferrerCount] = field(default_factory=list)


@dataclass
class DailyViews:
    """View count for one calendar day (``YYYY-MM-DD``)."""

    date: str
    count: int


@dataclass
class BreakdownRow:
    """One group of a breakdown report."""

    key: str
    count: int
    percentage: float


# =============================================================================
# Serialization
# =============================================================================


def event_from_row(row: Sequence[Any]) -> TrafficEvent:
    """Build a TrafficEvent from a row selected in ``EVENT_COLUMNS`` order."""
    data = dict(zip(EVENT_COLUMNS, row))
    return TrafficEvent(**data)


def traffic_event_to_dict(event: TrafficEvent) -> Dict[str, Any]:
    """Convert a TrafficEvent to a JSON-serializable dict."""
    return {name: getattr(event, name) for name in EVENT_COLUMNS}


def summary_report_to_dict(report: SummaryReport) -> Dict[str, Any]:
    """Convert a SummaryReport to the wire format used by the stats endpoint."""
    return {
        "total_requests": report.total_requests,
        "unique_visitors": report.unique_visitors,
        "total_website_requests": report.total_website_requests,
        "total_server_requests": report.total_server_requests,
        "top_referrers": [
            {"referrer": item.referrer, "count": item.count} for item in report.top_referrers
        ],
    }


def daily_views_to_dict(views: DailyViews) -> Dict[str, Any]:
    return {"date": views.date, "count": views.count}


def breakdown_row_to_dict(row: BreakdownRow, key_name: str = "key") -> Dict[str, Any]:
    """Convert a breakdown row, naming the group column ``key_name``."""
    return {key_name: row.key, "count": row.count, "percentage": row.percentage}


def epoch_day_to_iso(day: int) -> str:
    """Format a day number (days since 1970-01-01, UTC) as ``YYYY-MM-DD``."""
    return (_EPOCH_DAY + timedelta(days=int(day))).isoformat()
