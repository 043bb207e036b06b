# orbiter/runtime package
# Traffic event store and the modules built on top of it.
#
# Core components:
#   - db: TrafficDB, the DuckDB-backed append-only event store
#   - stream: cursor-paginated event retrieval
#   - aggregate: summary, daily and breakdown reports
#   - errors: NotInitializedError, StoreInitError, StoreIOError
#   - snapshot: database file backup/restore
#   - disk_monitor: df-based disk usage alerts
#
# Usage:
#     from orbiter.runtime import TrafficDB, TrafficRecord
#     db = TrafficDB(Path("traffic.duckdb"))
#     db.initialize()
#     db.append(TrafficRecord(site_id="site-1", path="/"))

from .db import TrafficDB
from .errors import NotInitializedError, StoreError, StoreInitError, StoreIOError
from .stream import query_events, stream_events
from .types import (
    BreakdownRow,
    DailyViews,
    ReferrerCount,
    SummaryReport,
    TrafficEvent,
    TrafficRecord,
)

__all__ = [
    # Store
    "TrafficDB",
    "stream_events",
    "query_events",
    # Types
    "TrafficRecord",
    "TrafficEvent",
    "SummaryReport",
    "ReferrerCount",
    "DailyViews",
    "BreakdownRow",
    # Errors
    "StoreError",
    "NotInitializedError",
    "StoreInitError",
    "StoreIOError",
]
