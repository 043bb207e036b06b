"""
db.py - DuckDB-backed traffic event store.

This module owns the on-disk persistence of traffic events:
- One append-only ``traffic`` table keyed by a sequence-assigned ``id``
- Indexes for range scans, cursor scans and referrer grouping
- Explicit lifecycle (``initialize`` / ``close``) with a distinguishable
  "not initialized" state

Design Philosophy:
    - Events are never updated or deleted; ``id`` order is insertion order
    - Every operation runs on its own DuckDB cursor, so the store can be
      shared across threads and DuckDB's MVCC serializes conflicting writes
    - The handle is created by the caller and passed to consumers; there is
      no module-level singleton

Usage:
    from orbiter.runtime.db import TrafficDB
    from orbiter.runtime.types import TrafficRecord

    db = TrafficDB(Path("traffic.duckdb"))
    db.initialize()
    db.append(TrafficRecord(site_id="site-1", path="/", referrer=None))

    stats = db.get_summary_stats("site-1", start_ms, end_ms)
    for event in db.stream_events("site-1", start_ms, end_ms):
        ...
    db.close()
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Union

import duckdb

from . import aggregate, stream
from .errors import NotInitializedError, StoreInitError, StoreIOError
from .stream import SELECT_COLUMNS
from .types import (
    OPTIONAL_FIELDS,
    BreakdownRow,
    DailyViews,
    SummaryReport,
    TrafficEvent,
    TrafficRecord,
    event_from_row,
)

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

# Number of rows returned by get_latest_events()
LATEST_EVENTS_LIMIT = 100

# =============================================================================
# Schema Definitions
# =============================================================================
# Units are part of the external contract:
#   timestamp  - caller event time, integer milliseconds since the epoch
#   created_at - ingestion time, integer seconds since the epoch

CREATE_TABLES_SQL = """
CREATE SEQUENCE IF NOT EXISTS traffic_id_seq START 1;

CREATE TABLE IF NOT EXISTS traffic (
    id BIGINT PRIMARY KEY DEFAULT nextval('traffic_id_seq'),
    site_id VARCHAR NOT NULL,
    "timestamp" BIGINT NOT NULL,
    path VARCHAR,
    user_agent VARCHAR,
    ip_address VARCHAR,
    country VARCHAR,
    city VARCHAR,
    referrer VARCHAR,
    request_type VARCHAR,  -- static, api, or NULL
    created_at BIGINT NOT NULL
);

-- Range scans by site and event time
CREATE INDEX IF NOT EXISTS idx_site_timestamp ON traffic(site_id, "timestamp");
-- Cursor scans (id > last_id within a site/time window)
CREATE INDEX IF NOT EXISTS idx_id_site_timestamp ON traffic(id, site_id, "timestamp");
-- Referrer grouping
CREATE INDEX IF NOT EXISTS idx_referrer ON traffic(referrer);
"""

INSERT_EVENT_SQL = """
INSERT INTO traffic (
    site_id, "timestamp", path, user_agent, ip_address, country, city, referrer, request_type, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
RETURNING id
"""


def _clean_optional(value: Any) -> Optional[str]:
    """Normalize an optional attribute: blank strings become NULL."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# =============================================================================
# TrafficDB Class
# =============================================================================


class TrafficDB:
    """DuckDB-backed append-only store for traffic events.

    Safe to share between threads: each operation opens a short-lived cursor
    on the shared connection. The internal lock only guards swapping the
    connection handle in ``initialize()`` and ``close()``.

    Attributes:
        db_path: Path to the DuckDB file, or ``":memory:"``.
    """

    def __init__(
        self,
        db_path: Optional[Union[Path, str]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Create an unopened store handle.

        Args:
            db_path: Path to the DuckDB file. If None, uses an in-memory database.
            clock: Returns the current time in seconds since the epoch. Used for
                ``created_at`` and the default ``timestamp``. Defaults to
                ``time.time``.
        """
        self.db_path: Union[Path, str] = Path(db_path) if db_path not in (None, MEMORY_PATH) else MEMORY_PATH
        self._clock = clock or time.time
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY_PATH

    @property
    def is_ready(self) -> bool:
        """True while a connection is open."""
        return self._connection is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> None:
        """Open (or create) the database and ensure the schema exists.

        Idempotent: calling it on an open store does nothing.

        Raises:
            StoreInitError: If the file cannot be opened or the schema
                cannot be created.
        """
        with self._lock:
            if self._connection is not None:
                return

            try:
                if not self.in_memory:
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                connection = duckdb.connect(str(self.db_path))
            except (duckdb.Error, OSError) as e:
                raise StoreInitError(f"Could not open traffic database at {self.db_path}: {e}") from e

            try:
                connection.execute(CREATE_TABLES_SQL)
            except duckdb.Error as e:
                connection.close()
                raise StoreInitError(f"Could not create traffic schema at {self.db_path}: {e}") from e

            self._connection = connection
            logger.info("Traffic database ready at %s", self.db_path)

    def close(self) -> None:
        """Close the database connection. Safe to call repeatedly."""
        with self._lock:
            if self._connection is None:
                return
            connection, self._connection = self._connection, None
            connection.close()
            logger.info("Traffic database closed (%s)", self.db_path)

    @contextmanager
    def cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Yield a fresh cursor for one operation.

        Raises:
            NotInitializedError: If the store is not open, including when it
                was closed while the operation was running.
            StoreIOError: If DuckDB reports an error while the store is open.
        """
        connection = self._connection
        if connection is None:
            raise NotInitializedError()

        try:
            cur = connection.cursor()
        except duckdb.Error as e:
            # Closed between the check above and cursor creation
            raise NotInitializedError() from e

        try:
            yield cur
        except duckdb.Error as e:
            if self._connection is None:
                raise NotInitializedError() from e
            logger.warning("Traffic database operation failed: %s", e)
            raise StoreIOError(f"Traffic database operation failed: {e}") from e
        finally:
            try:
                cur.close()
            except duckdb.Error:
                logger.debug("Cursor already closed")

    def checkpoint(self) -> None:
        """Flush the write-ahead log into the database file."""
        with self.cursor() as cur:
            cur.execute("CHECKPOINT")

    # =========================================================================
    # Write Operations
    # =========================================================================

    def append(self, record: TrafficRecord) -> int:
        """Append one traffic event and return its assigned id.

        Missing optional attributes are stored as NULL; ``timestamp``
        defaults to the current time in milliseconds.

        Raises:
            NotInitializedError: If the store is not open.
            ValueError: If ``site_id`` is empty.
            StoreIOError: If the insert fails.
        """
        with self.cursor() as cur:
            site_id = str(record.site_id or "").strip()
            if not site_id:
                raise ValueError("site_id is required")

            now = self._clock()
            timestamp = int(record.timestamp) if record.timestamp is not None else int(now * 1000)
            values = [_clean_optional(getattr(record, name)) for name in OPTIONAL_FIELDS]

            row = cur.execute(
                INSERT_EVENT_SQL,
                [site_id, timestamp, *values, int(now)],
            ).fetchone()

        event_id = int(row[0])
        logger.debug("Recorded traffic event %d for site %s", event_id, site_id)
        return event_id

    # =========================================================================
    # Read Operations
    # =========================================================================

    def get_latest_events(
        self,
        site_id: Optional[str] = None,
        limit: int = LATEST_EVENTS_LIMIT,
    ) -> List[TrafficEvent]:
        """Get the most recent events (optionally for one site), newest first."""
        where = "WHERE site_id = ?" if site_id else ""
        params: List[Any] = [site_id] if site_id else []

        with self.cursor() as cur:
            rows = cur.execute(
                f"""
                SELECT {SELECT_COLUMNS}
                FROM traffic
                {where}
                ORDER BY id DESC
                LIMIT ?
                """,
                [*params, int(limit)],
            ).fetchall()

        return [event_from_row(row) for row in rows]

    def count_events(self, site_id: Optional[str] = None) -> int:
        """Count stored events, optionally for one site."""
        with self.cursor() as cur:
            if site_id:
                row = cur.execute("SELECT COUNT(*) FROM traffic WHERE site_id = ?", [site_id]).fetchone()
            else:
                row = cur.execute("SELECT COUNT(*) FROM traffic").fetchone()
        return int(row[0])

    # =========================================================================
    # Streaming and Reports
    # =========================================================================

    def stream_events(
        self,
        site_id: str,
        start_time: int,
        end_time: int,
        batch_size: int = stream.DEFAULT_BATCH_SIZE,
    ) -> Iterator[TrafficEvent]:
        return stream.stream_events(self, site_id, start_time, end_time, batch_size)

    def query_events(
        self,
        site_id: str,
        start_time: int,
        end_time: int,
        batch_size: int = stream.DEFAULT_BATCH_SIZE,
    ) -> List[TrafficEvent]:
        return stream.query_events(self, site_id, start_time, end_time, batch_size)

    def get_summary_stats(self, site_id: str, start_time: int, end_time: int) -> SummaryReport:
        return aggregate.get_summary_stats(self, site_id, start_time, end_time)

    def get_daily_views(self, site_id: str, start_time: int, end_time: int) -> List[DailyViews]:
        return aggregate.get_daily_views(self, site_id, start_time, end_time)

    def get_daily_views_by_path(
        self, site_id: str, start_time: int, end_time: int, path: str
    ) -> List[DailyViews]:
        return aggregate.get_daily_views_by_path(self, site_id, start_time, end_time, path)

    def get_referrer_breakdown(self, site_id: str, start_time: int, end_time: int) -> List[BreakdownRow]:
        return aggregate.get_referrer_breakdown(self, site_id, start_time, end_time)

    def get_path_breakdown(self, site_id: str, start_time: int, end_time: int) -> List[BreakdownRow]:
        return aggregate.get_path_breakdown(self, site_id, start_time, end_time)

    def get_country_breakdown(self, site_id: str, start_time: int, end_time: int) -> List[BreakdownRow]:
        return aggregate.get_country_breakdown(self, site_id, start_time, end_time)
