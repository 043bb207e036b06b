"""
stream.py - Cursor-paginated retrieval of traffic events.

Reads all events of one site within ``[start_time, end_time]`` in batches
keyed on the monotonic ``id`` column instead of OFFSET pagination:

    last_id = 0
    loop:
        SELECT ... WHERE site_id = ? AND timestamp BETWEEN ? AND ?
                     AND id > last_id ORDER BY id LIMIT batch_size
        stop on an empty batch
        last_id = max(id) of the batch

Because ``id`` only grows and stored rows never change, concurrent appends
cannot shift the window: every event that existed when the scan started is
delivered, no id is delivered twice, and ids arrive in ascending order.
Events appended during the scan may or may not be included.

Usage:
    from orbiter.runtime.stream import stream_events, query_events

    for event in stream_events(db, "site-1", start_ms, end_ms, batch_size=500):
        export(event)

    events = query_events(db, "site-1", start_ms, end_ms)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator, List

from .errors import NotInitializedError
from .types import EVENT_COLUMNS, TrafficEvent, event_from_row

if TYPE_CHECKING:
    from .db import TrafficDB

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

# Below the first value of traffic_id_seq (which starts at 1)
CURSOR_START = 0

SELECT_COLUMNS = ", ".join(f'"{name}"' if name == "timestamp" else name for name in EVENT_COLUMNS)

STREAM_BATCH_SQL = f"""
SELECT {SELECT_COLUMNS}
FROM traffic
WHERE site_id = ?
  AND "timestamp" >= ?
  AND "timestamp" <= ?
  AND id > ?
ORDER BY id ASC
LIMIT ?
"""


def stream_events(
    db: "TrafficDB",
    site_id: str,
    start_time: int,
    end_time: int,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[TrafficEvent]:
    """Lazily yield matching events in ascending id order.

    The returned generator is forward-only; iterating again requires a new
    call, which scans from the beginning.

    Args:
        db: An initialized TrafficDB.
        site_id: Site to read.
        start_time: Inclusive lower bound on ``timestamp`` (ms).
        end_time: Inclusive upper bound on ``timestamp`` (ms).
        batch_size: Rows fetched per query.

    Raises:
        NotInitializedError: Immediately if the store is not open, or from
            the generator if the store is closed mid-scan.
        StoreIOError: From the generator if a batch query fails; the stream
            ends there.
        ValueError: If batch_size is not a positive integer.
    """
    batch_size = int(batch_size)
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if not db.is_ready:
        raise NotInitializedError()

    return _iter_batches(db, site_id, int(start_time), int(end_time), batch_size)


def query_events(
    db: "TrafficDB",
    site_id: str,
    start_time: int,
    end_time: int,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> List[TrafficEvent]:
    """Collect ``stream_events`` into a list (ascending id order)."""
    return list(stream_events(db, site_id, start_time, end_time, batch_size))


def _fetch_batch(
    db: "TrafficDB",
    site_id: str,
    start_time: int,
    end_time: int,
    last_id: int,
    batch_size: int,
) -> List[TrafficEvent]:
    with db.cursor() as cur:
        rows = cur.execute(
            STREAM_BATCH_SQL,
            [site_id, start_time, end_time, last_id, batch_size],
        ).fetchall()
    return [event_from_row(row) for row in rows]


def _iter_batches(
    db: "TrafficDB",
    site_id: str,
    start_time: int,
    end_time: int,
    batch_size: int,
) -> Iterator[TrafficEvent]:
    last_id = CURSOR_START
    batches = 0
    delivered = 0

    while True:
        batch = _fetch_batch(db, site_id, start_time, end_time, last_id, batch_size)
        if not batch:
            break

        batches += 1
        last_id = batch[-1].id  # rows are ordered by id
        for event in batch:
            delivered += 1
            yield event

    logger.debug(
        "Streamed %d events for site %s in %d batches (last_id=%d)",
        delivered,
        site_id,
        batches,
        last_id,
    )
