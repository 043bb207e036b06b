"""
Traffic ingestion and report endpoints.

Provides endpoints for:
- Recording one traffic event
- Listing the latest events
- Summary stats with daily views
- Referrer, path and country breakdowns
- Exporting a site's events as NDJSON
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from orbiter.config.runtime_config import OrbiterConfig
from orbiter.runtime.db import LATEST_EVENTS_LIMIT, TrafficDB
from orbiter.runtime.types import (
    TrafficRecord,
    breakdown_row_to_dict,
    daily_views_to_dict,
    summary_report_to_dict,
    traffic_event_to_dict,
)

from ..deps import TimeWindow, get_config, get_traffic_db, require_token, resolve_window

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"], dependencies=[Depends(require_token)])


# =============================================================================
# Pydantic Models
# =============================================================================


class TrafficPayload(BaseModel):
    """One traffic event as sent by the edge proxies (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    site_id: str = Field(..., alias="siteId", min_length=1)
    path: Optional[str] = None
    user_agent: Optional[str] = Field(None, alias="userAgent")
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    country: Optional[str] = None
    city: Optional[str] = None
    referrer: Optional[str] = None
    request_type: Optional[str] = Field(None, alias="requestType")
    timestamp: Optional[int] = Field(None, description="Event time in ms since the epoch.")

    def to_record(self) -> TrafficRecord:
        return TrafficRecord(
            site_id=self.site_id,
            path=self.path,
            user_agent=self.user_agent,
            ip_address=self.ip_address,
            country=self.country,
            city=self.city,
            referrer=self.referrer,
            request_type=self.request_type,
            timestamp=self.timestamp,
        )


# =============================================================================
# Ingestion
# =============================================================================


@router.post("", response_class=PlainTextResponse)
def record_traffic(payload: TrafficPayload, db: TrafficDB = Depends(get_traffic_db)) -> str:
    """Record one traffic event.

    Raises:
        400: If siteId is blank.
        503: If the store is not initialized.
    """
    try:
        event_id = db.append(payload.to_record())
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_event", "message": str(e)},
        )
    logger.debug("Ingested event %d for site %s", event_id, payload.site_id)
    return "Success"


@router.get("/latest")
def latest_events(
    site_id: Optional[str] = Query(None, alias="siteId"),
    limit: int = Query(LATEST_EVENTS_LIMIT, ge=1, le=LATEST_EVENTS_LIMIT),
    db: TrafficDB = Depends(get_traffic_db),
) -> Dict[str, Any]:
    """Most recent events, newest first, optionally for one site."""
    events = db.get_latest_events(site_id=site_id, limit=limit)
    return {"data": [traffic_event_to_dict(e) for e in events]}


# =============================================================================
# Reports
# =============================================================================


@router.get("/{site_id}/stats")
def site_stats(
    site_id: str,
    window: TimeWindow = Depends(resolve_window),
    db: TrafficDB = Depends(get_traffic_db),
) -> Dict[str, Any]:
    """Summary stats plus zero-filled daily views for the window."""
    stats = db.get_summary_stats(site_id, window.start_time, window.end_time)
    daily = db.get_daily_views(site_id, window.start_time, window.end_time)
    return {
        "data": {
            "stats": summary_report_to_dict(stats),
            "dailyStats": [daily_views_to_dict(d) for d in daily],
        }
    }


@router.get("/{site_id}/referrers")
def referrer_breakdown(
    site_id: str,
    window: TimeWindow = Depends(resolve_window),
    db: TrafficDB = Depends(get_traffic_db),
) -> Dict[str, List[Dict[str, Any]]]:
    rows = db.get_referrer_breakdown(site_id, window.start_time, window.end_time)
    return {"data": [breakdown_row_to_dict(r, "referrer") for r in rows]}


@router.get("/{site_id}/paths")
def path_breakdown(
    site_id: str,
    window: TimeWindow = Depends(resolve_window),
    db: TrafficDB = Depends(get_traffic_db),
) -> Dict[str, List[Dict[str, Any]]]:
    rows = db.get_path_breakdown(site_id, window.start_time, window.end_time)
    return {"data": [breakdown_row_to_dict(r, "path") for r in rows]}


@router.get("/{site_id}/paths/daily")
def path_daily_views(
    site_id: str,
    path: str = Query(..., min_length=1),
    window: TimeWindow = Depends(resolve_window),
    db: TrafficDB = Depends(get_traffic_db),
) -> Dict[str, List[Dict[str, Any]]]:
    """Daily views for a single path."""
    rows = db.get_daily_views_by_path(site_id, window.start_time, window.end_time, path)
    return {"data": [daily_views_to_dict(r) for r in rows]}


@router.get("/{site_id}/countries")
def country_breakdown(
    site_id: str,
    window: TimeWindow = Depends(resolve_window),
    db: TrafficDB = Depends(get_traffic_db),
) -> Dict[str, List[Dict[str, Any]]]:
    rows = db.get_country_breakdown(site_id, window.start_time, window.end_time)
    return {"data": [breakdown_row_to_dict(r, "country") for r in rows]}


# =============================================================================
# Export
# =============================================================================


@router.get("/{site_id}/export")
def export_events(
    site_id: str,
    window: TimeWindow = Depends(resolve_window),
    db: TrafficDB = Depends(get_traffic_db),
    config: OrbiterConfig = Depends(get_config),
) -> StreamingResponse:
    """Stream every event in the window as newline-delimited JSON.

    The store readiness check happens before the response starts, so a
    closed store still yields a 503 instead of a truncated body.
    """
    events = db.stream_events(
        site_id, window.start_time, window.end_time, batch_size=config.stream_batch_size
    )

    def _lines() -> Iterator[str]:
        count = 0
        for event in events:
            count += 1
            yield json.dumps(traffic_event_to_dict(event)) + "\n"
        logger.info("Exported %d events for site %s", count, site_id)

    return StreamingResponse(_lines(), media_type="application/x-ndjson")
