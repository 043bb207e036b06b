"""
Shared FastAPI dependencies for the Orbiter API.

The store handle, snapshot manager and config live on ``app.state`` (set by
``create_app``); routes receive them through these dependencies instead of
module globals, so tests can build an app around their own TrafficDB.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Query, Request

from orbiter.config.runtime_config import OrbiterConfig
from orbiter.runtime.aggregate import MAX_TIME_MS, MIN_TIME_MS, MS_PER_DAY
from orbiter.runtime.db import TrafficDB
from orbiter.runtime.snapshot import SnapshotManager

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Orbiter-Analytics-Token"

# Longest window (in days) a report may span
MAX_WINDOW_DAYS = 3660


@dataclass
class TimeWindow:
    """Inclusive report window in milliseconds since the epoch."""

    start_time: int
    end_time: int


def get_config(request: Request) -> OrbiterConfig:
    return request.app.state.config


def get_traffic_db(request: Request) -> TrafficDB:
    return request.app.state.traffic_db


def get_snapshot_manager(request: Request) -> SnapshotManager:
    return request.app.state.snapshot_manager


def require_token(
    request: Request,
    token: Optional[str] = Header(None, alias=TOKEN_HEADER),
) -> None:
    """Reject requests whose token does not match the configured admin key.

    Raises:
        401: Missing token, wrong token, or no admin key configured.
    """
    expected = get_config(request).admin_key
    if not token or not expected or not secrets.compare_digest(token.encode(), expected.encode()):
        logger.debug("Rejected request to %s: bad or missing token", request.url.path)
        raise HTTPException(
            status_code=401,
            detail={"error": "unauthorized", "message": "Unauthorized"},
        )


def resolve_window(
    request: Request,
    start_date: Optional[int] = Query(None, alias="startDate"),
    end_date: Optional[int] = Query(None, alias="endDate"),
) -> TimeWindow:
    """Resolve ``startDate``/``endDate`` (ms) into a report window.

    If either bound is missing the window is the last
    ``default_window_days`` days ending now.

    Raises:
        400: startDate is after endDate, a bound lies outside years
            1-9999, or the window spans more than ``MAX_WINDOW_DAYS``.
    """
    if start_date is None or end_date is None:
        end_time = int(time.time() * 1000)
        days = get_config(request).default_window_days
        return TimeWindow(start_time=end_time - days * MS_PER_DAY, end_time=end_time)

    if start_date > end_date:
        raise _invalid_window("startDate must not be after endDate", start_date, end_date)
    if start_date < MIN_TIME_MS or end_date > MAX_TIME_MS:
        raise _invalid_window("startDate and endDate must fall within years 1-9999", start_date, end_date)
    if (end_date - start_date) // MS_PER_DAY >= MAX_WINDOW_DAYS:
        raise _invalid_window(f"Window must not span more than {MAX_WINDOW_DAYS} days", start_date, end_date)
    return TimeWindow(start_time=start_date, end_time=end_date)


def _invalid_window(message: str, start_date: int, end_date: int) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={
            "error": "invalid_window",
            "message": message,
            "details": {"startDate": start_date, "endDate": end_date},
        },
    )
