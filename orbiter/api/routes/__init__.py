"""
Routes package for the Orbiter API.

This package contains the FastAPI routers for:
- analytics: Event ingestion, reports and NDJSON export
- disk: Host disk usage and threshold alerts
- snapshot: Database snapshot, listing and restore
"""

from .analytics import router as analytics_router
from .disk import router as disk_router
from .snapshot import router as snapshot_router

__all__ = [
    "analytics_router",
    "disk_router",
    "snapshot_router",
]
