"""
Database snapshot endpoints.

Provides endpoints for:
- Writing a snapshot of the traffic database
- Listing existing snapshots
- Restoring the newest (or a named) snapshot
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from orbiter.runtime.snapshot import (
    SnapshotError,
    SnapshotManager,
    SnapshotNotFoundError,
    SnapshotUnsupportedError,
    snapshot_info_to_dict,
)

from ..deps import get_snapshot_manager, require_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/snapshot", tags=["snapshot"], dependencies=[Depends(require_token)])


class RestoreRequest(BaseModel):
    """Request to restore a snapshot."""

    name: Optional[str] = Field(None, description="Snapshot file name. If None, restores the newest.")


def _snapshot_error(e: SnapshotError, name: Optional[str] = None) -> HTTPException:
    """Map a snapshot failure to an HTTP error.

    Unsupported stores are a conflict, missing snapshots are 404 and
    anything else (I/O during the copy) is a server error.
    """
    if isinstance(e, SnapshotUnsupportedError):
        status_code, error = 409, "snapshot_unsupported"
    elif isinstance(e, SnapshotNotFoundError):
        status_code, error = 404, "snapshot_not_found"
    else:
        logger.error("Snapshot operation failed: %s", e)
        status_code, error = 500, "snapshot_failed"
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "message": str(e), "details": {"name": name}},
    )


@router.post("")
def create_snapshot(manager: SnapshotManager = Depends(get_snapshot_manager)) -> Dict[str, Any]:
    """Checkpoint the store and write a snapshot.

    Raises:
        409: If the store cannot be snapshotted (in-memory).
        500: If the snapshot file cannot be written.
    """
    try:
        info = manager.backup()
    except SnapshotError as e:
        raise _snapshot_error(e)
    return {"data": snapshot_info_to_dict(info)}


@router.get("")
def list_snapshots(manager: SnapshotManager = Depends(get_snapshot_manager)) -> Dict[str, Any]:
    return {"data": [snapshot_info_to_dict(s) for s in manager.list_snapshots()]}


@router.post("/restore")
def restore_snapshot(
    body: Optional[RestoreRequest] = None,
    manager: SnapshotManager = Depends(get_snapshot_manager),
) -> Dict[str, Any]:
    """Restore the newest snapshot, or the one named in the body.

    Raises:
        404: If no matching snapshot exists.
        409: If the store cannot be snapshotted (in-memory).
        500: If the snapshot cannot be copied into place.
    """
    name = body.name if body else None
    try:
        info = manager.restore(name)
    except SnapshotError as e:
        raise _snapshot_error(e, name)
    logger.info("Snapshot %s restored via API", info.name)
    return {"data": snapshot_info_to_dict(info)}
