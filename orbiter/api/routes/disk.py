"""
Disk space endpoints for the host running the traffic store.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from orbiter.config.runtime_config import OrbiterConfig
from orbiter.runtime.disk_monitor import (
    DiskSpaceError,
    check_disk_space,
    disk_partition_to_dict,
    disk_space_report_to_dict,
    monitor_disk_space,
)

from ..deps import get_config, require_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/disk-space", tags=["disk"], dependencies=[Depends(require_token)])


def _disk_error(e: DiskSpaceError) -> HTTPException:
    logger.error("Disk space check failed: %s", e)
    return HTTPException(
        status_code=500,
        detail={"error": "disk_check_failed", "message": str(e)},
    )


@router.get("/stats")
def disk_stats() -> Dict[str, Any]:
    """Every partition reported by ``df -h``."""
    try:
        partitions = check_disk_space()
    except DiskSpaceError as e:
        raise _disk_error(e)
    return {"data": [disk_partition_to_dict(p) for p in partitions]}


@router.get("/monitor")
def disk_monitor(config: OrbiterConfig = Depends(get_config)) -> Dict[str, Any]:
    """Partitions checked against the configured warning/critical thresholds."""
    try:
        report = monitor_disk_space(
            critical=config.disk_critical_percent,
            warning=config.disk_warning_percent,
        )
    except DiskSpaceError as e:
        raise _disk_error(e)
    return {"data": disk_space_report_to_dict(report)}
