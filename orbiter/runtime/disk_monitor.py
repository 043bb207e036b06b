"""
disk_monitor.py - Disk usage checks for the host running the traffic store.

Wraps ``df -h`` and turns its output into partitions and threshold alerts:

    partitions = check_disk_space()
    report = monitor_disk_space(critical=95, warning=85)
    for alert in report.alerts:
        logger.warning(alert.message)
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CRITICAL_PERCENT = 90
DEFAULT_WARNING_PERCENT = 80

# Pseudo filesystems that never hold the database
IGNORED_FILESYSTEM_PREFIXES = ("tmpfs", "efivarfs")

DF_TIMEOUT_SECONDS = 10


class DiskSpaceError(Exception):
    """Raised when disk usage cannot be determined."""

    pass


@dataclass
class DiskPartition:
    """One line of ``df -h`` output."""

    filesystem: str
    size: str
    used: str
    available: str
    use_percentage: str
    mountpoint: str


@dataclass
class DiskSpaceAlert:
    partition: DiskPartition
    level: str  # critical | warning
    message: str


@dataclass
class DiskSpaceReport:
    partitions: List[DiskPartition] = field(default_factory=list)
    alerts: List[DiskSpaceAlert] = field(default_factory=list)


def disk_partition_to_dict(partition: DiskPartition) -> Dict[str, Any]:
    return {
        "filesystem": partition.filesystem,
        "size": partition.size,
        "used": partition.used,
        "available": partition.available,
        "usePercentage": partition.use_percentage,
        "mountpoint": partition.mountpoint,
    }


def disk_space_report_to_dict(report: DiskSpaceReport) -> Dict[str, Any]:
    return {
        "partitions": [disk_partition_to_dict(p) for p in report.partitions],
        "alerts": [
            {
                "partition": disk_partition_to_dict(a.partition),
                "level": a.level,
                "message": a.message,
            }
            for a in report.alerts
        ],
    }


def parse_df_output(output: str) -> List[DiskPartition]:
    """Parse ``df -h`` output, skipping the header and blank lines.

    Mount points containing spaces are kept whole.
    """
    partitions: List[DiskPartition] = []
    for line in output.splitlines()[1:]:
        if not line.strip():
            continue
        parts = line.split(None, 5)
        if len(parts) < 6:
            logger.debug("Skipping unparseable df line: %r", line)
            continue
        filesystem, size, used, available, use_pct, mountpoint = parts
        partitions.append(
            DiskPartition(
                filesystem=filesystem,
                size=size,
                used=used,
                available=available,
                use_percentage=use_pct.rstrip("%") or "0",
                mountpoint=mountpoint,
            )
        )
    return partitions


def check_disk_space() -> List[DiskPartition]:
    """Run ``df -h`` and return every partition it reports.

    Raises:
        DiskSpaceError: If the command cannot run or writes to stderr.
    """
    try:
        result = subprocess.run(
            ["df", "-h"],
            capture_output=True,
            text=True,
            timeout=DF_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise DiskSpaceError(f"Failed to check disk space: {e}") from e

    if result.stderr.strip():
        raise DiskSpaceError(f"Error executing df command: {result.stderr.strip()}")

    return parse_df_output(result.stdout)


def _usage(partition: DiskPartition) -> int:
    try:
        return int(partition.use_percentage)
    except ValueError:
        return 0


def monitor_disk_space(
    critical: Optional[int] = None,
    warning: Optional[int] = None,
) -> DiskSpaceReport:
    """Check real partitions against usage thresholds (percent).

    Raises:
        DiskSpaceError: If ``df`` fails.
    """
    critical = DEFAULT_CRITICAL_PERCENT if critical is None else critical
    warning = DEFAULT_WARNING_PERCENT if warning is None else warning

    partitions = [
        p for p in check_disk_space() if not p.filesystem.startswith(IGNORED_FILESYSTEM_PREFIXES)
    ]

    alerts: List[DiskSpaceAlert] = []
    for partition in partitions:
        usage = _usage(partition)
        if usage >= critical:
            alerts.append(
                DiskSpaceAlert(
                    partition=partition,
                    level="critical",
                    message=f"CRITICAL: {partition.mountpoint} is at {usage}% usage!",
                )
            )
        elif usage >= warning:
            alerts.append(
                DiskSpaceAlert(
                    partition=partition,
                    level="warning",
                    message=f"WARNING: {partition.mountpoint} is at {usage}% usage",
                )
            )

    for alert in alerts:
        logger.warning("%s", alert.message)

    return DiskSpaceReport(partitions=partitions, alerts=alerts)
