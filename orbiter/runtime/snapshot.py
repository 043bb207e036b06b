"""
snapshot.py - Point-in-time copies of the traffic database file.

Backups checkpoint the write-ahead log into the database file and copy it
into a snapshot directory. Restores close the store, swap the file in and
reopen the store:

    manager = SnapshotManager(db, Path("snapshots"), keep=24)
    info = manager.backup()
    manager.restore()             # newest snapshot
    manager.restore(info.name)    # a specific one

While a restore runs the store is closed, so any concurrent operation fails
with NotInitializedError instead of reading a half-written file. Backup and
restore are serialized against each other by the manager's lock; ingestion
is not blocked.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .db import TrafficDB

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "orbiter-analytics-db-"
SNAPSHOT_SUFFIX = ".duckdb"


class SnapshotError(Exception):
    """Error while creating, listing or restoring snapshots.

    Raised directly for I/O failures; the subclasses cover requests that
    cannot be satisfied.
    """

    pass


class SnapshotNotFoundError(SnapshotError):
    """No snapshot matches the requested name (or none exist)."""

    pass


class SnapshotUnsupportedError(SnapshotError):
    """The store has no database file to snapshot (in-memory)."""

    pass


@dataclass
class SnapshotInfo:
    """A snapshot file on disk."""

    name: str
    path: Path
    size_bytes: int
    created_at: datetime


def snapshot_info_to_dict(info: SnapshotInfo) -> Dict[str, Any]:
    return {
        "name": info.name,
        "size_bytes": info.size_bytes,
        "created_at": info.created_at.isoformat(),
    }


def _atomic_copy(source: Path, destination: Path) -> None:
    """Copy a file so that ``destination`` is never observed half-written.

    Uses a temporary file in the destination directory + os.replace.
    """
    parent = destination.parent
    parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix=destination.name + ".",
        dir=parent,
    )
    try:
        with os.fdopen(fd, "wb") as out, open(source, "rb") as src:
            shutil.copyfileobj(src, out)
            out.flush()
            os.fsync(out.fileno())

        os.replace(tmp_path, destination)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _read_info(path: Path) -> SnapshotInfo:
    stat = path.stat()
    return SnapshotInfo(
        name=path.name,
        path=path,
        size_bytes=stat.st_size,
        created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
    )


class SnapshotManager:
    """Creates, lists, prunes and restores database snapshots.

    Attributes:
        snapshot_dir: Directory holding snapshot files.
        keep: Number of newest snapshots retained after each backup
            (0 keeps everything).
    """

    def __init__(self, db: "TrafficDB", snapshot_dir: Path, keep: int = 24):
        self._db = db
        self.snapshot_dir = Path(snapshot_dir)
        self.keep = max(0, int(keep))
        self._lock = threading.Lock()

    def _database_file(self) -> Path:
        if self._db.in_memory:
            raise SnapshotUnsupportedError("In-memory traffic databases cannot be snapshotted")
        return Path(self._db.db_path)

    def backup(self) -> SnapshotInfo:
        """Checkpoint the store and copy its file into the snapshot directory.

        Raises:
            SnapshotUnsupportedError: For in-memory stores.
            SnapshotError: If the copy fails.
            NotInitializedError: If the store is not open.
            StoreIOError: If the checkpoint fails.
        """
        with self._lock:
            db_file = self._database_file()
            self._db.checkpoint()

            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
            target = self.snapshot_dir / f"{SNAPSHOT_PREFIX}{stamp}{SNAPSHOT_SUFFIX}"
            try:
                _atomic_copy(db_file, target)
            except OSError as e:
                raise SnapshotError(f"Failed to write snapshot {target}: {e}") from e

            info = _read_info(target)
            logger.info("Database snapshot written: %s (%d bytes)", info.name, info.size_bytes)

            self._prune()
            return info

    def list_snapshots(self) -> List[SnapshotInfo]:
        """List snapshots, newest first."""
        if not self.snapshot_dir.exists():
            return []

        paths = [
            p
            for p in self.snapshot_dir.glob(f"{SNAPSHOT_PREFIX}*{SNAPSHOT_SUFFIX}")
            if p.is_file()
        ]
        # The UTC stamp in the name sorts chronologically
        return [_read_info(p) for p in sorted(paths, key=lambda p: p.name, reverse=True)]

    def _prune(self) -> None:
        if self.keep == 0:
            return
        for info in self.list_snapshots()[self.keep:]:
            try:
                info.path.unlink()
                logger.debug("Pruned old snapshot %s", info.name)
            except OSError as e:
                logger.warning("Could not remove old snapshot %s: %s", info.name, e)

    def restore(self, name: Optional[str] = None) -> SnapshotInfo:
        """Replace the database file with a snapshot and reopen the store.

        Args:
            name: Snapshot file name. If None, restores the newest snapshot.

        Raises:
            SnapshotUnsupportedError: For in-memory stores.
            SnapshotNotFoundError: If no matching snapshot exists.
            SnapshotError: If the copy fails. The previous database, with
                its write-ahead log, is reopened in that case.
            StoreInitError: If the store cannot be reopened afterwards.
        """
        with self._lock:
            db_file = self._database_file()
            snapshots = self.list_snapshots()
            if name is not None:
                snapshots = [s for s in snapshots if s.name == name]
            if not snapshots:
                raise SnapshotNotFoundError(f"Snapshot not found: {name}" if name else "No snapshots available")
            source = snapshots[0]

            logger.info("Restoring database from snapshot %s", source.name)
            self._db.close()
            try:
                _atomic_copy(source.path, db_file)
                # The old log belongs to the replaced file
                wal_file = db_file.with_name(db_file.name + ".wal")
                if wal_file.exists():
                    wal_file.unlink()
            except OSError as e:
                raise SnapshotError(f"Failed to restore snapshot {source.name}: {e}") from e
            finally:
                self._db.initialize()

            logger.info("Database successfully restored from %s", source.name)
            return source
