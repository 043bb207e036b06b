"""
Tests for database snapshots.

These tests verify:
1. Backups write a copy of the checkpointed database file
2. Listing is newest first and pruning keeps the newest N
3. Restore swaps the file in and reopens the store
4. Failure cases leave the store usable
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from orbiter.runtime.db import TrafficDB
from orbiter.runtime.snapshot import (
    SNAPSHOT_PREFIX,
    SNAPSHOT_SUFFIX,
    SnapshotError,
    SnapshotManager,
    SnapshotNotFoundError,
    SnapshotUnsupportedError,
    snapshot_info_to_dict,
)
from orbiter.runtime.types import TrafficRecord


@pytest.fixture
def snapshot_dir(tmp_path):
    return tmp_path / "snapshots"


@pytest.fixture
def manager(traffic_db, snapshot_dir):
    return SnapshotManager(traffic_db, snapshot_dir, keep=3)


class TestBackup:
    """Tests for SnapshotManager.backup."""

    def test_backup_writes_file(self, traffic_db, manager, snapshot_dir):
        traffic_db.append(TrafficRecord(site_id="s"))
        info = manager.backup()

        assert info.path.exists()
        assert info.path.parent == snapshot_dir
        assert info.name.startswith(SNAPSHOT_PREFIX)
        assert info.name.endswith(SNAPSHOT_SUFFIX)
        assert info.size_bytes > 0

    def test_backup_contains_events(self, traffic_db, manager, clock):
        traffic_db.append(TrafficRecord(site_id="s"))
        traffic_db.append(TrafficRecord(site_id="s"))
        info = manager.backup()

        copy = TrafficDB(info.path, clock=clock)
        copy.initialize()
        try:
            assert copy.count_events("s") == 2
        finally:
            copy.close()

    def test_store_usable_after_backup(self, traffic_db, manager):
        manager.backup()
        traffic_db.append(TrafficRecord(site_id="s"))
        assert traffic_db.count_events() == 1

    def test_list_newest_first_and_prune(self, manager):
        created = [manager.backup().name for _ in range(5)]
        listed = [s.name for s in manager.list_snapshots()]
        assert listed == list(reversed(created))[:3]

    def test_keep_zero_retains_everything(self, traffic_db, snapshot_dir):
        manager = SnapshotManager(traffic_db, snapshot_dir, keep=0)
        for _ in range(4):
            manager.backup()
        assert len(manager.list_snapshots()) == 4

    def test_list_without_directory(self, manager):
        assert manager.list_snapshots() == []

    def test_in_memory_store_rejected(self, memory_db, snapshot_dir):
        manager = SnapshotManager(memory_db, snapshot_dir)
        with pytest.raises(SnapshotUnsupportedError):
            manager.backup()

    def test_snapshot_info_to_dict(self, manager):
        data = snapshot_info_to_dict(manager.backup())
        assert set(data) == {"name", "size_bytes", "created_at"}


class TestRestore:
    """Tests for SnapshotManager.restore."""

    def test_restore_newest(self, traffic_db, manager):
        traffic_db.append(TrafficRecord(site_id="s"))
        manager.backup()
        traffic_db.append(TrafficRecord(site_id="s"))
        traffic_db.append(TrafficRecord(site_id="s"))
        assert traffic_db.count_events() == 3

        manager.restore()

        assert traffic_db.is_ready
        assert traffic_db.count_events() == 1

    def test_restore_named(self, traffic_db, manager):
        traffic_db.append(TrafficRecord(site_id="s"))
        first = manager.backup()
        traffic_db.append(TrafficRecord(site_id="s"))
        manager.backup()

        restored = manager.restore(first.name)

        assert restored.name == first.name
        assert traffic_db.count_events() == 1

    def test_appends_continue_after_restore(self, traffic_db, manager):
        first_id = traffic_db.append(TrafficRecord(site_id="s"))
        manager.backup()
        manager.restore()
        assert traffic_db.append(TrafficRecord(site_id="s")) > first_id

    def test_no_snapshots(self, traffic_db, manager):
        traffic_db.append(TrafficRecord(site_id="s"))
        with pytest.raises(SnapshotNotFoundError):
            manager.restore()
        assert traffic_db.is_ready
        assert traffic_db.count_events() == 1

    def test_unknown_name(self, traffic_db, manager):
        manager.backup()
        with pytest.raises(SnapshotNotFoundError):
            manager.restore("orbiter-analytics-db-missing.duckdb")
        assert traffic_db.is_ready

    def test_copy_failure_keeps_current_database(self, traffic_db, manager):
        """A failed copy reopens the previous file with its recent appends."""
        traffic_db.append(TrafficRecord(site_id="s"))
        manager.backup()
        traffic_db.append(TrafficRecord(site_id="s"))
        traffic_db.append(TrafficRecord(site_id="s"))

        with patch("orbiter.runtime.snapshot._atomic_copy", side_effect=OSError("disk full")):
            with pytest.raises(SnapshotError) as exc_info:
                manager.restore()

        assert not isinstance(exc_info.value, SnapshotNotFoundError)
        assert isinstance(exc_info.value.__cause__, OSError)
        assert traffic_db.is_ready
        assert traffic_db.count_events() == 3

    def test_backup_copy_failure(self, traffic_db, manager):
        with patch("orbiter.runtime.snapshot._atomic_copy", side_effect=OSError("disk full")):
            with pytest.raises(SnapshotError):
                manager.backup()
        assert manager.list_snapshots() == []
        assert traffic_db.is_ready
