"""
Test fixtures for the Orbiter traffic store and API.

Provides file-backed and in-memory stores with a controllable clock, and a
FastAPI TestClient wired to a store in a temporary directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from orbiter.api.server import create_app
from orbiter.config.runtime_config import OrbiterConfig, reset_config
from orbiter.runtime.db import TrafficDB

# 2024-03-10T12:00:00Z
BASE_TIME = 1710072000
SECONDS_PER_DAY = 86400

ADMIN_KEY = "test-admin-key"


class FakeClock:
    """Callable clock returning a settable time in seconds."""

    def __init__(self, now: float = BASE_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance_days(self, days: int) -> None:
        self.now += days * SECONDS_PER_DAY


@pytest.fixture(autouse=True)
def _reset_config_cache():
    """Ensure each test reads runtime.yaml fresh."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "traffic.duckdb"


@pytest.fixture
def traffic_db(db_path: Path, clock: FakeClock) -> Iterator[TrafficDB]:
    """An initialized file-backed store; closed after the test."""
    db = TrafficDB(db_path, clock=clock)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def memory_db(clock: FakeClock) -> Iterator[TrafficDB]:
    """An initialized in-memory store; closed after the test."""
    db = TrafficDB(clock=clock)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def app_config(tmp_path: Path, db_path: Path) -> OrbiterConfig:
    return OrbiterConfig(
        db_path=db_path,
        admin_key=ADMIN_KEY,
        snapshot_dir=tmp_path / "snapshots",
        snapshot_interval_seconds=0,
        snapshot_keep=5,
    )


@pytest.fixture
def client(app_config: OrbiterConfig, traffic_db: TrafficDB) -> Iterator[TestClient]:
    """TestClient for an app serving ``traffic_db``."""
    app = create_app(config=app_config, db=traffic_db)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict:
    return {"X-Orbiter-Analytics-Token": ADMIN_KEY}
