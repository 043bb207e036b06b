#!/usr/bin/env python3
"""
FastAPI server for Orbiter traffic analytics.

Exposes the traffic store over HTTP: ingestion, reports, export, disk
monitoring and database snapshots. The store handle is created once per
application and shared through ``app.state``.

Usage:
    from orbiter.api.server import create_app
    app = create_app()

    # Or run directly:
    python -m orbiter.api.server --host 0.0.0.0 --port 5000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from orbiter import __version__
from orbiter.config.runtime_config import OrbiterConfig, load_config
from orbiter.runtime.db import TrafficDB
from orbiter.runtime.errors import NotInitializedError, StoreInitError, StoreIOError
from orbiter.runtime.snapshot import SnapshotError, SnapshotManager

from .deps import get_traffic_db, require_token
from .routes import analytics_router, disk_router, snapshot_router

logger = logging.getLogger(__name__)

HEALTH_MESSAGE = "Hello from orbit!"


async def _periodic_backup(manager: SnapshotManager, interval_seconds: int) -> None:
    """Write a snapshot every ``interval_seconds``; failures are logged only."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            info = await asyncio.to_thread(manager.backup)
            logger.info("Scheduled snapshot written: %s", info.name)
        except (SnapshotError, NotInitializedError, StoreIOError) as e:
            logger.error("Scheduled snapshot failed: %s", e)


# =============================================================================
# FastAPI Application Factory
# =============================================================================


def create_app(
    config: Optional[OrbiterConfig] = None,
    db: Optional[TrafficDB] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Resolved configuration. If None, loads it from runtime.yaml
            and the environment.
        db: Store handle to serve. If None, one is created at
            ``config.db_path``. It is initialized on startup if needed and
            closed on shutdown.

    Returns:
        Configured FastAPI application.
    """
    config = config or load_config()
    db = db if db is not None else TrafficDB(config.db_path)
    snapshot_manager = SnapshotManager(db, config.snapshot_dir, keep=config.snapshot_keep)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        On startup:
        - Initialize the traffic store
        - Start the periodic snapshot task (file-backed stores only)

        On shutdown:
        - Cancel the snapshot task
        - Close the traffic store
        """
        logger.info("Orbiter analytics server starting...")
        if not db.is_ready:
            db.initialize()
        logger.info("Traffic store ready at %s", db.db_path)

        backup_task: Optional[asyncio.Task] = None
        if config.snapshot_interval_seconds > 0 and not db.in_memory:
            backup_task = asyncio.create_task(
                _periodic_backup(snapshot_manager, config.snapshot_interval_seconds)
            )
            logger.info("Snapshots scheduled every %ds into %s", config.snapshot_interval_seconds, config.snapshot_dir)

        yield

        logger.info("Orbiter analytics server shutting down...")
        if backup_task is not None:
            backup_task.cancel()
            try:
                await backup_task
            except asyncio.CancelledError:
                pass
            logger.info("Snapshot task stopped")

        db.close()
        logger.info("Traffic store closed")

    app = FastAPI(
        title="Orbiter Analytics API",
        description="Traffic ingestion and reporting for Orbiter sites.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.traffic_db = db
    app.state.snapshot_manager = snapshot_manager

    app.include_router(analytics_router)
    app.include_router(disk_router)
    app.include_router(snapshot_router)

    # -------------------------------------------------------------------------
    # Error Mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(NotInitializedError)
    async def not_initialized_handler(request: Request, exc: NotInitializedError):
        logger.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"error": "not_initialized", "message": str(exc)},
        )

    @app.exception_handler(StoreIOError)
    async def store_io_handler(request: Request, exc: StoreIOError):
        logger.error("%s %s: storage failure: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"message": "Server error"})

    @app.exception_handler(StoreInitError)
    async def store_init_handler(request: Request, exc: StoreInitError):
        logger.error("%s %s: store could not be opened: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"message": "Server error"})

    # -------------------------------------------------------------------------
    # Request Logging Middleware
    # -------------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(
            "%s %s %s %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    @app.get("/health", response_class=PlainTextResponse)
    async def health_check() -> str:
        return HEALTH_MESSAGE

    @app.get("/health/details", dependencies=[Depends(require_token)])
    def health_details(traffic_db: TrafficDB = Depends(get_traffic_db)) -> Dict[str, Any]:
        """Store readiness and total event count."""
        ready = traffic_db.is_ready
        return {
            "ready": ready,
            "count": traffic_db.count_events() if ready else None,
            "db_path": str(traffic_db.db_path),
        }

    return app


def main():
    """Run the server with uvicorn."""
    import uvicorn

    config = load_config()

    parser = argparse.ArgumentParser(description="Orbiter Analytics API Server")
    parser.add_argument("--host", default=config.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.port, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not config.admin_key:
        logger.warning("No admin key configured (ORBITER_ADMIN_KEY); all protected routes will return 401")

    app = create_app(config=config)
    logger.info("Starting Orbiter analytics server at http://%s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
