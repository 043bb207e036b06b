"""Runtime configuration for the Orbiter server and tools.

Values come from ``runtime.yaml`` next to this module; environment variables
take precedence over YAML config.

Usage:
    from orbiter.config.runtime_config import load_config

    config = load_config()
    db = TrafficDB(config.db_path)

Environment overrides:
    ORBITER_DB_PATH            database.path
    ORBITER_STREAM_BATCH_SIZE  database.stream_batch_size
    ORBITER_HOST / PORT        server.host / server.port
    ORBITER_ADMIN_KEY          auth.admin_key
    ORBITER_SNAPSHOT_DIR       snapshot.dir
    ORBITER_SNAPSHOT_INTERVAL  snapshot.interval_seconds
    ORBITER_LOG_LEVEL          logging.level
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None


@dataclass
class OrbiterConfig:
    """Resolved configuration values (YAML + environment)."""

    db_path: Path = Path("traffic.duckdb")
    stream_batch_size: int = 1000
    host: str = "127.0.0.1"
    port: int = 5000
    admin_key: Optional[str] = None
    default_window_days: int = 30
    disk_warning_percent: int = 85
    disk_critical_percent: int = 95
    snapshot_dir: Path = Path("snapshots")
    snapshot_interval_seconds: int = 3600
    snapshot_keep: int = 24
    log_level: str = "INFO"


def _load_yaml() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            _cached_config = yaml.safe_load(f) or {}
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    return {
        "version": "1.0",
        "database": {"path": "traffic.duckdb", "stream_batch_size": 1000},
        "server": {"host": "127.0.0.1", "port": 5000},
        "auth": {"admin_key": None},
        "reports": {"default_window_days": 30},
        "disk": {"warning_percent": 85, "critical_percent": 95},
        "snapshot": {"dir": "snapshots", "interval_seconds": 3600, "keep": 24},
        "logging": {"level": "INFO"},
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name)
    return value if isinstance(value, dict) else {}


def _env_int(env: Mapping[str, str], key: str, fallback: int) -> int:
    """Read an integer override, falling back (with a warning) on bad input."""
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer. Using %d.", key, raw, fallback)
        return fallback


def load_config(env: Optional[Mapping[str, str]] = None) -> OrbiterConfig:
    """Resolve the effective configuration.

    Args:
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        OrbiterConfig with environment overrides applied.
    """
    env = os.environ if env is None else env
    raw = _load_yaml()

    database = _section(raw, "database")
    server = _section(raw, "server")
    auth = _section(raw, "auth")
    reports = _section(raw, "reports")
    disk = _section(raw, "disk")
    snapshot = _section(raw, "snapshot")
    logging_cfg = _section(raw, "logging")

    defaults = OrbiterConfig()

    batch_size = _env_int(
        env, "ORBITER_STREAM_BATCH_SIZE", int(database.get("stream_batch_size", defaults.stream_batch_size))
    )
    if batch_size < 1:
        logger.warning("stream_batch_size %d is below 1. Using %d.", batch_size, defaults.stream_batch_size)
        batch_size = defaults.stream_batch_size

    admin_key = env.get("ORBITER_ADMIN_KEY") or auth.get("admin_key") or None

    return OrbiterConfig(
        db_path=Path(env.get("ORBITER_DB_PATH") or database.get("path") or defaults.db_path),
        stream_batch_size=batch_size,
        host=env.get("ORBITER_HOST") or server.get("host") or defaults.host,
        port=_env_int(env, "PORT", int(server.get("port", defaults.port))),
        admin_key=str(admin_key) if admin_key else None,
        default_window_days=int(reports.get("default_window_days", defaults.default_window_days)),
        disk_warning_percent=int(disk.get("warning_percent", defaults.disk_warning_percent)),
        disk_critical_percent=int(disk.get("critical_percent", defaults.disk_critical_percent)),
        snapshot_dir=Path(env.get("ORBITER_SNAPSHOT_DIR") or snapshot.get("dir") or defaults.snapshot_dir),
        snapshot_interval_seconds=max(
            0,
            _env_int(
                env,
                "ORBITER_SNAPSHOT_INTERVAL",
                int(snapshot.get("interval_seconds", defaults.snapshot_interval_seconds)),
            ),
        ),
        snapshot_keep=int(snapshot.get("keep", defaults.snapshot_keep)),
        log_level=str(env.get("ORBITER_LOG_LEVEL") or logging_cfg.get("level") or defaults.log_level).upper(),
    )
