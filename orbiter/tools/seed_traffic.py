#!/usr/bin/env python3
"""
seed_traffic.py - Fill a traffic store with synthetic events.

Generates plausible traffic for one site over the last N days: weighted
referrers, a handful of paths, user agents and locations, and timestamps
that cluster toward the present.

Usage:
    python -m orbiter.tools.seed_traffic --db-path traffic.duckdb
    python -m orbiter.tools.seed_traffic --site-id demo --records 5000 --days 7
"""

from __future__ import annotations

import argparse
import logging
import random
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from orbiter.config.runtime_config import load_config
from orbiter.runtime.db import TrafficDB
from orbiter.runtime.types import SummaryReport, TrafficRecord

logger = logging.getLogger(__name__)

DEFAULT_SITE_ID = "test-site-1"
DEFAULT_NUM_RECORDS = 1200
DEFAULT_DAYS = 30
PROGRESS_EVERY = 100

MS_PER_DAY = 24 * 60 * 60 * 1000

# Referrer -> relative weight; None is direct traffic
REFERRER_WEIGHTS: Dict[Optional[str], int] = {
    "https://google.com": 35,
    "https://twitter.com": 20,
    "https://facebook.com": 15,
    "https://github.com": 10,
    "https://hn.algolia.com": 8,
    "https://linkedin.com": 7,
    None: 5,
}

PATHS: List[str] = ["/", "/blog", "/about", "/contact", "/products", "/pricing", "/docs", "/api"]

USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_7_1 like Mac OS X) AppleWebKit/605.1.15",
    "Mozilla/5.0 (Linux; Android 11; Pixel 5) AppleWebKit/537.36",
]

LOCATIONS: List[Tuple[str, str]] = [
    ("US", "San Francisco"),
    ("US", "New York"),
    ("GB", "London"),
    ("DE", "Berlin"),
    ("JP", "Tokyo"),
    ("IN", "Bangalore"),
    ("BR", "Sao Paulo"),
]


def _random_ipv4(rng: random.Random) -> str:
    return ".".join(str(rng.randrange(256)) for _ in range(4))


def make_record(
    rng: random.Random,
    site_id: str,
    start_time: int,
    end_time: int,
) -> TrafficRecord:
    """Build one synthetic record with a timestamp inside the window."""
    referrers = list(REFERRER_WEIGHTS)
    referrer = rng.choices(referrers, weights=[REFERRER_WEIGHTS[r] for r in referrers])[0]
    country, city = rng.choice(LOCATIONS)
    # Squaring biases offsets toward zero, i.e. toward end_time
    offset = (end_time - start_time) * rng.random() ** 2
    return TrafficRecord(
        site_id=site_id,
        path=rng.choice(PATHS),
        user_agent=rng.choice(USER_AGENTS),
        ip_address=_random_ipv4(rng),
        country=country,
        city=city,
        referrer=referrer,
        timestamp=int(end_time - offset),
    )


def generate_test_data(
    db: TrafficDB,
    site_id: str = DEFAULT_SITE_ID,
    num_records: int = DEFAULT_NUM_RECORDS,
    days: int = DEFAULT_DAYS,
    rng: Optional[random.Random] = None,
) -> SummaryReport:
    """Append ``num_records`` synthetic events and return the window's summary.

    Args:
        db: An initialized TrafficDB.
        site_id: Site the events belong to.
        num_records: Number of events to append.
        days: Width of the time window ending now.
        rng: Random source; pass a seeded one for reproducible data.
    """
    rng = rng or random.Random()
    end_time = int(time.time() * 1000)
    start_time = end_time - days * MS_PER_DAY

    logger.info("Generating %d events for site %s over %d days", num_records, site_id, days)
    for i in range(num_records):
        db.append(make_record(rng, site_id, start_time, end_time))
        if i % PROGRESS_EVERY == 0:
            logger.info("Generated %d records...", i)

    stats = db.get_summary_stats(site_id, start_time, end_time)
    logger.info(
        "Test data generation complete: %d requests, %d unique visitors",
        stats.total_requests,
        stats.unique_visitors,
    )
    for item in stats.top_referrers:
        logger.info("  %s: %d visits", item.referrer, item.count)
    return stats


def main():
    config = load_config()

    parser = argparse.ArgumentParser(description="Seed a traffic store with synthetic events")
    parser.add_argument("--db-path", type=Path, default=config.db_path, help="DuckDB file to write")
    parser.add_argument("--site-id", default=DEFAULT_SITE_ID, help="Site id for the events")
    parser.add_argument("--records", type=int, default=DEFAULT_NUM_RECORDS, help="Number of events")
    parser.add_argument("--days", type=int, default=DEFAULT_DAYS, help="Window width in days")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    args = parser.parse_args()

    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    db = TrafficDB(args.db_path)
    db.initialize()
    try:
        generate_test_data(
            db,
            site_id=args.site_id,
            num_records=args.records,
            days=args.days,
            rng=random.Random(args.seed),
        )
    finally:
        db.close()


if __name__ == "__main__":
    main()
