#!/usr/bin/env python3
"""Run one refresh cycle of the platform statistics jobs.

Usage:
    python scripts/refresh_stats.py [--today 2026-10-17]

Intended to be triggered by an external scheduler (cron, systemd timer).
Runs the leaderboard refresh, the daily rollup and the monthly active
station count in sequence. Exits non-zero if any job failed.
"""

from __future__ import annotations

import argparse
import functools
import logging
import sys
from datetime import date
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from station_stats.db.session import get_session_factory, init_db  # noqa: E402
from station_stats.worker.orchestrator import DEFAULT_JOBS, refresh_database  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Refresh platform statistics")
    parser.add_argument("--today", type=date.fromisoformat, help="Reference date (default: today UTC)")
    parser.add_argument("--database-url", help="SQLAlchemy URL (default: $STATION_STATS_DATABASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )

    jobs = DEFAULT_JOBS
    if args.today is not None:
        jobs = tuple(functools.partial(job, today=args.today) for job in DEFAULT_JOBS)

    init_db(args.database_url)
    results = refresh_database(get_session_factory(args.database_url), jobs)
    return 0 if all(r.ok for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
