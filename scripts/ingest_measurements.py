#!/usr/bin/env python3
"""Ingest a batch of evaluated measurements.

Usage:
    python scripts/ingest_measurements.py measurements.json [--day 2026-10-16]

The file holds a JSON array of measurement objects as emitted by the
evaluation pipeline (stationId, participantAddress, inet_group,
taskingEvaluation, consensusEvaluation). The whole batch is ingested in
one transaction.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from pydantic import TypeAdapter, ValidationError  # noqa: E402

from station_stats.aggregation.platform_stats import update_platform_stats  # noqa: E402
from station_stats.db.session import get_db_session, init_db  # noqa: E402
from station_stats.models.types import Measurement  # noqa: E402

logger = logging.getLogger("ingest_measurements")

_batch_adapter = TypeAdapter(list[Measurement])


def load_measurements(path: Path) -> list[Measurement]:
    """Read and validate a JSON array of measurements."""
    return _batch_adapter.validate_python(json.loads(path.read_text()))


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingest a measurement batch")
    parser.add_argument("path", type=Path, help="JSON file with an array of measurements")
    parser.add_argument("--day", type=date.fromisoformat, help="Day to record against (default: today UTC)")
    parser.add_argument("--database-url", help="SQLAlchemy URL (default: $STATION_STATS_DATABASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )

    try:
        measurements = load_measurements(args.path)
    except ValidationError as e:
        logger.error(f"Invalid measurement batch in {args.path}: {e}")
        return 1

    init_db(args.database_url)
    with get_db_session(args.database_url) as session:
        update_platform_stats(session, measurements, day=args.day)

    logger.info(f"Ingested {len(measurements)} measurements from {args.path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
