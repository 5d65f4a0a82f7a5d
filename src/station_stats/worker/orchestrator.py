"""Scheduled database refresh.

Runs the rollup jobs strictly in sequence. Each job gets its own session
from the factory: committed on success, rolled back on failure, always
closed. A failing job is logged and skipped so the rest of the schedule
still runs.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from station_stats.aggregation.rollup import (
    aggregate_and_clean_up_recent_data,
    update_monthly_active_station_count,
    update_top_measurement_participants,
)

logger = logging.getLogger(__name__)

Job = Callable[[Session], Any]

# Leaderboard first: it reads yesterday's detail rows.
DEFAULT_JOBS: tuple[Job, ...] = (
    update_top_measurement_participants,
    aggregate_and_clean_up_recent_data,
    update_monthly_active_station_count,
)


@dataclass
class JobResult:
    """Outcome of one job in a refresh cycle."""

    name: str
    ok: bool
    error: Exception | None = None


def job_name(job: Job) -> str:
    """Readable name for a job, unwrapping functools.partial."""
    while isinstance(job, functools.partial):
        job = job.func
    return getattr(job, "__name__", repr(job))


def run_job(session_factory: Callable[[], Session], job: Job) -> JobResult:
    """Run one job in its own session and transaction."""
    name = job_name(job)
    try:
        session = session_factory()
    except Exception as e:
        logger.error(f"Error opening session for function {name}: {e}", exc_info=True)
        return JobResult(name=name, ok=False, error=e)

    try:
        job(session)
        session.commit()
    except Exception as e:
        logger.error(f"Error running function {name}: {e}", exc_info=True)
        _discard_session(session, name)
        return JobResult(name=name, ok=False, error=e)

    session.close()
    logger.debug(f"Finished {name}")
    return JobResult(name=name, ok=True)


def _discard_session(session: Session, name: str) -> None:
    """Roll back and close a failed job's session without raising."""
    for step in (session.rollback, session.close):
        try:
            step()
        except Exception as e:
            logger.error(f"Error cleaning up session for function {name}: {e}", exc_info=True)


def refresh_database(
    session_factory: Callable[[], Session],
    functions_to_run: Sequence[Job] | None = None,
) -> list[JobResult]:
    """Run every job in order, isolating failures per job.

    Args:
        session_factory: Zero-argument callable returning a new Session.
        functions_to_run: Jobs taking a Session. Defaults to DEFAULT_JOBS.

    Returns:
        One JobResult per job, in execution order.
    """
    if functions_to_run is None:
        functions_to_run = DEFAULT_JOBS

    results = [run_job(session_factory, job) for job in functions_to_run]

    failed = [r.name for r in results if not r.ok]
    if failed:
        logger.warning(f"Database refresh finished with {len(failed)} failed job(s): {failed}")
    else:
        logger.info(f"Database refresh finished: {len(results)} job(s) succeeded")
    return results
