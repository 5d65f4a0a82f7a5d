"""Scheduled rollup jobs over the detail tables.

- aggregate_and_clean_up_recent_data: daily platform summaries, built
  from the detail and subnet rows it deletes
- update_monthly_active_station_count: monthly distinct active stations,
  built from the active-station rows it deletes
- update_top_measurement_participants: rebuilds yesterday's leaderboard

The cleanup jobs delete first and summarize exactly what the delete
returned, so rows committed by a concurrent ingestion are either consumed
and counted or left for the next run. Everything happens inside the
caller's transaction; a failure rolls back both the delete and the
summary. Re-running a job once its input rows are gone is a no-op.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta

from station_stats.core.dates import month_start, utc_today
from station_stats.db import repo
from station_stats.db.repo import DbSession
from station_stats.models.domain import (
    DailyPlatformStatsEntity,
    MonthlyActiveStationCountEntity,
    StationDetailEntity,
)

logger = logging.getLogger(__name__)

# Today and yesterday stay at full detail; anything older is rolled up.
RETENTION_DAYS = 2


def _summarize_days(
    details: Iterable[StationDetailEntity],
    subnets: Iterable[tuple[date, str]],
) -> list[DailyPlatformStatsEntity]:
    """Build one summary per day that has detail rows.

    Pure function - no database access.
    """
    details_by_day: dict[date, list[StationDetailEntity]] = defaultdict(list)
    for detail in details:
        details_by_day[detail.day].append(detail)

    subnets_by_day: dict[date, set[str]] = defaultdict(set)
    for day, subnet in subnets:
        subnets_by_day[day].add(subnet)

    return [
        DailyPlatformStatsEntity(
            day=day,
            accepted_measurement_count=sum(d.accepted_measurement_count for d in rows),
            total_measurement_count=sum(d.total_measurement_count for d in rows),
            station_count=len({d.station_id for d in rows}),
            participant_address_count=len({d.participant_id for d in rows}),
            inet_group_count=len(subnets_by_day[day]),
        )
        for day, rows in sorted(details_by_day.items())
    ]


def aggregate_and_clean_up_recent_data(
    session: DbSession, *, today: date | None = None
) -> list[DailyPlatformStatsEntity]:
    """Roll detail rows older than the retention window into daily summaries.

    Deletes every detail row with day <= today - RETENTION_DAYS, then the
    subnet rows of the days those rows belong to. Sums accepted/total
    counts and counts distinct stations, participants and subnets over
    the deleted rows, and upserts one daily_platform_stats row per day.
    Subnet rows of days without detail rows are left alone.

    Args:
        session: Database session (caller commits).
        today: Reference date. Defaults to today (UTC).

    Returns:
        Summaries written by this run (empty when nothing was eligible).
    """
    if today is None:
        today = utc_today()
    cutoff = today - timedelta(days=RETENTION_DAYS)

    details = repo.delete_station_details_up_to(session, cutoff)
    days = sorted({d.day for d in details})
    subnets = repo.delete_participant_subnets_on(session, days)

    summaries = _summarize_days(details, subnets)
    repo.upsert_daily_platform_stats(session, summaries)

    if summaries:
        logger.info(
            f"Rolled up {len(summaries)} day(s) up to {cutoff}: deleted "
            f"{len(details)} station detail and {len(subnets)} subnet rows"
        )
    return summaries


def _count_stations_per_month(
    active_stations: list[tuple[date, str]],
) -> list[MonthlyActiveStationCountEntity]:
    """Count distinct stations per calendar month.

    Pure function - no database access.
    """
    stations_by_month: dict[date, set[str]] = defaultdict(set)
    for day, station_id in active_stations:
        stations_by_month[month_start(day)].add(station_id)

    return [
        MonthlyActiveStationCountEntity(month=month, station_count=len(stations))
        for month, stations in sorted(stations_by_month.items())
    ]


def update_monthly_active_station_count(
    session: DbSession, *, today: date | None = None
) -> list[MonthlyActiveStationCountEntity]:
    """Summarize active stations for every fully elapsed month.

    Normally this is just the previous month; older months left behind
    by missed runs are summarized too. Counts come from the rows the
    delete returned.

    Args:
        session: Database session (caller commits).
        today: Reference date. Defaults to today (UTC).

    Returns:
        Monthly counts written by this run (empty when nothing was eligible).
    """
    if today is None:
        today = utc_today()
    current_month = month_start(today)

    active_stations = repo.delete_active_stations_before(session, current_month)
    counts = _count_stations_per_month(active_stations)
    if not counts:
        return []

    repo.upsert_monthly_active_station_counts(session, counts)

    logger.info(
        f"Updated monthly active station count for {len(counts)} month(s) before "
        f"{current_month}: deleted {len(active_stations)} active station rows"
    )
    return counts


def update_top_measurement_participants(session: DbSession, *, today: date | None = None) -> int:
    """Rebuild the leaderboard for yesterday from the detail tables.

    Full replace, not incremental. Reads detail rows, so it must run before
    the rollup removes them (yesterday is inside the retention window, so
    the default schedule is safe either way).

    Args:
        session: Database session (caller commits).
        today: Reference date. Defaults to today (UTC).

    Returns:
        Number of leaderboard rows written.
    """
    if today is None:
        today = utc_today()
    yesterday = today - timedelta(days=1)

    written = repo.replace_top_measurement_participants(session, yesterday)
    logger.info(f"Refreshed top measurement participants for {yesterday}: {written} rows")
    return written
