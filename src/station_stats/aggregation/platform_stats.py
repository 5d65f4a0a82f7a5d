"""Ingestion of measurement batches into per-day detail tables.

Per batch:
- every measurement adds 1 to the station/participant total count
- accepted measurements (OK + MAJORITY_RESULT) also add 1 to the accepted count
- every measurement marks its station active for the day
- every evaluated measurement records the participant's subnet for the day
- every participant in the batch is recorded as seen for the day

Counts are additive: ingesting the same batch twice doubles them.
Deduplicating batches is the ingestion pipeline's job.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from station_stats.core.dates import utc_today
from station_stats.core.identity import map_participants_to_ids
from station_stats.db import repo
from station_stats.db.repo import DbSession
from station_stats.models.domain import StationDetailDelta
from station_stats.models.types import Measurement

logger = logging.getLogger(__name__)


@dataclass
class BatchFold:
    """Everything one batch contributes to the detail tables."""

    accepted: Counter = field(default_factory=Counter)
    total: Counter = field(default_factory=Counter)
    active_stations: set[str] = field(default_factory=set)
    participant_subnets: set[tuple[int, str]] = field(default_factory=set)

    def deltas(self) -> list[StationDetailDelta]:
        """Per (station, participant) count increments, in key order."""
        return [
            StationDetailDelta(
                station_id=station_id,
                participant_id=participant_id,
                accepted_measurement_count=self.accepted[(station_id, participant_id)],
                total_measurement_count=total,
            )
            for (station_id, participant_id), total in sorted(self.total.items())
        ]


def _as_measurement(raw: Measurement | Mapping[str, Any]) -> Measurement:
    if isinstance(raw, Measurement):
        return raw
    return Measurement.model_validate(raw)


def fold_measurements(
    measurements: Iterable[Measurement],
    participants_map: Mapping[str, int],
) -> BatchFold:
    """Fold a batch into detail-table contributions.

    Pure function - no database access.

    Raises:
        ValueError: If a measurement's participant address is not in
            ``participants_map``.
    """
    fold = BatchFold()
    for m in measurements:
        try:
            participant_id = participants_map[m.participant_address]
        except KeyError:
            raise ValueError(
                f"Participant address not mapped to an id: {m.participant_address}"
            ) from None

        key = (m.station_id, participant_id)
        fold.total[key] += 1
        if m.is_accepted:
            fold.accepted[key] += 1

        fold.active_stations.add(m.station_id)

        if m.was_evaluated and m.inet_group:
            fold.participant_subnets.add((participant_id, m.inet_group))

    return fold


def update_stations_and_participants(
    session: DbSession,
    measurements: Iterable[Measurement | Mapping[str, Any]],
    participants_map: Mapping[str, int],
    *,
    day: date | None = None,
) -> None:
    """Add a batch to recent_station_details, recent_active_stations and
    recent_participant_subnets.

    The whole batch is validated against ``participants_map`` before any
    row is written. Run inside one transaction per call.

    Args:
        session: Database session (caller commits).
        measurements: Measurement batch.
        participants_map: Address -> participant id for every address in the batch.
        day: Day to record against. Defaults to today (UTC).
    """
    if day is None:
        day = utc_today()

    fold = fold_measurements((_as_measurement(m) for m in measurements), participants_map)

    repo.add_station_details(session, day, fold.deltas())
    repo.add_active_stations(session, day, sorted(fold.active_stations))
    repo.add_participant_subnets(session, day, sorted(fold.participant_subnets))

    logger.debug(
        f"Updated {len(fold.total)} station details, {len(fold.active_stations)} active "
        f"stations and {len(fold.participant_subnets)} participant subnets for {day}"
    )


def update_daily_participants(
    session: DbSession,
    participant_ids: Iterable[int],
    *,
    day: date | None = None,
) -> None:
    """Record participants as seen on ``day``. Repeated ids are no-ops."""
    if day is None:
        day = utc_today()
    repo.add_daily_participants(session, day, sorted(set(participant_ids)))


def update_platform_stats(
    session: DbSession,
    measurements: Iterable[Measurement | Mapping[str, Any]],
    *,
    day: date | None = None,
) -> None:
    """Ingest a measurement batch.

    Maps participant addresses to ids, then updates the detail tables and
    daily participants. Every participant in the batch counts as seen,
    whatever the evaluation outcome.

    Args:
        session: Database session (caller commits).
        measurements: Measurement batch.
        day: Day to record against. Defaults to today (UTC).
    """
    if day is None:
        day = utc_today()

    batch = [_as_measurement(m) for m in measurements]
    if not batch:
        return

    participants_map = map_participants_to_ids(session, {m.participant_address for m in batch})
    update_stations_and_participants(session, batch, participants_map, day=day)
    update_daily_participants(session, participants_map.values(), day=day)

    logger.info(
        f"Ingested {len(batch)} measurements from {len(participants_map)} participants for {day}"
    )
