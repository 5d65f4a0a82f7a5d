"""Domain models for station statistics.

Pure Python dataclasses returned by the repository layer.
These models are independent of SQLAlchemy.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


# ============================================================================
# Detail Domain
# ============================================================================


@dataclass
class StationDetailEntity:
    """Per-day counts for one station/participant pair."""

    day: date
    station_id: str
    participant_id: int
    accepted_measurement_count: int
    total_measurement_count: int


@dataclass(frozen=True)
class StationDetailDelta:
    """Counts to add to a detail row for one ingestion batch."""

    station_id: str
    participant_id: int
    accepted_measurement_count: int
    total_measurement_count: int


# ============================================================================
# Summary Domain
# ============================================================================


@dataclass
class DailyPlatformStatsEntity:
    """Platform-wide summary for one day."""

    day: date
    accepted_measurement_count: int
    total_measurement_count: int
    station_count: int
    participant_address_count: int
    inet_group_count: int


@dataclass
class MonthlyActiveStationCountEntity:
    """Distinct active stations for one calendar month."""

    month: date
    station_count: int


@dataclass
class TopParticipantEntity:
    """Leaderboard row for the most recent fully elapsed day."""

    day: date
    participant_address: str
    inet_group_count: int
    station_count: int
    accepted_measurement_count: int
