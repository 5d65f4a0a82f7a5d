"""Tests for database schema invariants.

Invariants:
1. Participant addresses are unique
2. Detail rows unique per (day, station_id, participant_id)
3. accepted_measurement_count never exceeds total_measurement_count
4. Set tables (active stations, subnets, daily participants) reject duplicates
"""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from station_stats.db.schema import (
    Base,
    DailyParticipant,
    Participant,
    RecentActiveStation,
    RecentStationDetail,
)

DAY = date(2026, 3, 10)


class TestSchemaCreation:
    """Test that schema can be created without errors."""

    def test_all_tables_created(self, engine):
        """All required tables should exist after creation."""
        table_names = Base.metadata.tables.keys()
        expected_tables = {
            "participants",
            "recent_station_details",
            "recent_active_stations",
            "recent_participant_subnets",
            "daily_participants",
            "daily_platform_stats",
            "monthly_active_station_count",
            "top_measurement_participants_yesterday",
        }
        assert expected_tables == set(table_names)


class TestParticipantUniqueness:
    """Invariant: one participant row per address."""

    def test_ids_assigned_from_one(self, session):
        """First participant gets id 1."""
        session.add(Participant(address="0x10"))
        session.commit()

        assert session.query(Participant).one().id == 1

    def test_duplicate_address_rejected(self, session):
        """Same address twice should be rejected."""
        session.add(Participant(address="0x10"))
        session.commit()

        session.add(Participant(address="0x10"))
        with pytest.raises(IntegrityError):
            session.commit()


class TestStationDetailInvariants:
    """Invariants on recent_station_details."""

    def _participant(self, session) -> int:
        participant = Participant(address="0x10")
        session.add(participant)
        session.commit()
        return participant.id

    def test_duplicate_key_rejected(self, session):
        """Second row for the same (day, station, participant) should be rejected."""
        pid = self._participant(session)
        session.add(
            RecentStationDetail(
                day=DAY,
                station_id="station1",
                participant_id=pid,
                accepted_measurement_count=1,
                total_measurement_count=1,
            )
        )
        session.commit()

        # Drop the persistent copy so the duplicate reaches the database
        session.expunge_all()
        session.add(
            RecentStationDetail(
                day=DAY,
                station_id="station1",
                participant_id=pid,
                accepted_measurement_count=0,
                total_measurement_count=1,
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()

    def test_accepted_above_total_rejected(self, session):
        """accepted_measurement_count > total_measurement_count violates the check."""
        pid = self._participant(session)
        session.add(
            RecentStationDetail(
                day=DAY,
                station_id="station1",
                participant_id=pid,
                accepted_measurement_count=2,
                total_measurement_count=1,
            )
        )
        with pytest.raises(IntegrityError):
            session.commit()


class TestSetTables:
    """Set-semantics tables keep one row per key."""

    def test_duplicate_active_station_rejected(self, session):
        session.add(RecentActiveStation(day=DAY, station_id="station1"))
        session.commit()

        session.expunge_all()
        session.add(RecentActiveStation(day=DAY, station_id="station1"))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_same_station_on_different_days_allowed(self, session):
        session.add_all(
            [
                RecentActiveStation(day=DAY, station_id="station1"),
                RecentActiveStation(day=date(2026, 3, 11), station_id="station1"),
            ]
        )
        session.commit()

        assert session.query(RecentActiveStation).count() == 2

    def test_duplicate_daily_participant_rejected(self, session):
        participant = Participant(address="0x10")
        session.add(participant)
        session.commit()
        pid = participant.id

        session.add(DailyParticipant(day=DAY, participant_id=pid))
        session.commit()

        session.expunge_all()
        session.add(DailyParticipant(day=DAY, participant_id=pid))
        with pytest.raises(IntegrityError):
            session.commit()
