"""Database schema for station statistics.

Detail tables (``recent_*``) hold fine-grained rows awaiting rollup.
Summary tables hold the coarse aggregates that replace them.
Composite primary keys enforce the one-row-per-key invariants.
"""

from datetime import date

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Participant(Base):
    """Participant address mapped to a stable surrogate id.

    Created on first sighting, never updated or deleted.
    AUTOINCREMENT keeps ids from being reused.
    """

    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    __table_args__ = {"sqlite_autoincrement": True}


class RecentStationDetail(Base):
    """Per-day accepted/total measurement counts for a station and participant.

    Invariant: one row per (day, station_id, participant_id).
    """

    __tablename__ = "recent_station_details"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    station_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id"), primary_key=True
    )
    accepted_measurement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_measurement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "accepted_measurement_count >= 0 "
            "AND accepted_measurement_count <= total_measurement_count",
            name="ck_station_detail_counts",
        ),
    )


class RecentActiveStation(Base):
    """Station that produced at least one measurement on a day."""

    __tablename__ = "recent_active_stations"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    station_id: Mapped[str] = mapped_column(String(128), primary_key=True)


class RecentParticipantSubnet(Base):
    """Distinct subnet a participant was observed from on a day."""

    __tablename__ = "recent_participant_subnets"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id"), primary_key=True
    )
    subnet: Mapped[str] = mapped_column(String(128), primary_key=True)


class DailyParticipant(Base):
    """Participant seen on a day, regardless of evaluation outcome."""

    __tablename__ = "daily_participants"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    participant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("participants.id"), primary_key=True
    )


class DailyPlatformStats(Base):
    """Platform-wide summary of one day of consumed detail rows."""

    __tablename__ = "daily_platform_stats"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    accepted_measurement_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_measurement_count: Mapped[int] = mapped_column(Integer, nullable=False)
    station_count: Mapped[int] = mapped_column(Integer, nullable=False)
    participant_address_count: Mapped[int] = mapped_column(Integer, nullable=False)
    inet_group_count: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "accepted_measurement_count <= total_measurement_count",
            name="ck_daily_platform_stats_counts",
        ),
    )


class MonthlyActiveStationCount(Base):
    """Distinct stations active during a calendar month.

    ``month`` is the first day of the month.
    """

    __tablename__ = "monthly_active_station_count"

    month: Mapped[date] = mapped_column(Date, primary_key=True)
    station_count: Mapped[int] = mapped_column(Integer, nullable=False)


class TopMeasurementParticipantYesterday(Base):
    """Leaderboard row for the most recent fully elapsed day.

    Replaced wholesale on every refresh.
    """

    __tablename__ = "top_measurement_participants_yesterday"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    participant_address: Mapped[str] = mapped_column(String(128), primary_key=True)
    inet_group_count: Mapped[int] = mapped_column(Integer, nullable=False)
    station_count: Mapped[int] = mapped_column(Integer, nullable=False)
    accepted_measurement_count: Mapped[int] = mapped_column(Integer, nullable=False)
