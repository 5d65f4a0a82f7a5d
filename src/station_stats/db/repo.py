"""Repository pattern for database operations.

Encapsulates all SQLAlchemy queries, keeping aggregation logic pure.
Returns domain models (not SQLAlchemy entities) to external callers.

Nothing here commits: the caller owns the transaction.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import case, delete, distinct, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from station_stats.db.schema import (
    DailyParticipant,
    DailyPlatformStats,
    MonthlyActiveStationCount,
    Participant,
    RecentActiveStation,
    RecentParticipantSubnet,
    RecentStationDetail,
    TopMeasurementParticipantYesterday,
)
from station_stats.models.domain import (
    DailyPlatformStatsEntity,
    MonthlyActiveStationCountEntity,
    StationDetailDelta,
    StationDetailEntity,
    TopParticipantEntity,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session as DbSession
else:
    DbSession = Session

# Re-export for external use
__all__ = ["DbSession"]


def _upsert(session: DbSession, model):
    """Build a dialect-specific INSERT that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert(model)
    if dialect == "postgresql":
        return postgresql.insert(model)
    raise NotImplementedError(f"ON CONFLICT upserts are not supported for dialect {dialect!r}")


def _greatest(left, right):
    """Portable two-argument GREATEST."""
    return case((left > right, left), else_=right)


# ============================================================================
# Converters: SQLAlchemy -> Domain
# ============================================================================


def _detail_to_entity(row: RecentStationDetail) -> StationDetailEntity:
    """Convert SQLAlchemy RecentStationDetail to domain entity."""
    return StationDetailEntity(
        day=row.day,
        station_id=row.station_id,
        participant_id=row.participant_id,
        accepted_measurement_count=row.accepted_measurement_count,
        total_measurement_count=row.total_measurement_count,
    )


def _daily_stats_to_entity(row: DailyPlatformStats) -> DailyPlatformStatsEntity:
    """Convert SQLAlchemy DailyPlatformStats to domain entity."""
    return DailyPlatformStatsEntity(
        day=row.day,
        accepted_measurement_count=row.accepted_measurement_count,
        total_measurement_count=row.total_measurement_count,
        station_count=row.station_count,
        participant_address_count=row.participant_address_count,
        inet_group_count=row.inet_group_count,
    )


def _top_participant_to_entity(row: TopMeasurementParticipantYesterday) -> TopParticipantEntity:
    """Convert SQLAlchemy leaderboard row to domain entity."""
    return TopParticipantEntity(
        day=row.day,
        participant_address=row.participant_address,
        inet_group_count=row.inet_group_count,
        station_count=row.station_count,
        accepted_measurement_count=row.accepted_measurement_count,
    )


# ============================================================================
# Participant Repository
# ============================================================================


def get_participant_ids(session: DbSession, addresses: Collection[str]) -> dict[str, int]:
    """Get ids for the known addresses among ``addresses``."""
    if not addresses:
        return {}
    rows = session.execute(
        select(Participant.address, Participant.id).where(
            Participant.address.in_(list(addresses))
        )
    ).all()
    return {address: participant_id for address, participant_id in rows}


def insert_participants(session: DbSession, addresses: Iterable[str]) -> None:
    """Insert participants in one statement, skipping addresses that already exist.

    Rows are inserted in the given order, so ids follow that order.
    """
    values = [{"address": address} for address in addresses]
    if not values:
        return
    stmt = _upsert(session, Participant).values(values)
    session.execute(stmt.on_conflict_do_nothing(index_elements=["address"]))


# ============================================================================
# Detail Repository
# ============================================================================


def add_station_details(
    session: DbSession, day: date, deltas: Iterable[StationDetailDelta]
) -> None:
    """Add counts to detail rows, creating rows that do not exist yet.

    The increment happens in the database (col = col + excluded.col),
    never read-modify-write, so concurrent ingestion does not lose updates.
    """
    values = [
        {
            "day": day,
            "station_id": delta.station_id,
            "participant_id": delta.participant_id,
            "accepted_measurement_count": delta.accepted_measurement_count,
            "total_measurement_count": delta.total_measurement_count,
        }
        for delta in deltas
    ]
    if not values:
        return
    table = RecentStationDetail.__table__
    stmt = _upsert(session, RecentStationDetail).values(values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["day", "station_id", "participant_id"],
        set_={
            "accepted_measurement_count": table.c.accepted_measurement_count
            + stmt.excluded.accepted_measurement_count,
            "total_measurement_count": table.c.total_measurement_count
            + stmt.excluded.total_measurement_count,
        },
    )
    session.execute(stmt)


def add_active_stations(session: DbSession, day: date, station_ids: Iterable[str]) -> None:
    """Record stations as active on ``day`` (set union)."""
    values = [{"day": day, "station_id": station_id} for station_id in station_ids]
    if not values:
        return
    stmt = _upsert(session, RecentActiveStation).values(values)
    session.execute(stmt.on_conflict_do_nothing(index_elements=["day", "station_id"]))


def add_participant_subnets(
    session: DbSession, day: date, participant_subnets: Iterable[tuple[int, str]]
) -> None:
    """Record (participant_id, subnet) pairs seen on ``day`` (set union)."""
    values = [
        {"day": day, "participant_id": participant_id, "subnet": subnet}
        for participant_id, subnet in participant_subnets
    ]
    if not values:
        return
    stmt = _upsert(session, RecentParticipantSubnet).values(values)
    session.execute(
        stmt.on_conflict_do_nothing(index_elements=["day", "participant_id", "subnet"])
    )


def add_daily_participants(
    session: DbSession, day: date, participant_ids: Iterable[int]
) -> None:
    """Record participants as seen on ``day`` (set union)."""
    values = [{"day": day, "participant_id": pid} for pid in participant_ids]
    if not values:
        return
    stmt = _upsert(session, DailyParticipant).values(values)
    session.execute(stmt.on_conflict_do_nothing(index_elements=["day", "participant_id"]))


def get_station_details(session: DbSession, day: date) -> list[StationDetailEntity]:
    """Get detail rows for a day, ordered by station then participant."""
    rows = session.scalars(
        select(RecentStationDetail)
        .where(RecentStationDetail.day == day)
        .order_by(RecentStationDetail.station_id, RecentStationDetail.participant_id)
        .execution_options(populate_existing=True)
    ).all()
    return [_detail_to_entity(r) for r in rows]


# ============================================================================
# Daily Rollup Repository
# ============================================================================


def delete_station_details_up_to(session: DbSession, cutoff: date) -> list[StationDetailEntity]:
    """Delete detail rows for every day <= ``cutoff`` and return them.

    The returned rows are exactly the ones removed, so a summary built
    from them never misses a row committed by a concurrent ingestion.
    """
    rows = session.execute(
        delete(RecentStationDetail)
        .where(RecentStationDetail.day <= cutoff)
        .returning(
            RecentStationDetail.day,
            RecentStationDetail.station_id,
            RecentStationDetail.participant_id,
            RecentStationDetail.accepted_measurement_count,
            RecentStationDetail.total_measurement_count,
        )
    ).all()
    return [
        StationDetailEntity(
            day=r.day,
            station_id=r.station_id,
            participant_id=r.participant_id,
            accepted_measurement_count=r.accepted_measurement_count,
            total_measurement_count=r.total_measurement_count,
        )
        for r in rows
    ]


def delete_participant_subnets_on(
    session: DbSession, days: Collection[date]
) -> list[tuple[date, str]]:
    """Delete subnet rows for the given days and return (day, subnet) pairs."""
    if not days:
        return []
    rows = session.execute(
        delete(RecentParticipantSubnet)
        .where(RecentParticipantSubnet.day.in_(list(days)))
        .returning(RecentParticipantSubnet.day, RecentParticipantSubnet.subnet)
    ).all()
    return [(day, subnet) for day, subnet in rows]


def upsert_daily_platform_stats(
    session: DbSession, summaries: Iterable[DailyPlatformStatsEntity]
) -> None:
    """Insert daily summaries, merging into any existing row for the same day.

    Sums are added. Distinct counts cannot be merged exactly, so the larger
    value is kept.
    """
    values = [
        {
            "day": s.day,
            "accepted_measurement_count": s.accepted_measurement_count,
            "total_measurement_count": s.total_measurement_count,
            "station_count": s.station_count,
            "participant_address_count": s.participant_address_count,
            "inet_group_count": s.inet_group_count,
        }
        for s in summaries
    ]
    if not values:
        return
    table = DailyPlatformStats.__table__
    stmt = _upsert(session, DailyPlatformStats).values(values)
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=["day"],
        set_={
            "accepted_measurement_count": table.c.accepted_measurement_count
            + excluded.accepted_measurement_count,
            "total_measurement_count": table.c.total_measurement_count
            + excluded.total_measurement_count,
            "station_count": _greatest(table.c.station_count, excluded.station_count),
            "participant_address_count": _greatest(
                table.c.participant_address_count, excluded.participant_address_count
            ),
            "inet_group_count": _greatest(table.c.inet_group_count, excluded.inet_group_count),
        },
    )
    session.execute(stmt)


def get_daily_platform_stats(session: DbSession, day: date) -> DailyPlatformStatsEntity | None:
    """Get the platform summary for a day."""
    row = session.get(DailyPlatformStats, day, populate_existing=True)
    return _daily_stats_to_entity(row) if row else None


# ============================================================================
# Monthly Repository
# ============================================================================


def upsert_monthly_active_station_counts(
    session: DbSession, counts: Iterable[MonthlyActiveStationCountEntity]
) -> None:
    """Insert monthly counts, keeping the larger value on conflict."""
    values = [{"month": c.month, "station_count": c.station_count} for c in counts]
    if not values:
        return
    table = MonthlyActiveStationCount.__table__
    stmt = _upsert(session, MonthlyActiveStationCount).values(values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["month"],
        set_={"station_count": _greatest(table.c.station_count, stmt.excluded.station_count)},
    )
    session.execute(stmt)


def delete_active_stations_before(session: DbSession, before: date) -> list[tuple[date, str]]:
    """Delete active-station rows for every day strictly before ``before``.

    Returns:
        The (day, station_id) pairs that were deleted.
    """
    rows = session.execute(
        delete(RecentActiveStation)
        .where(RecentActiveStation.day < before)
        .returning(RecentActiveStation.day, RecentActiveStation.station_id)
    ).all()
    return [(day, station_id) for day, station_id in rows]


def get_monthly_active_station_count(
    session: DbSession, month: date
) -> MonthlyActiveStationCountEntity | None:
    """Get the active-station count for a month (first day of month)."""
    row = session.get(MonthlyActiveStationCount, month, populate_existing=True)
    if row is None:
        return None
    return MonthlyActiveStationCountEntity(month=row.month, station_count=row.station_count)


# ============================================================================
# Leaderboard Repository
# ============================================================================


def replace_top_measurement_participants(session: DbSession, day: date) -> int:
    """Rebuild the leaderboard table from the detail rows of ``day``.

    Deletes every existing row, then inserts one row per participant
    with activity on ``day``.

    Returns:
        Number of leaderboard rows written.
    """
    subnets = (
        select(
            RecentParticipantSubnet.participant_id.label("participant_id"),
            func.count(distinct(RecentParticipantSubnet.subnet)).label("inet_group_count"),
        )
        .where(RecentParticipantSubnet.day == day)
        .group_by(RecentParticipantSubnet.participant_id)
        .subquery()
    )
    leaderboard = (
        select(
            RecentStationDetail.day,
            Participant.address,
            func.coalesce(func.max(subnets.c.inet_group_count), 0),
            func.count(distinct(RecentStationDetail.station_id)),
            func.sum(RecentStationDetail.accepted_measurement_count),
        )
        .join(Participant, Participant.id == RecentStationDetail.participant_id)
        .outerjoin(subnets, subnets.c.participant_id == RecentStationDetail.participant_id)
        .where(RecentStationDetail.day == day)
        .group_by(RecentStationDetail.day, Participant.address)
    )

    session.execute(delete(TopMeasurementParticipantYesterday))
    result = session.execute(
        insert(TopMeasurementParticipantYesterday.__table__).from_select(
            [
                "day",
                "participant_address",
                "inet_group_count",
                "station_count",
                "accepted_measurement_count",
            ],
            leaderboard,
        )
    )
    return result.rowcount


def get_top_measurement_participants(session: DbSession) -> list[TopParticipantEntity]:
    """Get the leaderboard, most accepted measurements first, ties by address."""
    rows = session.scalars(
        select(TopMeasurementParticipantYesterday)
        .order_by(
            TopMeasurementParticipantYesterday.accepted_measurement_count.desc(),
            TopMeasurementParticipantYesterday.participant_address,
        )
        .execution_options(populate_existing=True)
    ).all()
    return [_top_participant_to_entity(r) for r in rows]
