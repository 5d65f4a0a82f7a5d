"""Tests for the database refresh orchestrator.

Invariants:
1. Jobs run strictly in the given order
2. A failing job is logged and does not stop later jobs
3. Each job commits or rolls back its own session
"""

import functools
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from station_stats.aggregation.platform_stats import update_platform_stats
from station_stats.db import repo
from station_stats.db.schema import Participant
from station_stats.models.types import Measurement
from station_stats.worker.orchestrator import (
    DEFAULT_JOBS,
    JobResult,
    job_name,
    refresh_database,
)


class TestRefreshDatabase:
    """Sequencing and failure isolation."""

    def test_runs_provided_functions_and_handles_errors(self, session_factory, caplog):
        executed = []

        def success_function(session):
            executed.append("success_function")

        def error_function(session):
            executed.append("error_function")
            raise RuntimeError("Test error")

        def after_error_function(session):
            executed.append("after_error_function")

        with caplog.at_level(logging.ERROR, logger="station_stats.worker.orchestrator"):
            results = refresh_database(
                session_factory,
                [success_function, error_function, after_error_function],
            )

        assert executed == ["success_function", "error_function", "after_error_function"]
        assert [(r.name, r.ok) for r in results] == [
            ("success_function", True),
            ("error_function", False),
            ("after_error_function", True),
        ]
        assert str(results[1].error) == "Test error"

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "Error running function error_function" in errors[0].getMessage()
        assert "Test error" in errors[0].getMessage()

    def test_failed_job_is_rolled_back(self, engine, session_factory):
        def add_first(session):
            session.add(Participant(address="0x10"))

        def add_then_fail(session):
            session.add(Participant(address="0x20"))
            session.flush()
            raise RuntimeError("boom")

        refresh_database(session_factory, [add_first, add_then_fail])

        with Session(engine) as check:
            assert [p.address for p in check.query(Participant).all()] == ["0x10"]

    def test_session_factory_failure_is_isolated(self):
        calls = []

        def broken_factory():
            raise ConnectionError("database unavailable")

        def job(session):
            calls.append(session)

        results = refresh_database(broken_factory, [job, job])

        assert calls == []
        assert results == [
            JobResult(name="job", ok=False, error=results[0].error),
            JobResult(name="job", ok=False, error=results[1].error),
        ]
        assert isinstance(results[0].error, ConnectionError)

    def test_failed_rollback_does_not_stop_schedule(self, session_factory, caplog):
        executed = []

        def factory_with_broken_rollback():
            session = session_factory()

            def rollback():
                raise ConnectionError("connection lost")

            session.rollback = rollback
            return session

        def error_function(session):
            executed.append("error_function")
            raise RuntimeError("Test error")

        def after_error_function(session):
            executed.append("after_error_function")

        with caplog.at_level(logging.ERROR, logger="station_stats.worker.orchestrator"):
            results = refresh_database(
                factory_with_broken_rollback, [error_function, after_error_function]
            )

        assert executed == ["error_function", "after_error_function"]
        assert [(r.name, r.ok) for r in results] == [
            ("error_function", False),
            ("after_error_function", True),
        ]
        assert str(results[0].error) == "Test error"
        messages = [r.getMessage() for r in caplog.records]
        assert any("Error cleaning up session for function error_function" in m for m in messages)

    def test_empty_schedule(self, session_factory):
        assert refresh_database(session_factory, []) == []


class TestDefaultSchedule:
    """End-to-end run of the default jobs."""

    def test_default_jobs_refresh_all_tables(self, session_factory, today):
        yesterday = today - timedelta(days=1)
        old_day = today - timedelta(days=40)
        with session_factory() as session:
            update_platform_stats(
                session,
                [Measurement(stationId="station1", participantAddress="0x10", taskingEvaluation="OK", inet_group="subnet1", consensusEvaluation="MAJORITY_RESULT")],
                day=old_day,
            )
            update_platform_stats(
                session,
                [Measurement(stationId="station2", participantAddress="0x20", taskingEvaluation="OK", inet_group="subnet2", consensusEvaluation="MAJORITY_RESULT")],
                day=yesterday,
            )
            session.commit()

        jobs = [functools.partial(job, today=today) for job in DEFAULT_JOBS]
        results = refresh_database(session_factory, jobs)

        assert [r.name for r in results] == [
            "update_top_measurement_participants",
            "aggregate_and_clean_up_recent_data",
            "update_monthly_active_station_count",
        ]
        assert all(r.ok for r in results)

        with session_factory() as session:
            assert [p.participant_address for p in repo.get_top_measurement_participants(session)] == ["0x20"]

            old_stats = repo.get_daily_platform_stats(session, old_day)
            assert old_stats.accepted_measurement_count == 1
            assert old_stats.inet_group_count == 1
            assert repo.get_station_details(session, old_day) == []

            monthly = repo.get_monthly_active_station_count(session, old_day.replace(day=1))
            assert monthly.station_count == 1
            assert len(repo.get_station_details(session, yesterday)) == 1


class TestJobName:
    def test_unwraps_partial(self):
        def some_job(session, *, today=None):
            pass

        assert job_name(functools.partial(some_job, today=None)) == "some_job"
