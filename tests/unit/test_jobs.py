"""Tests for job registration, the job runner, the scheduler and the CLI."""

from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import select

from scripts import run_jobs
from velo.config import Settings
from velo.db.models import JobRun, Match
from velo.tasks import jobs
from velo.tasks.jobs import (
    RECOMPUTE_RATINGS,
    REFRESH_PENDING,
    SYNC_UPCOMING,
    build_registry,
    run_job,
)
from velo.tasks.runtime import StageResult, utc_now
from velo.tasks.scheduler import build_scheduler


def _job_runs(session, name):
    return session.scalars(select(JobRun).where(JobRun.job_name == name)).all()


def test_registry_defaults():
    registry = build_registry()

    assert [s.name for s in registry.resolve()] == [SYNC_UPCOMING, REFRESH_PENDING, RECOMPUTE_RATINGS]
    assert registry.get(SYNC_UPCOMING).interval_setting == "sync_interval_minutes"
    assert registry.get(RECOMPUTE_RATINGS).interval_setting == "recompute_interval_minutes"


class TestRunJob:

    def test_sync_records_success(self, db_session, session_factory, fake_source, test_engine):
        a = fake_source.add_team("1", "Alpha")
        b = fake_source.add_team("2", "Bravo")
        fake_source.add_match("100", a, b)

        result = run_job(
            SYNC_UPCOMING,
            session_factory=session_factory,
            source_factory=lambda: fake_source,
            engine=test_engine,
        )

        assert result.status == "success"
        assert result.metrics["matches_created"] == 1
        assert fake_source.closed
        assert db_session.scalars(select(Match)).one().external_id == "100"

        run = _job_runs(db_session, SYNC_UPCOMING)[0]
        assert run.status == "success"
        assert run.metrics_json["matches_created"] == 1
        assert run.ended_at >= run.started_at

    def test_skipped_records_make_run_partial(self, db_session, session_factory, fake_source, test_engine):
        a = fake_source.add_team("1", "Alpha")
        b = fake_source.add_team("2", "Bravo")
        fake_source.add_match("100", a, b)
        fake_source.add_match("101", a, b, start_time="not a date")

        result = run_job(
            SYNC_UPCOMING,
            session_factory=session_factory,
            source_factory=lambda: fake_source,
            engine=test_engine,
            options={"backfill": False},
        )

        assert result.status == "partial"
        assert result.metrics["skipped"] == 1
        assert fake_source.calls_to("get_team_match_history") == []

    def test_exception_records_failure(self, db_session, session_factory, fake_source, test_engine):
        async def _broken():
            raise RuntimeError("listing exploded")

        fake_source.list_upcoming_matches = _broken

        result = run_job(
            SYNC_UPCOMING,
            session_factory=session_factory,
            source_factory=lambda: fake_source,
            engine=test_engine,
        )

        assert result.status == "failed"
        assert "listing exploded" in result.error
        run = _job_runs(db_session, SYNC_UPCOMING)[0]
        assert run.status == "failed"
        assert "RuntimeError" in run.error_text

    def test_lock_held_records_skipped(self, db_session, session_factory, test_engine, monkeypatch):
        @contextmanager
        def _held(engine, job_name, timeout_seconds=0.0):
            raise TimeoutError(f"{job_name} is locked")
            yield

        monkeypatch.setattr(jobs, "job_lock", _held)

        result = run_job(RECOMPUTE_RATINGS, session_factory=session_factory, engine=test_engine)

        assert result.status == "skipped"
        assert _job_runs(db_session, RECOMPUTE_RATINGS)[0].status == "skipped"

    def test_recompute_runs_without_source(self, db_session, session_factory, test_engine):
        result = run_job(RECOMPUTE_RATINGS, session_factory=session_factory, engine=test_engine)

        assert result.status == "success"
        assert result.metrics["teams"] == 0


def test_scheduler_adds_interval_jobs():
    settings = Settings(
        sync_interval_minutes=5,
        refresh_interval_minutes=15,
        recompute_interval_minutes=60,
    )
    calls = []

    scheduler = build_scheduler(runner=calls.append, settings=settings)

    scheduled = {job.id: job for job in scheduler.get_jobs()}
    assert set(scheduled) == {SYNC_UPCOMING, REFRESH_PENDING, RECOMPUTE_RATINGS}
    assert scheduled[SYNC_UPCOMING].trigger.interval == timedelta(minutes=5)
    assert scheduled[RECOMPUTE_RATINGS].trigger.interval == timedelta(minutes=60)
    assert tuple(scheduled[REFRESH_PENDING].args) == (REFRESH_PENDING,)
    assert scheduled[SYNC_UPCOMING].max_instances == 1
    assert scheduled[SYNC_UPCOMING].coalesce is True
    assert calls == []


def test_scheduler_job_subset():
    scheduler = build_scheduler(runner=lambda name: None, jobs=[RECOMPUTE_RATINGS])

    assert [job.id for job in scheduler.get_jobs()] == [RECOMPUTE_RATINGS]


class TestCli:

    def test_parser(self):
        args = run_jobs._build_parser().parse_args(["sync", "--no-backfill"])

        assert args.command == "sync"
        assert args.no_backfill is True

    def test_failed_job_exit_code_and_metrics_file(self, monkeypatch, tmp_path):
        seen = {}

        def _fake_run_job(name, options=None):
            seen["name"] = name
            seen["options"] = options
            now = utc_now()
            return StageResult(
                stage_name=name, status="failed", started_at=now, ended_at=now,
                error="boom",
            )

        monkeypatch.setattr(run_jobs, "run_job", _fake_run_job)
        out = tmp_path / "metrics" / "sync.json"

        code = run_jobs.main(["sync", "--no-backfill", "--metrics-json", str(out)])

        assert code == 1
        assert seen == {"name": SYNC_UPCOMING, "options": {"backfill": False}}
        assert '"status": "failed"' in out.read_text()
