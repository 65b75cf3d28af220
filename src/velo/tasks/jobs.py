"""
Scheduled jobs and the runner that records them.

Three jobs are registered:
- sync_upcoming:     fetch new upcoming matches (plus new-team backfill)
- refresh_pending:   advance started matches to live/finished/cancelled
- recompute_ratings: rebuild ratings from full history and re-price odds

run_job() executes one job under its advisory lock, turns the outcome into a
StageResult (success / partial / failed / skipped) and stores it as a
JobRun row. A job that raises is recorded as failed and retried at the next
scheduled tick; it never takes the scheduler down.

Usage:
    from velo.tasks.jobs import run_job

    result = run_job("sync_upcoming")
    print(result.status, result.metrics)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from contextlib import AbstractContextManager
from typing import Any, Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from velo.config import settings
from velo.db.models import JobRun
from velo.db.session import get_engine, get_session
from velo.elo.calculator import EloParams
from velo.services.orchestrator import (
    recompute_ratings_and_odds,
    refresh_pending,
    sync_upcoming,
)
from velo.source.base import DataSource
from velo.source.vlr import VlrDataSource
from velo.tasks.locks import job_lock
from velo.tasks.runtime import StageContext, StageResult, utc_now
from velo.tasks.stages import StageDefinition, StageRegistry

logger = logging.getLogger(__name__)

SYNC_UPCOMING = "sync_upcoming"
REFRESH_PENDING = "refresh_pending"
RECOMPUTE_RATINGS = "recompute_ratings"

SessionFactory = Callable[[], AbstractContextManager[Session]]
SourceFactory = Callable[[], DataSource]


def _session_factory(ctx: StageContext) -> SessionFactory:
    return ctx.options.get("session_factory") or get_session


def _source_factory(ctx: StageContext) -> SourceFactory:
    return ctx.options.get("source_factory") or VlrDataSource


async def _run_sync_upcoming(ctx: StageContext) -> StageResult:
    async with _source_factory(ctx)() as source:
        with _session_factory(ctx)() as session:
            stats = await sync_upcoming(
                session, source, backfill=ctx.options.get("backfill", True),
            )
    return StageResult.from_counts(ctx, stats.to_metrics(), stats.skipped)


async def _run_refresh_pending(ctx: StageContext) -> StageResult:
    async with _source_factory(ctx)() as source:
        with _session_factory(ctx)() as session:
            stats = await refresh_pending(session, source)
    return StageResult.from_counts(ctx, stats.to_metrics(), stats.skipped)


def _run_recompute_ratings(ctx: StageContext) -> StageResult:
    params = ctx.options.get("params") or EloParams.from_settings()
    with _session_factory(ctx)() as session:
        stats = recompute_ratings_and_odds(session, params=params)
    return StageResult.from_counts(ctx, stats.to_metrics(), stats.skipped)


def build_registry() -> StageRegistry:
    registry = StageRegistry()
    registry.register(
        StageDefinition(
            name=SYNC_UPCOMING,
            runner=_run_sync_upcoming,
            description="Fetch new upcoming matches and backfill new teams.",
            interval_setting="sync_interval_minutes",
        )
    )
    registry.register(
        StageDefinition(
            name=REFRESH_PENDING,
            runner=_run_refresh_pending,
            description="Advance started matches to live, finished or cancelled.",
            interval_setting="refresh_interval_minutes",
        )
    )
    registry.register(
        StageDefinition(
            name=RECOMPUTE_RATINGS,
            runner=_run_recompute_ratings,
            description="Recompute all team ratings and upcoming match odds.",
            interval_setting="recompute_interval_minutes",
        )
    )
    return registry


def _execute_stage(stage: StageDefinition, ctx: StageContext) -> StageResult:
    outcome = stage.runner(ctx)
    if inspect.isawaitable(outcome):
        return asyncio.run(outcome)
    return outcome


def _save_job_run(session_factory: SessionFactory, result: StageResult) -> None:
    try:
        with session_factory() as session:
            session.add(
                JobRun(
                    job_name=result.stage_name,
                    status=result.status,
                    started_at=result.started_at,
                    ended_at=result.ended_at,
                    metrics_json=result.metrics,
                    error_text=result.error,
                )
            )
    except Exception:
        # Store unreachable: the result is still logged below
        logger.exception("Could not record run of %s", result.stage_name)


def run_job(
    name: str,
    *,
    registry: Optional[StageRegistry] = None,
    session_factory: Optional[SessionFactory] = None,
    source_factory: Optional[SourceFactory] = None,
    engine: Optional[Engine] = None,
    options: Optional[dict[str, Any]] = None,
) -> StageResult:
    """
    Run one registered job and record the outcome.

    Args:
        name: Job name (see build_registry)
        registry: Job registry. Default: build_registry().
        session_factory: Context manager factory yielding a Session that
                         commits on exit. Default: velo.db.get_session.
        source_factory: Callable returning a DataSource. Default: VlrDataSource.
        engine: Engine used for the job lock. Default: the shared engine.
        options: Extra job options (e.g. {"backfill": False}).

    Returns:
        StageResult. 'skipped' means another run of the job held the lock.

    Raises:
        KeyError: unknown job name
    """
    registry = registry or build_registry()
    stage = registry.get(name)
    session_factory = session_factory or get_session

    started_at = utc_now()
    ctx = StageContext(
        run_id=started_at.strftime("%Y%m%dT%H%M%SZ") + "-" + uuid.uuid4().hex[:8],
        stage_name=name,
        started_at=started_at,
        options={
            **(options or {}),
            "session_factory": session_factory,
            "source_factory": source_factory,
        },
    )
    logger.info("Starting job %s (run %s)", name, ctx.run_id)

    try:
        with job_lock(
            engine or get_engine(),
            name,
            timeout_seconds=settings.job_lock_timeout_seconds,
        ):
            result = _execute_stage(stage, ctx)
    except TimeoutError as exc:
        logger.warning("Job %s already running; skipping this tick", name)
        result = StageResult(
            stage_name=name,
            status="skipped",
            started_at=started_at,
            ended_at=utc_now(),
            error=str(exc),
        )
    except Exception as exc:
        logger.exception("Job %s failed", name)
        result = StageResult(
            stage_name=name,
            status="failed",
            started_at=started_at,
            ended_at=utc_now(),
            error=f"{type(exc).__name__}: {exc}",
        )

    _save_job_run(session_factory, result)
    logger.info(
        "Job %s finished: %s in %.1fs %s",
        name, result.status, result.duration_s, result.metrics,
    )
    return result
