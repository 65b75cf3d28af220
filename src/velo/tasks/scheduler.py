"""
Interval scheduler for the registered jobs.

Every job gets an IntervalTrigger from its settings field and also fires
once immediately at start-up. Missed ticks are coalesced into one run and a
job never runs concurrently with itself inside this process; across
processes the advisory lock in run_job() does the same.

Usage:
    from velo.tasks.scheduler import build_scheduler

    build_scheduler().start()  # blocks
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from velo.config import Settings, settings as default_settings
from velo.tasks.jobs import build_registry, run_job
from velo.tasks.stages import StageRegistry

logger = logging.getLogger(__name__)


def build_scheduler(
    registry: Optional[StageRegistry] = None,
    runner: Callable = run_job,
    settings: Optional[Settings] = None,
    jobs: Optional[list[str]] = None,
) -> BlockingScheduler:
    """
    Create a BlockingScheduler with one interval job per registered job.

    Args:
        registry: Job registry. Default: build_registry().
        runner: Called with the job name on every tick. Default: run_job.
        settings: Source of the interval settings. Default: global settings.
        jobs: Job names to schedule. Default: all enabled jobs.

    Returns:
        The configured (not yet started) scheduler
    """
    registry = registry or build_registry()
    settings = settings or default_settings
    scheduler = BlockingScheduler(timezone=timezone.utc)
    now = datetime.now(timezone.utc)

    for stage in registry.resolve(include=jobs):
        if stage.interval_setting is None:
            continue
        minutes = getattr(settings, stage.interval_setting)
        scheduler.add_job(
            runner,
            trigger=IntervalTrigger(minutes=minutes),
            args=[stage.name],
            id=stage.name,
            name=stage.description or stage.name,
            replace_existing=True,
            next_run_time=now,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=minutes * 60,
        )
        logger.info("Scheduled %s every %d minutes", stage.name, minutes)

    return scheduler
