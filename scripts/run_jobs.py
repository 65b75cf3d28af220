#!/usr/bin/env python3
"""
Run the rating pipeline jobs.

One-shot runs (exit code 1 if the job failed):
    python scripts/run_jobs.py sync
    python scripts/run_jobs.py sync --no-backfill
    python scripts/run_jobs.py refresh
    python scripts/run_jobs.py recompute

Long-running scheduler (every job fires at start-up, then on its interval):
    python scripts/run_jobs.py schedule
    python scripts/run_jobs.py schedule --jobs sync_upcoming,recompute_ratings
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from velo.config import settings
from velo.tasks.jobs import (
    RECOMPUTE_RATINGS,
    REFRESH_PENDING,
    SYNC_UPCOMING,
    build_registry,
    run_job,
)
from velo.tasks.scheduler import build_scheduler

COMMANDS = {
    "sync": SYNC_UPCOMING,
    "refresh": REFRESH_PENDING,
    "recompute": RECOMPUTE_RATINGS,
}

logger = logging.getLogger("velo.run_jobs")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run team rating pipeline jobs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "command",
        choices=[*COMMANDS, "schedule"],
        help="Job to run once, or 'schedule' to run all jobs on their intervals.",
    )
    parser.add_argument(
        "--no-backfill",
        action="store_true",
        help="sync: do not fetch the history of newly created teams.",
    )
    parser.add_argument(
        "--jobs",
        default=None,
        help="schedule: comma-separated job names. Default: all jobs.",
    )
    parser.add_argument(
        "--metrics-json",
        default=None,
        help="Write the job result JSON to this path (one-shot runs only).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format=settings.log_format,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if args.command == "schedule":
        jobs = [j.strip() for j in args.jobs.split(",")] if args.jobs else None
        scheduler = build_scheduler(registry=build_registry(), jobs=jobs)
        logger.info("Starting scheduler; Ctrl+C to stop")
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped")
        return 0

    result = run_job(
        COMMANDS[args.command],
        options={"backfill": not args.no_backfill},
    )

    payload = result.to_dict()
    if args.metrics_json:
        path = Path(args.metrics_json)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    print(f"{result.stage_name}: {result.status} in {result.duration_s:.1f}s")
    for key, value in result.metrics.items():
        print(f"  {key}: {value}")
    if result.error:
        print(f"  error: {result.error}")
    return 1 if result.status == "failed" else 0


if __name__ == "__main__":
    raise SystemExit(main())
