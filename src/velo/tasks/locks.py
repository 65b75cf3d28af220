"""
Per-job advisory locks.

Two runs of the same job (an overlapping scheduler tick, or a manual run
next to the scheduler) must not work on the store at the same time. On
PostgreSQL each job holds a session-level advisory lock keyed on its name
for the length of the run. Other databases have no advisory locks; there
the store's unique constraints are the only guard.
"""

from __future__ import annotations

import hashlib
import logging
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

LOCK_NAMESPACE = "velo"


def advisory_lock_key(name: str) -> int:
    """Map a lock name to a signed 64-bit key (pg advisory locks take bigint)."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def _try_lock(connection: Connection, key: int) -> bool:
    return bool(
        connection.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar()
    )


@contextmanager
def job_lock(
    engine: Engine,
    job_name: str,
    timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 1.0,
) -> Generator[bool, None, None]:
    """
    Hold the advisory lock for one job while the block runs.

    Args:
        engine: Engine of the job's database
        job_name: Registered job name
        timeout_seconds: How long to wait for a run already holding the
                         lock. 0 gives up immediately.
        poll_interval_seconds: Pause between attempts while waiting

    Yields:
        True when the lock is held, False on databases without advisory locks

    Raises:
        TimeoutError: another run of the same job still holds the lock
    """
    if engine.dialect.name != "postgresql":
        logger.debug("No advisory locks on %s; running %s unlocked", engine.dialect.name, job_name)
        yield False
        return

    key = advisory_lock_key(f"{LOCK_NAMESPACE}:{job_name}")
    deadline = time.monotonic() + max(timeout_seconds, 0.0)

    # The lock belongs to this connection, so it stays open for the whole run
    with engine.connect() as connection:
        while not _try_lock(connection, key):
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Job {job_name} is already running (lock {key})")
            time.sleep(max(poll_interval_seconds, 0.05))

        logger.debug("Acquired lock for %s", job_name)
        try:
            yield True
        finally:
            connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
