"""
Database session management for Velo.

Provides SQLAlchemy engine and session factory with proper
connection pooling configuration. Uses the settings from config.py.

The engine is created lazily on first use so importing the models
(e.g. from tests or Alembic) never opens a connection or requires a
database driver.

Usage:
    from velo.db import get_session

    with get_session() as session:
        teams = session.query(Team).all()
        session.add(new_team)
        # Commits automatically on exit, rolls back on exception
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from velo.config import settings


def create_db_engine() -> Engine:
    """
    Create a new SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool for efficient reuse
    - Echo mode disabled (set LOG_LEVEL=DEBUG for SQL logging)
    - Pre-ping to verify connections before use (handles stale connections)
    """
    return create_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,  # Verify connection is alive before using
        echo=settings.log_level == "DEBUG",  # Log SQL only in debug mode
    )


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get or create the shared engine instance."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


# Session factory; bound to the engine on first use
SessionLocal = sessionmaker(
    autocommit=False,  # We'll handle commits explicitly
    autoflush=False,  # Don't auto-flush before queries (more control)
)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on successful exit, rolls back on exception.
    This is the recommended way to use sessions in scripts and jobs.

    Raises:
        Any exception from the database operation (after rollback)
    """
    session = SessionLocal(bind=get_engine())
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
