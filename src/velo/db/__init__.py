"""
Database module for Velo.

Provides SQLAlchemy ORM models and session management.

Usage:
    from velo.db import get_session, Team, Match

    with get_session() as session:
        teams = session.query(Team).all()
"""

from velo.db.models import (
    Base,
    JobRun,
    Match,
    Player,
    Team,
    Tournament,
)
from velo.db.session import SessionLocal, get_engine, get_session

__all__ = [
    # Base
    "Base",
    # Models
    "Team",
    "Player",
    "Tournament",
    "Match",
    "JobRun",
    # Session
    "get_session",
    "get_engine",
    "SessionLocal",
]
