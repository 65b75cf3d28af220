"""
SQLAlchemy ORM models for Velo.

This module defines all database tables and their relationships.

Key design decisions:
- Every row is namespaced by ``game`` so one database can host several titles
- Team and tournament display names are unique per game (lookup keys)
- Match external_id is unique per game (the deduplication key); the unique
  constraint is the last line of defence against overlapping jobs
- Team.rating is only ever written by the recompute job; Team.base_rating is
  the persisted seed every recompute starts from
- Odds columns are only populated while a match is upcoming

Tables:
- teams: Canonical team records with current rating
- players: Roster entries attached to a team
- tournaments: Tournament master data with derived tier
- matches: All matches (upcoming, live, finished, cancelled)
- job_runs: One row per scheduled job invocation (observability)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from velo.elo.constants import INITIAL_RATING
from velo.match_statuses import UPCOMING

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Team Models
# =============================================================================

class Team(Base):
    """
    Canonical team record.

    Created the first time a team is seen during reconciliation and never
    deleted. The display name is the lookup key used by the reconciler and
    the rating engine.
    """
    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(primary_key=True)
    game: Mapped[str] = mapped_column(String(30), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Source identifier (vlr.gg team id), when known
    external_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Current rating, rewritten in full by every recompute
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=INITIAL_RATING)
    # Seed the recompute starts from
    base_rating: Mapped[float] = mapped_column(Float, nullable=False, default=INITIAL_RATING)

    # Logo URL, region, tag, ...
    metadata_json: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    players: Mapped[list["Player"]] = relationship(
        back_populates="team", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("game", "name", name="uq_team_game_name"),
        Index("idx_teams_external_id", "game", "external_id"),
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name='{self.name}', rating={self.rating})>"


class Player(Base):
    """A roster entry for a team, created alongside the team."""
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(primary_key=True)
    game: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    team_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )

    # Real name, country, role, substitute flag
    metadata_json: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    team: Mapped[Optional["Team"]] = relationship(back_populates="players")

    def __repr__(self) -> str:
        return f"<Player(id={self.id}, name='{self.name}', team_id={self.team_id})>"


# =============================================================================
# Tournament Models
# =============================================================================

class Tournament(Base):
    """
    Tournament master data.

    The tier is derived from the display name when the tournament is first
    seen (see elo/tiers.py):
    - 'S': International championships and masters events
    - 'A': Regional playoffs and finals
    - 'B': Challengers circuits
    - 'C': Everything else
    """
    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(primary_key=True)
    game: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    tier: Mapped[str] = mapped_column(String(1), nullable=False, default="C")
    coefficient: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    # Series name, event link, prize pool, ...
    metadata_json: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    matches: Mapped[list["Match"]] = relationship(back_populates="tournament")

    __table_args__ = (
        UniqueConstraint("game", "name", name="uq_tournament_game_name"),
    )

    def __repr__(self) -> str:
        return f"<Tournament(id={self.id}, name='{self.name}', tier='{self.tier}')>"


# =============================================================================
# Match Models
# =============================================================================

class Match(Base):
    """
    Unified match table covering the full lifecycle.

    Match status lifecycle (see match_statuses.py):
    - 'upcoming': Known fixture, odds are published while in this state
    - 'live': Currently being played
    - 'finished': Final scores recorded; feeds the rating engine
    - 'cancelled': Will not be played

    Invariants:
    - (game, external_id) is unique
    - score_a/score_b are set only when finished
    - winner_team_id is set only when finished and decisive
    - odds_a/odds_b are set only while upcoming
    """
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True)
    game: Mapped[str] = mapped_column(String(30), nullable=False)

    # vlr.gg match id (deduplication key)
    external_id: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UPCOMING)
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    team_a_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    team_b_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    winner_team_id: Mapped[Optional[int]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    tournament_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tournaments.id"), nullable=True
    )

    # Maps won by each side (finished matches only)
    score_a: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_b: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Decimal odds (upcoming matches only)
    odds_a: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    odds_b: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Source URL, raw team names, best-of, streams, ...
    metadata_json: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    team_a: Mapped[Optional["Team"]] = relationship(foreign_keys=[team_a_id])
    team_b: Mapped[Optional["Team"]] = relationship(foreign_keys=[team_b_id])
    winner_team: Mapped[Optional["Team"]] = relationship(foreign_keys=[winner_team_id])
    tournament: Mapped[Optional["Tournament"]] = relationship(back_populates="matches")

    __table_args__ = (
        UniqueConstraint("game", "external_id", name="uq_match_game_external_id"),
        Index("idx_matches_status_starts_at", "status", "starts_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Match(id={self.id}, external_id='{self.external_id}', "
            f"status='{self.status}')>"
        )


# =============================================================================
# Job Tracking
# =============================================================================

class JobRun(Base):
    """Record of one scheduled job invocation and its record counts."""

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    job_name: Mapped[str] = mapped_column(String(80), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    metrics_json: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    error_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_job_runs_name_started_at", "job_name", "started_at"),
    )

    def __repr__(self) -> str:
        return f"<JobRun(job='{self.job_name}', status='{self.status}')>"
