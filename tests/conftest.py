"""
Pytest configuration and fixtures.

This file is automatically loaded by pytest and provides
shared fixtures for all tests.
"""

from contextlib import contextmanager
from typing import Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from velo.db.models import Base
from velo.source.base import (
    DataSource,
    DataSourceError,
    RawMatchDetail,
    RawPlayer,
    RawTeamDetail,
    RawTeamRef,
    RawUpcomingMatch,
)


@pytest.fixture(scope="session")
def test_engine():
    """
    Create a test database engine.

    Uses SQLite in-memory for fast tests that don't need
    PostgreSQL-specific features.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
    )

    # pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture(scope="session")
def tables(test_engine):
    """
    Create all tables for testing.

    This fixture runs once per test session.
    """
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def db_session(test_engine, tables):
    """
    Create a database session for a test.

    Each test gets its own session with automatic rollback,
    ensuring tests don't affect each other.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    Session = sessionmaker(bind=connection)
    session = Session()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(db_session):
    """Stand-in for velo.db.get_session that reuses the test session."""

    @contextmanager
    def _factory():
        yield db_session
        db_session.flush()

    return _factory


# =============================================================================
# Fake data source
# =============================================================================

class FakeDataSource(DataSource):
    """
    In-memory DataSource.

    Tests register matches, teams and histories up front; ids listed in
    ``failing`` raise DataSourceError. Every call is recorded in ``calls``.
    """

    name = "fake"

    def __init__(self):
        self.upcoming: list[RawUpcomingMatch] = []
        self.matches: dict[str, RawMatchDetail] = {}
        self.teams: dict[str, RawTeamDetail] = {}
        self.histories: dict[str, list[RawMatchDetail]] = {}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    # -- setup helpers --------------------------------------------------------

    def add_team(self, external_id: str, name: str, players: Optional[list[str]] = None) -> RawTeamRef:
        self.teams[external_id] = RawTeamDetail(
            external_id=external_id,
            name=name,
            logo_url=f"https://img.example/{external_id}.png",
            roster=[RawPlayer(name=p, country="US") for p in (players or [])],
        )
        return RawTeamRef(name=name, external_id=external_id)

    def add_match(
        self,
        external_id: str,
        team_a: RawTeamRef,
        team_b: RawTeamRef,
        event_name: str = "Local Cup",
        start_time: Optional[str] = "2024-06-01 18:00:00",
        status: str = "upcoming",
        score_a: Optional[int] = None,
        score_b: Optional[int] = None,
        listed: bool = True,
    ) -> RawMatchDetail:
        detail = RawMatchDetail(
            external_id=external_id,
            status=status,
            team_a=team_a,
            team_b=team_b,
            event_name=event_name,
            start_time_raw=start_time,
            score_a=score_a,
            score_b=score_b,
        )
        self.matches[external_id] = detail
        if listed and status != "final":
            self.upcoming.append(RawUpcomingMatch(
                external_id=external_id,
                team_a_name=team_a.name,
                team_b_name=team_b.name,
                event_name=event_name,
                start_time_raw=start_time,
            ))
        return detail

    # -- DataSource interface -------------------------------------------------

    async def list_upcoming_matches(self) -> list[RawUpcomingMatch]:
        self.calls.append(("list_upcoming_matches", ""))
        return list(self.upcoming)

    async def get_match_detail(self, external_id: str) -> RawMatchDetail:
        self.calls.append(("get_match_detail", external_id))
        if external_id in self.failing or external_id not in self.matches:
            raise DataSourceError(f"match {external_id} unavailable")
        return self.matches[external_id]

    async def get_team_detail(self, external_id: str) -> RawTeamDetail:
        self.calls.append(("get_team_detail", external_id))
        if external_id in self.failing or external_id not in self.teams:
            raise DataSourceError(f"team {external_id} unavailable")
        return self.teams[external_id]

    async def get_team_match_history(self, external_team_id: str) -> list[RawMatchDetail]:
        self.calls.append(("get_team_match_history", external_team_id))
        if external_team_id in self.failing:
            raise DataSourceError(f"history {external_team_id} unavailable")
        return list(self.histories.get(external_team_id, []))

    async def close(self) -> None:
        self.closed = True

    def calls_to(self, method: str) -> list[str]:
        return [arg for name, arg in self.calls if name == method]


@pytest.fixture
def fake_source():
    return FakeDataSource()
