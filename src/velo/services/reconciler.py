"""
Match reconciler: persists new externally-sourced records.

Takes RawMatchDetail records from a data source and writes only what the
store does not have yet:

- Teams are looked up by display name. A new team is created together with
  its roster (fetched from the data source); the "TBD" placeholder is never
  stored as a team.
- Tournaments are looked up by display name. A new tournament gets its tier
  from the tier classifier.
- Matches are deduplicated on (game, external_id). An existing match is left
  untouched; status updates on stored matches belong to the refresh job
  (see services/orchestrator.py).

Each insert runs inside its own savepoint, so the dedup check and the insert
are one step and a unique-constraint conflict (an overlapping run inserted
the same row first) only rolls back that one record.

A record that cannot be persisted (adapter error, unparsable start time,
unresolvable team) is counted and skipped; the rest of the batch continues.

Historical backfill: after a batch, the completed-match history of every team
created in that batch is fetched and fed through the same path with backfill
disabled. Teams discovered during backfill are not expanded further.

Usage:
    from velo.services.reconciler import MatchReconciler

    async with VlrDataSource() as source:
        with get_session() as session:
            reconciler = MatchReconciler(session, source)
            stats = await reconciler.reconcile(details)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from velo.config import settings
from velo.db.models import Match, Player, Team, Tournament
from velo.elo.calculator import EloParams
from velo.elo.tiers import classify_tier
from velo.match_statuses import FINISHED, UPCOMING
from velo.source.base import (
    DataSource,
    DataSourceError,
    DataSourceUnavailable,
    RawMatchDetail,
    RawTeamRef,
    parse_start_time,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    """Statistics from one reconciliation run (primary pass plus backfill)."""
    total_records: int = 0
    matches_created: int = 0
    finished_created: int = 0
    upcoming_created: int = 0
    duplicates: int = 0
    skipped_bad_time: int = 0
    skipped_missing_score: int = 0
    skipped_unresolved_team: int = 0
    skipped_errors: int = 0
    teams_created: int = 0
    players_created: int = 0
    tournaments_created: int = 0
    teams_backfilled: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return (
            self.skipped_bad_time
            + self.skipped_missing_score
            + self.skipped_unresolved_team
            + self.skipped_errors
        )

    def to_metrics(self) -> dict:
        return {
            "total_records": self.total_records,
            "matches_created": self.matches_created,
            "finished_created": self.finished_created,
            "upcoming_created": self.upcoming_created,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "teams_created": self.teams_created,
            "players_created": self.players_created,
            "tournaments_created": self.tournaments_created,
            "teams_backfilled": self.teams_backfilled,
        }

    def summary(self) -> str:
        """Return a human-readable summary of reconciliation results."""
        lines = [
            "Reconciliation complete:",
            f"  Records processed:        {self.total_records}",
            f"  Matches created:          {self.matches_created}"
            f" ({self.finished_created} finished, {self.upcoming_created} upcoming)",
            f"  Duplicates skipped:       {self.duplicates}",
            f"  Skipped (bad start time): {self.skipped_bad_time}",
            f"  Skipped (no score):       {self.skipped_missing_score}",
            f"  Skipped (no team):        {self.skipped_unresolved_team}",
            f"  Skipped (errors):         {self.skipped_errors}",
            f"  Teams created:            {self.teams_created}"
            f" ({self.players_created} players)",
            f"  Tournaments created:      {self.tournaments_created}",
            f"  Teams backfilled:         {self.teams_backfilled}",
        ]
        if self.errors:
            lines.append(f"  Errors: {len(self.errors)}")
            for err in self.errors[:5]:
                lines.append(f"    - {err}")
            if len(self.errors) > 5:
                lines.append(f"    ... and {len(self.errors) - 5} more")
        return "\n".join(lines)


class MatchReconciler:
    """
    Persists new teams, tournaments and matches from raw source records.

    One instance per job invocation. The only state it keeps between calls
    is the list of teams created so far (the backfill queue) and the set of
    teams already backfilled; match dedup always goes to the store.

    Args:
        session: SQLAlchemy session. The caller owns the transaction.
        source: Data source used for team rosters and team histories.
        game: Game namespace. Default from settings.
        tbd_name: Placeholder name for an undecided opponent. Default from settings.
        initial_rating: Seed rating for new teams. Default from settings.
        fetch_concurrency: Max concurrent history fetches during backfill.
        params: Engine parameters; supplies the K coefficient stored on new
                tournaments. Default from settings.
    """

    def __init__(
        self,
        session: Session,
        source: DataSource,
        game: Optional[str] = None,
        tbd_name: Optional[str] = None,
        initial_rating: Optional[float] = None,
        fetch_concurrency: Optional[int] = None,
        params: Optional[EloParams] = None,
    ):
        self.session = session
        self.source = source
        self.game = game or settings.game
        self.tbd_name = (tbd_name or settings.tbd_team_name).strip().lower()
        self.initial_rating = (
            initial_rating if initial_rating is not None else settings.elo_initial_rating
        )
        self.fetch_concurrency = fetch_concurrency or settings.fetch_concurrency
        self.params = params or EloParams.from_settings()
        self.stats = ReconcileStats()

        self._new_teams: list[Team] = []
        self._backfilled: set[int] = set()

    # =========================================================================
    # Batch entry points
    # =========================================================================

    async def reconcile(
        self,
        details: Iterable[RawMatchDetail],
        backfill: bool = True,
    ) -> ReconcileStats:
        """
        Persist every new record in a batch.

        Args:
            details: Raw match records, upcoming- or finished-shaped
            backfill: Fetch and persist the history of teams created by this
                      batch. Disabled for the backfill pass itself.

        Returns:
            The reconciler's cumulative ReconcileStats

        Raises:
            DataSourceUnavailable: the source cannot be reached at all
        """
        for detail in details:
            self.stats.total_records += 1
            try:
                await self.persist_match(detail)
            except DataSourceUnavailable:
                raise
            except (DataSourceError, ValueError) as e:
                self.stats.skipped_errors += 1
                self.stats.errors.append(f"{detail.external_id}: {e}")
                logger.warning("Skipping match %s: %s", detail.external_id, e)

        if backfill and self._new_teams:
            await self.backfill_new_teams()

        return self.stats

    async def backfill_new_teams(self) -> int:
        """
        Persist the completed-match history of teams created so far.

        Histories are fetched concurrently (bounded by fetch_concurrency)
        and then persisted one team at a time with backfill disabled, so
        opponents first seen in a history are created but not expanded.

        Returns:
            Number of teams whose history was processed
        """
        queue = [
            team for team in self._new_teams
            if team.external_id and team.id not in self._backfilled
        ]
        self._new_teams = []
        if not queue:
            return 0

        for team in queue:
            self._backfilled.add(team.id)

        logger.info("Backfilling history for %d new teams", len(queue))
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def _fetch(team_name: str, external_id: str):
            async with semaphore:
                try:
                    return team_name, await self.source.get_team_match_history(external_id)
                except DataSourceUnavailable:
                    raise
                except DataSourceError as e:
                    self.stats.errors.append(f"history {team_name}: {e}")
                    logger.warning("Could not fetch history for %s: %s", team_name, e)
                    return team_name, None

        histories = await asyncio.gather(
            *(_fetch(team.name, team.external_id) for team in queue)
        )

        processed = 0
        for team_name, history in histories:
            if history is None:
                continue
            logger.info("Backfilling %d matches for %s", len(history), team_name)
            await self.reconcile(history, backfill=False)
            processed += 1

        # Opponents created during backfill stay unexpanded
        if self._new_teams:
            logger.debug(
                "Not expanding %d teams discovered during backfill", len(self._new_teams),
            )
            self._new_teams = []

        self.stats.teams_backfilled += processed
        return processed

    # =========================================================================
    # Record resolution
    # =========================================================================

    async def persist_match(self, detail: RawMatchDetail) -> Optional[Match]:
        """
        Create a Match for a raw record unless its external id is known.

        Returns:
            The new Match, or None if the record was a duplicate or skipped

        Raises:
            DataSourceError: team detail could not be fetched
        """
        if self._find_match(detail.external_id) is not None:
            self.stats.duplicates += 1
            logger.debug("Match %s already stored", detail.external_id)
            return None

        starts_at = parse_start_time(detail.start_time_raw)
        if starts_at is None:
            self.stats.skipped_bad_time += 1
            logger.warning(
                "Skipping match %s: unparsable start time %r",
                detail.external_id, detail.start_time_raw,
            )
            return None

        finished = detail.is_final
        if finished and (detail.score_a is None or detail.score_b is None):
            self.stats.skipped_missing_score += 1
            logger.warning("Skipping finished match %s: missing score", detail.external_id)
            return None

        team_a = await self.resolve_team(detail.team_a)
        team_b = await self.resolve_team(detail.team_b)
        if finished and (team_a is None or team_b is None):
            self.stats.skipped_unresolved_team += 1
            logger.warning(
                "Skipping finished match %s: unresolved team (%s vs %s)",
                detail.external_id, detail.team_a.name, detail.team_b.name,
            )
            return None

        tournament = self.resolve_tournament(detail.event_name)

        winner = None
        if finished and detail.score_a != detail.score_b:
            winner = team_a if detail.score_a > detail.score_b else team_b

        try:
            with self.session.begin_nested():
                # Dedup check and insert in one savepoint
                if self._find_match(detail.external_id) is not None:
                    self.stats.duplicates += 1
                    return None
                match = Match(
                    game=self.game,
                    external_id=detail.external_id,
                    status=FINISHED if finished else UPCOMING,
                    starts_at=starts_at,
                    team_a_id=team_a.id if team_a else None,
                    team_b_id=team_b.id if team_b else None,
                    winner_team_id=winner.id if winner else None,
                    tournament_id=tournament.id if tournament else None,
                    score_a=detail.score_a if finished else None,
                    score_b=detail.score_b if finished else None,
                    metadata_json=_match_metadata(detail),
                )
                self.session.add(match)
                self.session.flush()
        except IntegrityError:
            self.stats.duplicates += 1
            logger.info("Match %s inserted concurrently; skipping", detail.external_id)
            return None

        self.stats.matches_created += 1
        if finished:
            self.stats.finished_created += 1
        else:
            self.stats.upcoming_created += 1
        logger.debug("Created %r", match)
        return match

    async def resolve_team(self, ref: RawTeamRef) -> Optional[Team]:
        """
        Find a team by display name, creating it (with roster) if new.

        Returns:
            The Team, or None for the TBD placeholder or an empty name

        Raises:
            DataSourceError: the team's detail page could not be fetched
        """
        name = (ref.name or "").strip()
        if not name or name.lower() == self.tbd_name:
            return None

        team = self._find_team(name)
        if team is not None:
            return team

        detail = None
        if ref.external_id:
            detail = await self.source.get_team_detail(ref.external_id)
        else:
            logger.debug("Team %s has no external id; creating without roster", name)

        metadata = {"logo": ref.logo_url}
        if detail is not None:
            metadata.update({
                "logo": detail.logo_url or ref.logo_url,
                "tag": detail.tag,
                "country": detail.country,
            })

        team = Team(
            game=self.game,
            name=name,
            external_id=ref.external_id,
            rating=self.initial_rating,
            base_rating=self.initial_rating,
            metadata_json=metadata,
        )
        roster = detail.roster if detail is not None else []
        for entry in roster:
            team.players.append(Player(
                game=self.game,
                name=entry.name,
                external_id=entry.external_id,
                metadata_json={
                    "real_name": entry.real_name,
                    "country": entry.country,
                    "role": entry.role,
                    "is_sub": entry.is_sub,
                },
            ))

        try:
            with self.session.begin_nested():
                self.session.add(team)
                self.session.flush()
        except IntegrityError:
            existing = self._find_team(name)
            if existing is None:
                raise
            return existing

        self.stats.teams_created += 1
        self.stats.players_created += len(roster)
        self._new_teams.append(team)
        logger.info("Created team %s with %d players", name, len(roster))
        return team

    def resolve_tournament(self, name: Optional[str]) -> Optional[Tournament]:
        """
        Find a tournament by display name, creating it if new.

        New tournaments get their tier and K coefficient from the name.
        """
        name = (name or "").strip()
        if not name:
            return None

        tournament = self._find_tournament(name)
        if tournament is not None:
            return tournament

        tier = classify_tier(name)
        tournament = Tournament(
            game=self.game,
            name=name,
            tier=tier,
            coefficient=self.params.get_tier_coefficient(tier),
            metadata_json={"source": self.source.name},
        )
        try:
            with self.session.begin_nested():
                self.session.add(tournament)
                self.session.flush()
        except IntegrityError:
            existing = self._find_tournament(name)
            if existing is None:
                raise
            return existing

        self.stats.tournaments_created += 1
        logger.info("Created tournament %s (tier %s)", name, tier)
        return tournament

    # =========================================================================
    # Lookups
    # =========================================================================

    def _find_match(self, external_id: str) -> Optional[Match]:
        return self.session.scalars(
            select(Match).where(
                Match.game == self.game,
                Match.external_id == external_id,
            )
        ).first()

    def _find_team(self, name: str) -> Optional[Team]:
        return self.session.scalars(
            select(Team).where(Team.game == self.game, Team.name == name)
        ).first()

    def _find_tournament(self, name: str) -> Optional[Tournament]:
        return self.session.scalars(
            select(Tournament).where(Tournament.game == self.game, Tournament.name == name)
        ).first()


def _match_metadata(detail: RawMatchDetail) -> dict:
    """Source details kept alongside a match for display."""
    return {
        "url": detail.url,
        "source_status": detail.status,
        "team_a_name": detail.team_a.name,
        "team_b_name": detail.team_b.name,
        "team_a_logo": detail.team_a.logo_url,
        "team_b_logo": detail.team_b.logo_url,
        "event_name": detail.event_name,
        "event_series": detail.event_series,
        "best_of": detail.best_of,
        "streams": list(detail.streams),
    }
