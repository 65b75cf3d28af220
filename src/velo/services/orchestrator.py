"""
Ingestion orchestrator: the three scheduled operations.

- sync_upcoming: pull the source's upcoming list and reconcile anything new
- refresh_pending: move stored upcoming/live matches forward once the source
  reports a newer state (live, final, cancelled)
- recompute_ratings_and_odds: rebuild every team rating from the complete
  finished-match history, then re-price every upcoming match

Each operation takes an open session and returns a stats object; committing
is the caller's job (see tasks/jobs.py). Failures local to one record are
counted and skipped. A DataSourceUnavailable (or a database error) propagates
and aborts the invocation.

Match status lifecycle (see match_statuses.py):
- Reconciler: new matches are created 'upcoming' or 'finished'
- refresh_pending: 'upcoming' -> 'live' -> 'finished', or -> 'cancelled'
- Nothing ever moves a terminal match back
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from velo.config import settings
from velo.db.models import Match, Team
from velo.elo.calculator import EloMatch, EloParams, run_ratings
from velo.elo.odds import derive_odds
from velo.elo.tiers import classify_tier
from velo.match_statuses import (
    CANCELLED,
    FINISHED,
    MATCH_STATUS_GROUPS,
    UPCOMING,
    can_transition,
    status_from_source,
)
from velo.services.reconciler import MatchReconciler, ReconcileStats
from velo.source.base import (
    DataSource,
    DataSourceError,
    DataSourceUnavailable,
    RawMatchDetail,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def _fetch_details(
    source: DataSource,
    external_ids: list[str],
    concurrency: int,
    errors: list[str],
) -> dict[str, RawMatchDetail]:
    """
    Fetch match details concurrently, dropping the ones that fail.

    Raises:
        DataSourceUnavailable: the source cannot be reached at all
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def _fetch(external_id: str) -> Optional[RawMatchDetail]:
        async with semaphore:
            try:
                return await source.get_match_detail(external_id)
            except DataSourceUnavailable:
                raise
            except DataSourceError as e:
                errors.append(f"{external_id}: {e}")
                logger.warning("Could not fetch match %s: %s", external_id, e)
                return None

    results = await asyncio.gather(*(_fetch(eid) for eid in external_ids))
    return {
        eid: detail for eid, detail in zip(external_ids, results) if detail is not None
    }


# =============================================================================
# Sync upcoming
# =============================================================================

@dataclass
class SyncStats:
    """Statistics from one sync_upcoming run."""
    listed: int = 0
    already_stored: int = 0
    fetched: int = 0
    fetch_failed: int = 0
    reconcile: ReconcileStats = field(default_factory=ReconcileStats)
    errors: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.fetch_failed + self.reconcile.skipped

    def to_metrics(self) -> dict:
        return {
            "listed": self.listed,
            "already_stored": self.already_stored,
            "fetched": self.fetched,
            "fetch_failed": self.fetch_failed,
            **self.reconcile.to_metrics(),
            "skipped": self.skipped,
        }

    def summary(self) -> str:
        lines = [
            "Upcoming sync complete:",
            f"  Listed by source:         {self.listed}",
            f"  Already stored:           {self.already_stored}",
            f"  Details fetched:          {self.fetched}",
            f"  Detail fetches failed:    {self.fetch_failed}",
        ]
        return "\n".join(lines) + "\n" + self.reconcile.summary()


async def sync_upcoming(
    session: Session,
    source: DataSource,
    game: Optional[str] = None,
    backfill: bool = True,
    concurrency: Optional[int] = None,
) -> SyncStats:
    """
    Fetch the source's upcoming matches and persist the new ones.

    Matches already stored as upcoming are filtered out before any detail
    fetch; everything else goes through the reconciler, which skips ids
    stored under any other status.

    Args:
        session: Database session
        source: Data source adapter
        game: Game namespace. Default from settings.
        backfill: Backfill the history of teams created by this sync
        concurrency: Max concurrent detail fetches. Default from settings.

    Returns:
        SyncStats

    Raises:
        DataSourceError: the upcoming list itself could not be fetched
    """
    game = game or settings.game
    concurrency = concurrency or settings.fetch_concurrency
    stats = SyncStats()

    upcoming = await source.list_upcoming_matches()
    stats.listed = len(upcoming)

    listed_ids = list(dict.fromkeys(u.external_id for u in upcoming))
    stored = set()
    if listed_ids:
        stored = set(session.scalars(
            select(Match.external_id).where(
                Match.game == game,
                Match.status == UPCOMING,
                Match.external_id.in_(listed_ids),
            )
        ))
    new_ids = [eid for eid in listed_ids if eid not in stored]
    stats.already_stored = len(listed_ids) - len(new_ids)
    logger.info(
        "Sync: %d listed, %d already stored, %d to fetch",
        stats.listed, stats.already_stored, len(new_ids),
    )

    if not new_ids:
        return stats

    details = await _fetch_details(source, new_ids, concurrency, stats.errors)
    stats.fetched = len(details)
    stats.fetch_failed = len(new_ids) - len(details)

    reconciler = MatchReconciler(
        session, source, game=game, fetch_concurrency=concurrency,
    )
    stats.reconcile = await reconciler.reconcile(
        [details[eid] for eid in new_ids if eid in details],
        backfill=backfill,
    )

    logger.info(stats.summary())
    return stats


# =============================================================================
# Refresh pending
# =============================================================================

@dataclass
class RefreshStats:
    """Statistics from one refresh_pending run."""
    pending: int = 0
    unchanged: int = 0
    to_live: int = 0
    to_finished: int = 0
    to_cancelled: int = 0
    teams_filled: int = 0
    teams_backfilled: int = 0
    rejected: int = 0
    fetch_failed: int = 0
    skipped_missing_score: int = 0
    backfill_skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def updated(self) -> int:
        return self.to_live + self.to_finished + self.to_cancelled

    @property
    def skipped(self) -> int:
        return (
            self.fetch_failed
            + self.skipped_missing_score
            + self.rejected
            + self.backfill_skipped
        )

    def to_metrics(self) -> dict:
        return {
            "pending": self.pending,
            "unchanged": self.unchanged,
            "to_live": self.to_live,
            "to_finished": self.to_finished,
            "to_cancelled": self.to_cancelled,
            "teams_filled": self.teams_filled,
            "teams_backfilled": self.teams_backfilled,
            "skipped": self.skipped,
        }

    def summary(self) -> str:
        return "\n".join([
            "Pending refresh complete:",
            f"  Pending matches checked:  {self.pending}",
            f"  Unchanged:                {self.unchanged}",
            f"  Now live:                 {self.to_live}",
            f"  Now finished:             {self.to_finished}",
            f"  Now cancelled:            {self.to_cancelled}",
            f"  TBD slots filled:         {self.teams_filled}",
            f"  New teams backfilled:     {self.teams_backfilled}",
            f"  Rejected transitions:     {self.rejected}",
            f"  Skipped (fetch failed):   {self.fetch_failed}",
            f"  Skipped (no score):       {self.skipped_missing_score}",
            f"  Skipped (backfill):       {self.backfill_skipped}",
        ])


async def refresh_pending(
    session: Session,
    source: DataSource,
    game: Optional[str] = None,
    now: Optional[datetime] = None,
    concurrency: Optional[int] = None,
) -> RefreshStats:
    """
    Advance stored upcoming/live matches whose start time has passed.

    For each such match the current detail is fetched and the reported state
    applied if it is a legal forward transition. Finishing a match records
    scores and winner; leaving 'upcoming' clears the published odds. An
    opponent still missing (TBD at creation) is filled in once the source
    names it, and a team first created that way has its history backfilled.

    Args:
        session: Database session
        source: Data source adapter
        game: Game namespace. Default from settings.
        now: Reference time (naive UTC). Default: current time.
        concurrency: Max concurrent detail fetches. Default from settings.

    Returns:
        RefreshStats
    """
    game = game or settings.game
    now = now or _utc_now()
    concurrency = concurrency or settings.fetch_concurrency
    stats = RefreshStats()

    pending = session.scalars(
        select(Match)
        .where(
            Match.game == game,
            Match.status.in_(MATCH_STATUS_GROUPS["pending"]),
            Match.starts_at <= now,
        )
        .order_by(Match.starts_at, Match.id)
    ).all()
    stats.pending = len(pending)
    if not pending:
        logger.info("Refresh: no pending matches past their start time")
        return stats

    details = await _fetch_details(
        source, [m.external_id for m in pending], concurrency, stats.errors,
    )
    reconciler = MatchReconciler(session, source, game=game, fetch_concurrency=concurrency)

    for match in pending:
        detail = details.get(match.external_id)
        if detail is None:
            stats.fetch_failed += 1
            continue

        try:
            if await _fill_missing_teams(reconciler, match, detail):
                stats.teams_filled += 1
        except DataSourceUnavailable:
            raise
        except DataSourceError as e:
            stats.errors.append(f"{match.external_id}: {e}")
            logger.warning("Could not resolve teams for %s: %s", match.external_id, e)

        new_status = status_from_source(detail.status)
        if new_status == match.status:
            stats.unchanged += 1
            continue
        if not can_transition(match.status, new_status):
            stats.rejected += 1
            logger.warning(
                "Ignoring %s -> %s for match %s",
                match.status, new_status, match.external_id,
            )
            continue

        if new_status == FINISHED:
            if detail.score_a is None or detail.score_b is None:
                stats.skipped_missing_score += 1
                logger.warning("Match %s reported final without a score", match.external_id)
                continue
            match.score_a = detail.score_a
            match.score_b = detail.score_b
            if detail.score_a > detail.score_b:
                match.winner_team_id = match.team_a_id
            elif detail.score_b > detail.score_a:
                match.winner_team_id = match.team_b_id
            stats.to_finished += 1
        elif new_status == CANCELLED:
            stats.to_cancelled += 1
        else:
            stats.to_live += 1

        logger.info("Match %s: %s -> %s", match.external_id, match.status, new_status)
        match.status = new_status
        match.odds_a = None
        match.odds_b = None
        match.metadata_json = {**(match.metadata_json or {}), "source_status": detail.status}

    session.flush()

    # Teams created while filling TBD slots get the same history backfill
    stats.teams_backfilled = await reconciler.backfill_new_teams()
    stats.backfill_skipped = reconciler.stats.skipped
    stats.errors.extend(reconciler.stats.errors)

    logger.info(stats.summary())
    return stats


async def _fill_missing_teams(
    reconciler: MatchReconciler,
    match: Match,
    detail: RawMatchDetail,
) -> bool:
    """Fill TBD team slots the source now names. Returns True if any changed."""
    changed = False
    if match.team_a_id is None:
        team = await reconciler.resolve_team(detail.team_a)
        if team is not None:
            match.team_a_id = team.id
            changed = True
    if match.team_b_id is None:
        team = await reconciler.resolve_team(detail.team_b)
        if team is not None:
            match.team_b_id = team.id
            changed = True
    return changed


# =============================================================================
# Recompute ratings and odds
# =============================================================================

@dataclass
class RecomputeStats:
    """Statistics from one recompute_ratings_and_odds run."""
    teams: int = 0
    finished_matches: int = 0
    matches_processed: int = 0
    matches_skipped: int = 0
    tiers_updated: int = 0
    upcoming_matches: int = 0
    odds_updated: int = 0
    odds_skipped: int = 0
    odds_clamped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.matches_skipped

    def to_metrics(self) -> dict:
        return {
            "teams": self.teams,
            "finished_matches": self.finished_matches,
            "matches_processed": self.matches_processed,
            "matches_skipped": self.matches_skipped,
            "tiers_updated": self.tiers_updated,
            "upcoming_matches": self.upcoming_matches,
            "odds_updated": self.odds_updated,
            "odds_skipped": self.odds_skipped,
            "odds_clamped": self.odds_clamped,
        }

    def summary(self) -> str:
        return "\n".join([
            "Rating recompute complete:",
            f"  Teams rated:              {self.teams}",
            f"  Finished matches:         {self.finished_matches}",
            f"  Matches processed:        {self.matches_processed}",
            f"  Matches skipped:          {self.matches_skipped}",
            f"  Tournament tiers updated: {self.tiers_updated}",
            f"  Upcoming matches:         {self.upcoming_matches}",
            f"  Odds updated:             {self.odds_updated}",
            f"  Odds skipped (TBD):       {self.odds_skipped}",
            f"  Odds clamped:             {self.odds_clamped}",
        ])


def recompute_ratings_and_odds(
    session: Session,
    params: Optional[EloParams] = None,
    min_probability: Optional[float] = None,
    game: Optional[str] = None,
) -> RecomputeStats:
    """
    Rebuild all team ratings from scratch, then price upcoming matches.

    Every team starts from its persisted base_rating, and the complete
    finished-match history is replayed in date order, so running this twice
    with no new matches yields identical ratings. Odds use the ratings
    written by this same call.

    Args:
        session: Database session
        params: Engine parameters. Default from settings.
        min_probability: Odds probability clamp. Default from settings.
        game: Game namespace. Default from settings.

    Returns:
        RecomputeStats
    """
    params = params or EloParams.from_settings()
    if min_probability is None:
        min_probability = settings.odds_min_probability
    game = game or settings.game
    stats = RecomputeStats()

    teams = session.scalars(select(Team).where(Team.game == game)).all()
    stats.teams = len(teams)

    finished = session.scalars(
        select(Match)
        .options(
            joinedload(Match.team_a),
            joinedload(Match.team_b),
            joinedload(Match.tournament),
        )
        .where(Match.game == game, Match.status == FINISHED)
    ).unique().all()
    stats.finished_matches = len(finished)

    elo_matches: list[EloMatch] = []
    for match in finished:
        if match.team_a is None or match.team_b is None:
            stats.matches_skipped += 1
            logger.debug("Match %s has an unresolved team; not rated", match.external_id)
            continue
        if match.score_a is None or match.score_b is None:
            stats.matches_skipped += 1
            logger.debug("Match %s has no score; not rated", match.external_id)
            continue

        tournament = match.tournament
        tier = classify_tier(tournament.name if tournament else None)
        if tournament is not None and tournament.tier != tier:
            tournament.tier = tier
            tournament.coefficient = params.get_tier_coefficient(tier)
            stats.tiers_updated += 1

        elo_matches.append(EloMatch(
            date=match.starts_at,
            tier=tier,
            team_a=match.team_a.name,
            team_b=match.team_b.name,
            maps_a=match.score_a,
            maps_b=match.score_b,
            match_id=match.external_id,
        ))

    seeds = {team.name: team.base_rating for team in teams}
    run = run_ratings(elo_matches, seeds, params)
    stats.matches_processed = run.processed
    stats.matches_skipped += run.skipped
    stats.errors.extend(run.skip_reasons)

    for team in teams:
        team.rating = run.ratings.get(team.name, team.base_rating)
    session.flush()

    upcoming = session.scalars(
        select(Match)
        .options(joinedload(Match.team_a), joinedload(Match.team_b))
        .where(Match.game == game, Match.status == UPCOMING)
    ).unique().all()
    stats.upcoming_matches = len(upcoming)

    for match in upcoming:
        if match.team_a is None or match.team_b is None:
            stats.odds_skipped += 1
            continue
        quote = derive_odds(match.team_a.rating, match.team_b.rating, min_probability)
        match.odds_a = quote.odds_a
        match.odds_b = quote.odds_b
        stats.odds_updated += 1
        if quote.clamped:
            stats.odds_clamped += 1

    session.flush()
    logger.info(stats.summary())
    return stats
