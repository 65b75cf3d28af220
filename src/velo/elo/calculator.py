"""
Team rating engine.

Implements the Elo formula adapted for team esports with:
- Tournament tier K multipliers
- Per-team recency decay and hot-form bonus
- Margin-of-victory scaling

The formula, per match and per side:
  Expected score: E_A = 1 / (1 + 10^((R_B - R_A) / 400))
  Effective K:    K_A = K_base * tier * decay_A * form_A * margin
  New rating:     R'_A = R_A + K_A * (S_A - E_A)

Tier and margin are shared by both sides; decay and form depend on each
side's own last-played date, so the two rating changes are only equal and
opposite when both teams come in with the same history.

The engine is a pure function of its inputs. Every call builds its working
state from the seed ratings it is given and returns new dicts; nothing is
kept between calls, so the same inputs always give the same output.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional

from velo.elo.constants import (
    INITIAL_RATING,
    K_DEFAULTS,
    SPREAD,
    TIER_COEFFICIENTS,
)
from velo.elo.decay import recency_decay
from velo.elo.form import hot_form_multiplier
from velo.elo.margin import margin_multiplier

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400.0


@dataclass(frozen=True)
class EloParams:
    """
    All tunable engine parameters in one object.

    Passed explicitly to the engine on every call; the engine never reads
    module-level configuration.
    """
    initial_rating: float = INITIAL_RATING
    k_base: float = K_DEFAULTS["k_base"]
    decay_lambda: float = K_DEFAULTS["decay_lambda"]
    recent_window_days: float = K_DEFAULTS["recent_window_days"]
    recent_match_bonus: float = K_DEFAULTS["recent_match_bonus"]
    max_margin_bonus: float = K_DEFAULTS["max_margin_bonus"]
    tier_coefficients: Mapping[str, float] = field(
        default_factory=lambda: dict(TIER_COEFFICIENTS)
    )

    @classmethod
    def from_settings(cls, settings=None) -> "EloParams":
        """Build params from application settings (velo.config)."""
        if settings is None:
            from velo.config import settings

        return cls(
            initial_rating=settings.elo_initial_rating,
            k_base=settings.elo_k_base,
            decay_lambda=settings.elo_decay_lambda,
            recent_window_days=settings.elo_recent_window_days,
            recent_match_bonus=settings.elo_recent_match_bonus,
            max_margin_bonus=settings.elo_max_margin_bonus,
        )

    def get_tier_coefficient(self, tier: str) -> float:
        """Get the K multiplier for a tier code, 'C' for unknown tiers."""
        return self.tier_coefficients.get(tier, self.tier_coefficients.get("C", 1.0))


@dataclass(frozen=True)
class EloMatch:
    """
    One finished match as seen by the engine.

    Teams are identified by display name. maps_a/maps_b are the map (or
    round) counts the outcome and margin are derived from.
    """
    date: datetime
    tier: str
    team_a: str
    team_b: str
    maps_a: int
    maps_b: int
    match_id: Optional[str] = None

    def sort_key(self) -> tuple:
        # Date first; the rest only breaks same-timestamp ties deterministically
        return (
            self.date,
            self.match_id or "",
            self.team_a,
            self.team_b,
            self.maps_a,
            self.maps_b,
            self.tier,
        )


@dataclass
class RatingRun:
    """Result of one engine pass."""
    ratings: dict[str, float]
    last_played: dict[str, datetime]
    processed: int = 0
    skipped: int = 0
    skip_reasons: list[str] = field(default_factory=list)


def expected_score(rating_a: float, rating_b: float, spread: float = SPREAD) -> float:
    """
    Expected score (win probability) for side A.

    Formula: E_A = 1 / (1 + 10^((R_B - R_A) / spread))
    """
    try:
        return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / spread))
    except OverflowError:
        # Gap so large that 10^x overflows: A is a certain loser
        return 0.0


def _days_between(earlier: Optional[datetime], later: datetime) -> Optional[float]:
    if earlier is None:
        return None
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def run_ratings(
    matches: Iterable[EloMatch],
    seed_ratings: Mapping[str, float],
    params: Optional[EloParams] = None,
) -> RatingRun:
    """
    Compute ratings for every team from a match history.

    Matches may be passed in any order: they are sorted by date before
    processing, so the result depends only on the set of matches.

    Malformed matches are skipped rather than aborting the pass:
    - the same team on both sides
    - a drawn result (equal map counts); draws are not modelled
    - negative map counts
    - a result that would make a rating non-finite

    Args:
        matches: Finished matches, any order
        seed_ratings: Starting rating per team name. Teams missing here
                      start at params.initial_rating.
        params: Engine parameters. Defaults to EloParams().

    Returns:
        RatingRun with the new ratings, each team's last processed match
        date, and processed/skipped counts. Seeded teams without any
        match keep their seed.
    """
    params = params or EloParams()

    ratings: dict[str, float] = {}
    for team, rating in seed_ratings.items():
        rating = float(rating)
        if not math.isfinite(rating):
            logger.warning("Non-finite seed rating for %s; using initial rating", team)
            rating = float(params.initial_rating)
        ratings[team] = rating

    run = RatingRun(ratings=ratings, last_played={})

    for match in sorted(matches, key=EloMatch.sort_key):
        reason = _apply_match(run, match, params)
        if reason is None:
            run.processed += 1
        else:
            run.skipped += 1
            run.skip_reasons.append(reason)
            logger.debug("Skipping match %s: %s", match.match_id, reason)

    return run


def calculate_ratings(
    matches: Iterable[EloMatch],
    seed_ratings: Mapping[str, float],
    params: Optional[EloParams] = None,
) -> dict[str, float]:
    """
    Calculate ratings for all teams from a complete match history.

    Convenience wrapper around run_ratings() returning only the ratings.

    Example:
        ratings = calculate_ratings(
            [EloMatch(date=datetime(2024, 6, 1), tier="S",
                      team_a="Sentinels", team_b="Gen.G", maps_a=2, maps_b=0)],
            {"Sentinels": 1000.0, "Gen.G": 1000.0},
        )
    """
    return run_ratings(matches, seed_ratings, params).ratings


def _apply_match(run: RatingRun, match: EloMatch, params: EloParams) -> Optional[str]:
    """
    Apply one match to the working state.

    Returns None on success, or the reason the match was skipped.
    """
    team_a, team_b = match.team_a, match.team_b

    if team_a == team_b:
        return f"same team on both sides ({team_a})"
    if match.maps_a < 0 or match.maps_b < 0:
        return f"negative score {match.maps_a}-{match.maps_b}"
    if match.maps_a == match.maps_b:
        return f"draw {match.maps_a}-{match.maps_b}"

    rating_a = run.ratings.get(team_a, float(params.initial_rating))
    rating_b = run.ratings.get(team_b, float(params.initial_rating))

    # Actual scores (1 for win, 0 for loss)
    actual_a = 1.0 if match.maps_a > match.maps_b else 0.0
    actual_b = 1.0 - actual_a

    exp_a = expected_score(rating_a, rating_b)
    exp_b = 1.0 - exp_a

    days_a = _days_between(run.last_played.get(team_a), match.date)
    days_b = _days_between(run.last_played.get(team_b), match.date)

    # Shared multipliers
    tier_coef = params.get_tier_coefficient(match.tier)
    margin_coef = margin_multiplier(
        match.maps_a, match.maps_b, max_margin_bonus=params.max_margin_bonus,
    )

    # Effective K per side
    k_a = (
        params.k_base
        * tier_coef
        * recency_decay(days_a, decay_lambda=params.decay_lambda)
        * hot_form_multiplier(
            days_a,
            recent_window_days=params.recent_window_days,
            recent_match_bonus=params.recent_match_bonus,
        )
        * margin_coef
    )
    k_b = (
        params.k_base
        * tier_coef
        * recency_decay(days_b, decay_lambda=params.decay_lambda)
        * hot_form_multiplier(
            days_b,
            recent_window_days=params.recent_window_days,
            recent_match_bonus=params.recent_match_bonus,
        )
        * margin_coef
    )

    new_a = rating_a + k_a * (actual_a - exp_a)
    new_b = rating_b + k_b * (actual_b - exp_b)

    if not (math.isfinite(new_a) and math.isfinite(new_b)):
        return "non-finite rating update"

    run.ratings[team_a] = new_a
    run.ratings[team_b] = new_b
    run.last_played[team_a] = match.date
    run.last_played[team_b] = match.date
    return None
