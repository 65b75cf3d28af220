"""
Team rating module.

Implements an Elo-style team rating system with:
- Tournament tier K multipliers (S/A/B/C from the tournament name)
- Recency decay of K for teams returning from a break
- Hot-form K bonus for teams that played within the last week
- Margin-of-victory K scaling
- Odds derivation from ratings

Everything here is pure: no database access, no network.
"""

from velo.elo.calculator import (
    EloMatch,
    EloParams,
    RatingRun,
    calculate_ratings,
    expected_score,
    run_ratings,
)
from velo.elo.constants import INITIAL_RATING, TIER_COEFFICIENTS
from velo.elo.decay import recency_decay
from velo.elo.form import hot_form_multiplier
from velo.elo.margin import margin_multiplier
from velo.elo.odds import OddsQuote, derive_odds
from velo.elo.tiers import classify_tier

__all__ = [
    "EloMatch",
    "EloParams",
    "RatingRun",
    "calculate_ratings",
    "run_ratings",
    "expected_score",
    "INITIAL_RATING",
    "TIER_COEFFICIENTS",
    "recency_decay",
    "hot_form_multiplier",
    "margin_multiplier",
    "OddsQuote",
    "derive_odds",
    "classify_tier",
]
