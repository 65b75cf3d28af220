"""
Odds derivation from team ratings.

Turns two ratings into win probabilities with the same logistic curve the
rating engine uses, then into fair decimal odds (no bookmaker margin):

    prob_A = 1 / (1 + 10^((R_B - R_A) / 400))
    prob_B = 1 - prob_A
    odds_X = 1 / prob_X

Probabilities are clamped into [min_probability, 1 - min_probability] so a
huge rating gap can never produce a zero probability (and a division by
zero) or absurd odds. Clamping is logged as a warning because it means two
ratings have drifted implausibly far apart.
"""

import logging
from dataclasses import dataclass

from velo.elo.calculator import expected_score

logger = logging.getLogger(__name__)

DEFAULT_MIN_PROBABILITY = 0.01


@dataclass(frozen=True)
class OddsQuote:
    """Win probabilities and decimal odds for both sides of a match."""
    prob_a: float
    prob_b: float
    odds_a: float
    odds_b: float
    clamped: bool = False

    @property
    def favourite(self) -> str:
        """'A' or 'B', whichever side is more likely to win ('A' on a tie)."""
        return "A" if self.prob_a >= self.prob_b else "B"


def derive_odds(
    rating_a: float,
    rating_b: float,
    min_probability: float = DEFAULT_MIN_PROBABILITY,
) -> OddsQuote:
    """
    Derive win probabilities and decimal odds for a match.

    Args:
        rating_a: Team A's rating
        rating_b: Team B's rating
        min_probability: Lower clamp for either probability, in (0, 0.5)

    Returns:
        OddsQuote. Equal ratings give exactly 0.5/0.5 and 2.0/2.0.

    Raises:
        ValueError: If min_probability is outside (0, 0.5)

    Example:
        quote = derive_odds(1100.0, 1000.0)
        # quote.prob_a ~= 0.64, quote.odds_a ~= 1.56, quote.odds_b ~= 2.78
    """
    if not 0.0 < min_probability < 0.5:
        raise ValueError(f"min_probability must be in (0, 0.5), got {min_probability}")

    prob_a = expected_score(rating_a, rating_b)
    clamped = False

    upper = 1.0 - min_probability
    if prob_a < min_probability or prob_a > upper:
        logger.warning(
            "Extreme rating gap (%.1f vs %.1f): clamping win probability %.6f",
            rating_a, rating_b, prob_a,
        )
        prob_a = max(min_probability, min(upper, prob_a))
        clamped = True

    prob_b = 1.0 - prob_a

    return OddsQuote(
        prob_a=prob_a,
        prob_b=prob_b,
        odds_a=1.0 / prob_a,
        odds_b=1.0 / prob_b,
        clamped=clamped,
    )
