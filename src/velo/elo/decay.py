"""
Recency decay for the K-factor.

A team coming back from a long break has a less reliable rating, and a
single result after the break should not swing it as hard. The decay is
applied to K (not to the rating itself):

    decay = exp(-decay_lambda * days_since_last_match)

A team's first processed match has no previous match, so days = 0 and
there is no decay.
"""

import math

from velo.elo.constants import K_DEFAULTS


def recency_decay(
    days_since_last_match: float | None,
    decay_lambda: float | None = None,
) -> float:
    """
    Calculate the K multiplier for time since a team last played.

    Args:
        days_since_last_match: Days since the previous processed match,
                               or None if this is the team's first match.
        decay_lambda: Decay rate per day. Default from K_DEFAULTS.

    Returns:
        Multiplier in (0, 1]

    Examples:
        recency_decay(None)    # -> 1.0
        recency_decay(0.0)     # -> 1.0
        recency_decay(100.0)   # -> ~0.61 with the default rate
    """
    if decay_lambda is None:
        decay_lambda = K_DEFAULTS["decay_lambda"]

    if days_since_last_match is None or days_since_last_match <= 0:
        return 1.0

    return math.exp(-decay_lambda * days_since_last_match)
