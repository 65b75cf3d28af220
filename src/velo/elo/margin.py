"""
Margin of victory calculations for K-factor adjustment.

In standard Elo, a 2-0 sweep and a 2-1 decider produce the same rating
change. This module scales K by how lopsided the series was:

    margin     = max(|maps_a - maps_b|, 1)
    multiplier = 1 + (margin - 1) * (max_margin_bonus - 1)

A one-map margin gives 1.0. A two-map margin gives max_margin_bonus, which
is also the cap, so round-count scores (13-3) cannot blow K up.
"""

from velo.elo.constants import K_DEFAULTS


def margin_multiplier(
    maps_a: int,
    maps_b: int,
    max_margin_bonus: float | None = None,
) -> float:
    """
    Calculate the K multiplier for a result.

    Args:
        maps_a: Maps (or rounds) won by side A
        maps_b: Maps (or rounds) won by side B
        max_margin_bonus: Multiplier for a two-map margin and upper bound.
                          Default from K_DEFAULTS.

    Returns:
        Multiplier in [1.0, max_margin_bonus]

    Examples:
        margin_multiplier(2, 1)  # -> 1.0
        margin_multiplier(2, 0)  # -> 1.5
        margin_multiplier(3, 0)  # -> 1.5 (capped)
    """
    if max_margin_bonus is None:
        max_margin_bonus = K_DEFAULTS["max_margin_bonus"]

    margin = max(abs(maps_a - maps_b), 1)
    multiplier = 1.0 + (margin - 1) * (max_margin_bonus - 1.0)

    return max(1.0, min(max_margin_bonus, multiplier))
