"""
Rating engine constants.

K factor: Controls rating volatility (how much ratings change per match)
  - Higher K = bigger rating swings
  - Lower K = more stable ratings

Every match's K is the base K scaled by four multipliers:
  - Tier coefficient: bigger events move ratings more
  - Recency decay: a team returning from a long break moves less
  - Hot form: a team that played within the last week moves more
  - Margin of victory: 2-0 moves more than 2-1

The spread is fixed at 400 (classic Elo): a 400 point gap means the
stronger side is expected to win ten times out of eleven.
"""

# Rating given to a team the first time it is referenced
INITIAL_RATING = 1000.0

# Logistic spread
SPREAD = 400.0

# Tier coefficients based on tournament name analysis
TIER_COEFFICIENTS: dict[str, float] = {
    "S": 2.0,  # Major international events
    "A": 1.5,  # Top-level regional finals/playoffs
    "B": 1.2,  # Challengers circuits
    "C": 1.0,  # Qualifiers and smaller tournaments
}

# Default parameters for the K-factor multipliers
# k_base: K before any multiplier
# decay_lambda: exponential decay rate per day since a team's last match
# recent_window_days / recent_match_bonus: hot-form bonus and its window
# max_margin_bonus: multiplier for a two-map margin, and the overall cap
K_DEFAULTS = {
    "k_base": 32.0,
    "decay_lambda": 0.005,
    "recent_window_days": 7.0,
    "recent_match_bonus": 1.1,
    "max_margin_bonus": 1.5,
}
