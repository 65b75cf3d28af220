"""
Hot-form K-factor bonus.

A team that played recently is in rhythm, and its latest result is a
better signal of current strength. When the team's previous match falls
within the recent window, its K gets a flat multiplier.

A team's first processed match never earns the bonus. With no previous
match there is no gap to measure, so the multiplier is 1.0; the first
match is not treated as "0 days since the last one".
"""

from velo.elo.constants import K_DEFAULTS


def hot_form_multiplier(
    days_since_last_match: float | None,
    recent_window_days: float | None = None,
    recent_match_bonus: float | None = None,
) -> float:
    """
    Calculate the hot-form K multiplier.

    Args:
        days_since_last_match: Days since the previous processed match,
                               or None if the team has no previous match.
        recent_window_days: Window for the bonus. Default from K_DEFAULTS.
        recent_match_bonus: Multiplier inside the window. Default from K_DEFAULTS.

    Returns:
        recent_match_bonus inside the window, otherwise 1.0
    """
    if recent_window_days is None:
        recent_window_days = K_DEFAULTS["recent_window_days"]
    if recent_match_bonus is None:
        recent_match_bonus = K_DEFAULTS["recent_match_bonus"]

    # No previous match: nothing to be "in form" from
    if days_since_last_match is None:
        return 1.0

    if days_since_last_match <= recent_window_days:
        return recent_match_bonus
    return 1.0
