"""
Tournament tier classification.

Maps a tournament's display name to an importance tier used to scale the
K-factor. Checks run in priority order and the first hit wins:

    1. "champions" / "masters"                         -> S
    2. "playoffs" / "final", or a Game Changers event
       at its "main stage" / "final"                   -> A
    3. "challengers"                                   -> B
    4. Game Changers (any other stage)                 -> C
    5. Anything else                                   -> C
"""

import re

# Marker for the secondary (Game Changers) circuit
SECONDARY_CIRCUIT = "game changers"

_TIER_S = re.compile(r"champions|masters", re.IGNORECASE)
_TIER_A = re.compile(
    r"playoffs|final|" + SECONDARY_CIRCUIT + r".*(main stage|final)",
    re.IGNORECASE,
)
_TIER_B = re.compile(r"challengers", re.IGNORECASE)
_TIER_C_SECONDARY = re.compile(SECONDARY_CIRCUIT, re.IGNORECASE)


def classify_tier(tournament_name: str | None) -> str:
    """
    Determine the tier of a tournament from its name.

    Args:
        tournament_name: Display name, e.g. "VCT 2024: Masters Shanghai"

    Returns:
        One of 'S', 'A', 'B', 'C'. Unmatched or empty input is 'C'.

    Examples:
        classify_tier("VALORANT Champions 2023")                 # -> 'S'
        classify_tier("VCT 2024: EMEA Stage 2 - Playoffs")       # -> 'A'
        classify_tier("Game Changers 2024: EMEA - Main Stage")   # -> 'A'
        classify_tier("Challengers League 2024 North America")   # -> 'B'
        classify_tier("VCT 2024: Game Changers France")          # -> 'C'
    """
    if not tournament_name:
        return "C"
    if _TIER_S.search(tournament_name):
        return "S"
    if _TIER_A.search(tournament_name):
        return "A"
    if _TIER_B.search(tournament_name):
        return "B"
    if _TIER_C_SECONDARY.search(tournament_name):
        return "C"
    return "C"
