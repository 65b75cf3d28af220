"""Shared match-status definitions and helpers.

This module is the single source of truth for match statuses and the
allowed transitions between them. Statuses only ever move forward:

    upcoming -> live -> finished
    upcoming -> cancelled
"""

from __future__ import annotations

UPCOMING = "upcoming"
LIVE = "live"
FINISHED = "finished"
CANCELLED = "cancelled"

ALL_MATCH_STATUSES: tuple[str, ...] = (UPCOMING, LIVE, FINISHED, CANCELLED)

MATCH_STATUS_GROUPS: dict[str, tuple[str, ...]] = {
    # Matches still waiting for a result; candidates for a detail refresh.
    "pending": (UPCOMING, LIVE),
    # Statuses that are never left again.
    "terminal": (FINISHED, CANCELLED),
    "all": ALL_MATCH_STATUSES,
}

# Forward edges of the match state machine.
_TRANSITIONS: dict[str, frozenset[str]] = {
    UPCOMING: frozenset({LIVE, FINISHED, CANCELLED}),
    LIVE: frozenset({FINISHED, CANCELLED}),
    FINISHED: frozenset(),
    CANCELLED: frozenset(),
}

# Source-reported states that are not simply "upcoming".
_SOURCE_STATUS_MAP: dict[str, str] = {
    "final": FINISHED,
    "completed": FINISHED,
    "live": LIVE,
    "cancelled": CANCELLED,
    "canceled": CANCELLED,
    "postponed": CANCELLED,
}


def get_status_group(group_name: str) -> tuple[str, ...]:
    """Return a named status group, raising KeyError for unknown names."""
    return MATCH_STATUS_GROUPS[group_name]


def can_transition(current: str, new: str) -> bool:
    """Return True if a match may move from ``current`` to ``new``.

    Re-applying the current status is allowed (a no-op). Unknown statuses
    are never valid targets.
    """
    if new not in _TRANSITIONS or current not in _TRANSITIONS:
        return False
    if current == new:
        return True
    return new in _TRANSITIONS[current]


def status_from_source(raw_status: str | None) -> str:
    """Map a source-reported match state to one of our statuses."""
    if not raw_status:
        return UPCOMING
    return _SOURCE_STATUS_MAP.get(raw_status.strip().lower(), UPCOMING)
