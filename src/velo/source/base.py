"""
Data source adapter interface and common data structures.

Every source (currently only vlr.gg) normalizes what it fetches into the
raw dataclasses below. The reconciler only ever sees these records, never
HTML or API payloads.

All score and timestamp fields are kept as the source reported them
(strings / optional ints); parsing into typed values happens during
reconciliation so that a bad value skips one record instead of failing the
whole fetch.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class DataSourceError(Exception):
    """A single adapter call failed (HTTP error, timeout, malformed payload)."""


class DataSourceUnavailable(DataSourceError):
    """The source cannot be reached at all; the current job should abort."""


@dataclass
class RawUpcomingMatch:
    """An entry from the source's upcoming-matches listing."""

    external_id: str
    team_a_name: str = ""
    team_b_name: str = ""
    event_name: str = ""
    event_series: str = ""
    start_time_raw: Optional[str] = None
    url: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"<RawUpcomingMatch({self.external_id}: {self.team_a_name} vs "
            f"{self.team_b_name})>"
        )


@dataclass
class RawTeamRef:
    """A team as referenced from a match page."""

    name: str
    external_id: Optional[str] = None
    logo_url: Optional[str] = None


@dataclass
class RawMatchDetail:
    """
    Full match record, either upcoming-shaped or finished-shaped.

    ``status`` is the state the source reports ('final', 'live', or a
    countdown / 'upcoming'); score_a/score_b are only meaningful when the
    match is final.
    """

    external_id: str
    status: str
    team_a: RawTeamRef
    team_b: RawTeamRef
    event_name: str = ""
    event_series: str = ""
    start_time_raw: Optional[str] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    best_of: Optional[str] = None
    url: Optional[str] = None
    streams: list[dict] = field(default_factory=list)

    @property
    def is_final(self) -> bool:
        return self.status.strip().lower() == "final"

    def __repr__(self) -> str:
        return (
            f"<RawMatchDetail({self.external_id}: {self.team_a.name} vs "
            f"{self.team_b.name}, {self.status})>"
        )


@dataclass
class RawPlayer:
    """A roster entry from a team page."""

    name: str
    external_id: Optional[str] = None
    real_name: Optional[str] = None
    country: Optional[str] = None
    role: Optional[str] = None
    is_sub: bool = False


@dataclass
class RawTeamDetail:
    """Extended team record with roster."""

    external_id: str
    name: str
    tag: Optional[str] = None
    logo_url: Optional[str] = None
    country: Optional[str] = None
    roster: list[RawPlayer] = field(default_factory=list)


class DataSource(ABC):
    """
    Abstract data source adapter.

    All calls may suspend on network I/O. Implementations raise
    DataSourceError for a failed call and DataSourceUnavailable when the
    source cannot be reached at all.
    """

    name: str = "base"

    @abstractmethod
    async def list_upcoming_matches(self) -> list[RawUpcomingMatch]:
        """Current list of upcoming matches."""

    @abstractmethod
    async def get_match_detail(self, external_id: str) -> RawMatchDetail:
        """Full detail for one match."""

    @abstractmethod
    async def get_team_detail(self, external_id: str) -> RawTeamDetail:
        """Extended detail (logo, roster) for one team."""

    @abstractmethod
    async def get_team_match_history(self, external_team_id: str) -> list[RawMatchDetail]:
        """Completed matches for one team."""

    async def close(self) -> None:
        """Release any held resources (HTTP clients)."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# =============================================================================
# Parsing helpers
# =============================================================================

_ID_PATTERN = re.compile(r"/(?:team/)?(\d+)")

_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
)


def extract_id_from_url(url: Optional[str]) -> Optional[str]:
    """
    Extract the numeric id from a vlr.gg match or team URL.

    Examples:
        extract_id_from_url("https://www.vlr.gg/353177/sentinels-vs-g2")  # -> '353177'
        extract_id_from_url("/team/2/sentinels")                         # -> '2'
    """
    if not url:
        return None
    match = _ID_PATTERN.search(url)
    return match.group(1) if match else None


def parse_start_time(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse a source timestamp into a naive UTC datetime.

    Accepts ISO 8601 (with or without offset), 'YYYY-MM-DD HH:MM[:SS]'
    (already UTC), or epoch seconds.

    Returns:
        The parsed datetime, or None if the value cannot be parsed. Callers
        must skip the record rather than substitute a default.
    """
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None

    if value.isdigit():
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None

    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_score(raw: Optional[str]) -> Optional[int]:
    """Parse a map count like '2' or ' 13 ', returning None if not numeric."""
    if raw is None:
        return None
    value = str(raw).strip()
    if not value.isdigit():
        return None
    return int(value)
