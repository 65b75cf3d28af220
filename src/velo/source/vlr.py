"""
vlr.gg data source adapter.

Upcoming matches come from the community vlr.gg JSON API; match pages,
team pages and team match history are fetched from vlr.gg directly and
parsed with BeautifulSoup.

Key features:
- Async context manager owning a pooled httpx.AsyncClient
- Per-request timeout with bounded exponential-backoff retries
- Team history pagination bounded by settings.history_max_pages
- History detail fetches run concurrently under a semaphore

Usage:
    async with VlrDataSource() as source:
        upcoming = await source.list_upcoming_matches()
        detail = await source.get_match_detail(upcoming[0].external_id)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from bs4 import BeautifulSoup, Tag

from velo.config import settings
from velo.source.base import (
    DataSource,
    DataSourceError,
    DataSourceUnavailable,
    RawMatchDetail,
    RawPlayer,
    RawTeamDetail,
    RawTeamRef,
    RawUpcomingMatch,
    extract_id_from_url,
    parse_score,
)

logger = logging.getLogger(__name__)

DEFAULT_LOGO_URL = "https://www.vlr.gg/img/vlr/tmp/vlr.png"

# Status codes worth retrying; any other 4xx fails immediately
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class RetryStrategy:
    """Exponential backoff retry strategy."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt."""
        delay = self.base_delay * (self.multiplier ** attempt)
        return min(delay, self.max_delay)


def _clean(text: Optional[str]) -> str:
    """Collapse whitespace runs to single spaces."""
    if not text:
        return ""
    return " ".join(text.split())


def _text(node: Optional[Tag]) -> str:
    return _clean(node.get_text(" ")) if node is not None else ""


class VlrDataSource(DataSource):
    """
    Data source backed by vlr.gg.

    Args:
        base_url: vlr.gg site root. Default from settings.
        api_url: JSON API root. Default from settings.
        timeout: Per-request timeout in seconds. Default from settings.
        max_retries: Retries per request. Default from settings.
        concurrency: Max concurrent history detail fetches. Default from settings.
        client: Optional pre-built httpx.AsyncClient (tests inject a
                client with a mock transport).
    """

    name = "vlr"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        concurrency: Optional[int] = None,
        max_history_pages: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.vlr_base_url).rstrip("/")
        self.api_url = (api_url or settings.vlr_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.retry_strategy = RetryStrategy(
            max_retries=max_retries if max_retries is not None else settings.http_max_retries,
            base_delay=settings.http_retry_base_delay,
        )
        self.concurrency = concurrency or settings.fetch_concurrency
        self.max_history_pages = max_history_pages or settings.history_max_pages
        self._client = client
        self._owns_client = client is None

    # =========================================================================
    # HTTP plumbing
    # =========================================================================

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": "velo/1.0 (+rating pipeline)"},
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _get(self, url: str) -> httpx.Response:
        """
        GET with retry logic.

        Raises:
            DataSourceUnavailable: connection could not be established after retries
            DataSourceError: any other failure
        """
        client = self._get_client()
        last_error: Optional[Exception] = None

        for attempt in range(self.retry_strategy.max_retries + 1):
            try:
                response = await client.get(url)
                if response.status_code in _RETRYABLE_STATUS:
                    raise httpx.HTTPStatusError(
                        f"retryable status {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                if e.response.status_code not in _RETRYABLE_STATUS:
                    raise DataSourceError(
                        f"GET {url} failed with status {e.response.status_code}"
                    ) from e
                last_error = e
            except httpx.TransportError as e:
                # Timeouts, connection resets, DNS failures
                last_error = e

            if attempt < self.retry_strategy.max_retries:
                delay = self.retry_strategy.get_delay(attempt)
                logger.warning(
                    "Request to %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    url, attempt + 1, self.retry_strategy.max_retries + 1, last_error, delay,
                )
                await asyncio.sleep(delay)

        if isinstance(last_error, httpx.ConnectError):
            raise DataSourceUnavailable(f"Cannot reach {url}: {last_error}") from last_error
        raise DataSourceError(f"GET {url} failed after retries: {last_error}") from last_error

    async def _get_soup(self, url: str) -> BeautifulSoup:
        response = await self._get(url)
        return BeautifulSoup(response.text, "html.parser")

    def _absolute(self, href: Optional[str]) -> Optional[str]:
        """Turn protocol-relative or site-relative links into absolute URLs."""
        if not href:
            return None
        if href.startswith("//"):
            return "https:" + href
        if href.startswith("/"):
            return self.base_url + href
        return href

    # =========================================================================
    # DataSource interface
    # =========================================================================

    async def list_upcoming_matches(self) -> list[RawUpcomingMatch]:
        response = await self._get(f"{self.api_url}/match?q=upcoming")
        try:
            segments = response.json()["data"]["segments"]
        except (ValueError, KeyError, TypeError) as e:
            raise DataSourceError(f"Malformed upcoming matches payload: {e}") from e

        matches: list[RawUpcomingMatch] = []
        for segment in segments:
            external_id = extract_id_from_url(segment.get("match_page"))
            if not external_id:
                logger.debug("Upcoming segment without match id: %s", segment)
                continue
            matches.append(RawUpcomingMatch(
                external_id=external_id,
                team_a_name=_clean(segment.get("team1")),
                team_b_name=_clean(segment.get("team2")),
                event_name=_clean(segment.get("match_event")),
                event_series=_clean(segment.get("match_series")),
                start_time_raw=segment.get("unix_timestamp"),
                url=self._absolute(segment.get("match_page")),
            ))

        logger.info("Fetched %d upcoming matches from %s", len(matches), self.name)
        return matches

    async def get_match_detail(self, external_id: str) -> RawMatchDetail:
        url = f"{self.base_url}/{external_id}"
        soup = await self._get_soup(url)
        return parse_match_page(soup, external_id, url, self._absolute)

    async def get_team_detail(self, external_id: str) -> RawTeamDetail:
        soup = await self._get_soup(f"{self.base_url}/team/{external_id}")
        return parse_team_page(soup, external_id, self._absolute)

    async def get_team_match_history(self, external_team_id: str) -> list[RawMatchDetail]:
        """
        Fetch completed matches for a team.

        Walks the paginated match list until an empty page or
        max_history_pages, then fetches every match page concurrently.
        Individual match pages that fail are logged and left out.
        """
        match_ids: list[str] = []
        seen: set[str] = set()

        for page in range(1, self.max_history_pages + 1):
            soup = await self._get_soup(
                f"{self.base_url}/team/matches/{external_team_id}/?page={page}"
            )
            links = soup.select("a.wf-card.fc-flex.m-item")
            if not links:
                break
            for link in links:
                match_id = extract_id_from_url(link.get("href"))
                if match_id and match_id not in seen:
                    seen.add(match_id)
                    match_ids.append(match_id)
        else:
            logger.info(
                "Team %s history truncated at %d pages", external_team_id, self.max_history_pages,
            )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _fetch(match_id: str) -> Optional[RawMatchDetail]:
            async with semaphore:
                try:
                    return await self.get_match_detail(match_id)
                except DataSourceUnavailable:
                    raise
                except DataSourceError as e:
                    logger.warning("Skipping history match %s: %s", match_id, e)
                    return None

        details = await asyncio.gather(*(_fetch(mid) for mid in match_ids))
        completed = [d for d in details if d is not None and d.is_final]
        logger.debug(
            "Team %s history: %d match ids, %d completed",
            external_team_id, len(match_ids), len(completed),
        )
        return completed


# =============================================================================
# Page parsers
# =============================================================================

def _parse_team_ref(soup: BeautifulSoup, side: int, absolute) -> RawTeamRef:
    link = soup.select_one(f".match-header-link.mod-{side}")
    name = _text(soup.select_one(f".match-header-link-name.mod-{side} .wf-title-med"))
    href = absolute(link.get("href")) if link is not None else None
    logo = link.select_one("img") if link is not None else None
    return RawTeamRef(
        name=name,
        external_id=extract_id_from_url(href),
        logo_url=absolute(logo.get("src")) if logo is not None else None,
    )


def _parse_scores(soup: BeautifulSoup) -> tuple[Optional[int], Optional[int]]:
    """Scores read left (team 1) to right (team 2) from the header spoiler."""
    spoiler = soup.select_one(".match-header-vs-score .js-spoiler")
    if spoiler is None:
        return None, None
    parts = [p.strip() for p in spoiler.get_text(" ").split(":")]
    if len(parts) != 2:
        return None, None
    return parse_score(parts[0]), parse_score(parts[1])


def _parse_streams(soup: BeautifulSoup) -> list[dict]:
    streams: list[dict] = []
    for el in soup.select(".match-streams .match-streams-container > *"):
        name, link = "", None
        if el.name == "a":
            name = _text(el)
            link = el.get("href")
        else:
            embed = el.select_one(".match-streams-btn-embed")
            external = el.select_one(".match-streams-btn-external")
            if embed is not None:
                name = _text(embed)
            if external is not None:
                link = external.get("href")
        if name and link:
            streams.append({"name": name, "link": link})
    return streams


def parse_match_page(
    soup: BeautifulSoup,
    external_id: str,
    url: Optional[str],
    absolute,
) -> RawMatchDetail:
    """
    Parse a vlr.gg match page into a RawMatchDetail.

    Raises:
        DataSourceError: if the page has no match header (removed match,
                         error page, layout change)
    """
    header = soup.select_one(".match-header")
    if header is None:
        raise DataSourceError(f"Match {external_id}: page has no match header")

    notes = soup.select(".match-header-vs-note")
    status = _text(notes[0]) if notes else ""
    best_of = _text(notes[-1]) if len(notes) > 1 else None

    event_container = soup.select_one(".match-header-event > div > div")
    series = _text(soup.select_one(".match-header-event-series"))
    event_name = _text(event_container)
    if series:
        event_name = _clean(event_name.replace(series, ""))

    date_node = soup.select_one(".match-header-date .moment-tz-convert")
    start_time_raw = date_node.get("data-utc-ts") if date_node is not None else None

    team_a = _parse_team_ref(soup, 1, absolute)
    team_b = _parse_team_ref(soup, 2, absolute)
    if not team_a.name or not team_b.name:
        raise DataSourceError(f"Match {external_id}: missing team names")

    score_a, score_b = _parse_scores(soup) if status.lower() == "final" else (None, None)

    return RawMatchDetail(
        external_id=external_id,
        status=status,
        team_a=team_a,
        team_b=team_b,
        event_name=event_name,
        event_series=series,
        start_time_raw=start_time_raw,
        score_a=score_a,
        score_b=score_b,
        best_of=best_of,
        url=url,
        streams=_parse_streams(soup),
    )


def _country_from_flag(flag: Optional[Tag]) -> Optional[str]:
    """vlr.gg encodes the country in a 'mod-xx' class on the flag icon."""
    if flag is None:
        return None
    for cls in flag.get("class", []):
        if cls.startswith("mod-"):
            return cls[4:].upper()
    return None


def parse_team_page(soup: BeautifulSoup, external_id: str, absolute) -> RawTeamDetail:
    """
    Parse a vlr.gg team page into a RawTeamDetail.

    Staff entries (coach, manager, ...) are not part of the roster.

    Raises:
        DataSourceError: if the page has no team name
    """
    name = _text(soup.select_one(".team-header-name h1"))
    if not name:
        raise DataSourceError(f"Team {external_id}: page has no team name")

    logo = soup.select_one(".team-header-logo img")
    roster: list[RawPlayer] = []

    for item in soup.select(".team-roster-item"):
        alias = item.select_one(".team-roster-item-name-alias")
        if alias is None:
            continue
        country = _country_from_flag(alias.select_one("i.flag"))
        player_name = _clean("".join(
            s for s in alias.find_all(string=True, recursive=True)
        ))
        if not player_name:
            continue

        tags = [_text(t) for t in item.select(".wf-tag.mod-light")]
        is_sub = any("sub" in t.lower() for t in tags)
        role_tag = item.select_one(".team-roster-item-name-role")
        if role_tag is not None and not is_sub:
            continue

        link = item.select_one("a")
        roster.append(RawPlayer(
            name=player_name,
            external_id=extract_id_from_url(link.get("href")) if link is not None else None,
            real_name=_text(item.select_one(".team-roster-item-name-real")) or None,
            country=country,
            role=_text(role_tag) if role_tag is not None else None,
            is_sub=is_sub,
        ))

    return RawTeamDetail(
        external_id=external_id,
        name=name,
        tag=_text(soup.select_one(".team-header-name h2")) or None,
        logo_url=absolute(logo.get("src")) if logo is not None else DEFAULT_LOGO_URL,
        country=_text(soup.select_one(".team-header-country")) or None,
        roster=roster,
    )
