"""
Unit tests for the vlr.gg data source.

Page parsers run on trimmed copies of real vlr.gg markup; the HTTP layer
runs against httpx.MockTransport so no network is touched.
"""

from datetime import datetime

import httpx
import pytest
from bs4 import BeautifulSoup

from velo.source.base import (
    DataSourceError,
    DataSourceUnavailable,
    extract_id_from_url,
    parse_score,
    parse_start_time,
)
from velo.source.vlr import RetryStrategy, VlrDataSource, parse_match_page, parse_team_page

MATCH_PAGE = """
<div class="match-header">
  <div class="match-header-super">
    <a class="match-header-event" href="/event/2097/valorant-champions-2024">
      <img src="//owcdn.net/img/champions.png">
      <div>
        <div style="font-weight: 700;">Valorant Champions 2024</div>
        <div class="match-header-event-series">Playoffs: Grand Final</div>
      </div>
    </a>
    <div class="match-header-date">
      <div class="moment-tz-convert" data-utc-ts="2024-08-25 19:00:00">Sunday, August 25th</div>
    </div>
  </div>
  <div class="match-header-vs">
    <a class="match-header-link wf-link-hover mod-1" href="/team/2593/fnatic">
      <img src="//owcdn.net/img/fnatic.png">
      <div class="match-header-link-name mod-1"><div class="wf-title-med">FNATIC</div></div>
    </a>
    <div class="match-header-vs-score">
      <div class="match-header-vs-note">final</div>
      <div class="js-spoiler">
        <span class="match-header-vs-score-loser">2</span>
        <span class="match-header-vs-score-colon">:</span>
        <span class="match-header-vs-score-winner">3</span>
      </div>
      <div class="match-header-vs-note">Bo5</div>
    </div>
    <a class="match-header-link wf-link-hover mod-2" href="/team/11058/edward-gaming">
      <img src="//owcdn.net/img/edg.png">
      <div class="match-header-link-name mod-2"><div class="wf-title-med">EDward Gaming</div></div>
    </a>
  </div>
</div>
<div class="match-streams">
  <div class="match-streams-container">
    <a href="https://www.twitch.tv/valorant">Valorant</a>
    <div><span class="match-streams-btn-embed">Valorant EMEA</span>
      <a class="match-streams-btn-external" href="https://www.twitch.tv/valorant_emea"></a></div>
  </div>
</div>
"""

UPCOMING_PAGE = """
<div class="match-header">
  <a class="match-header-event" href="/event/1">
    <div><div style="font-weight: 700;">Challengers League 2024 North America</div>
    <div class="match-header-event-series">Split 3: Week 2</div></div>
  </a>
  <div class="match-header-date"><div class="moment-tz-convert" data-utc-ts="2024-09-01 22:00:00"></div></div>
  <a class="match-header-link mod-1" href="/team/100/alpha"><img src="/img/vlr/tmp/vlr.png">
    <div class="match-header-link-name mod-1"><div class="wf-title-med">Alpha</div></div></a>
  <div class="match-header-vs-score">
    <div class="match-header-vs-note">2d 4h</div>
    <div class="match-header-vs-note">Bo3</div>
  </div>
  <div class="match-header-link mod-2">
    <div class="match-header-link-name mod-2"><div class="wf-title-med">TBD</div></div></div>
</div>
"""

TEAM_PAGE = """
<div class="team-header">
  <div class="team-header-logo"><img src="//owcdn.net/img/sen.png"></div>
  <div class="team-header-name">
    <h1 class="wf-title">Sentinels</h1>
    <h2 class="wf-title team-header-tag">SEN</h2>
  </div>
  <div class="team-header-country"><i class="flag mod-us"></i> United States</div>
</div>
<div class="team-roster-item">
  <a href="/player/9/tenz">
    <div class="team-roster-item-name">
      <div class="team-roster-item-name-alias"><i class="flag mod-ca"></i> TenZ</div>
      <div class="team-roster-item-name-real">Tyson Ngo</div>
    </div>
  </a>
</div>
<div class="team-roster-item">
  <a href="/player/4164/zekken">
    <div class="team-roster-item-name">
      <div class="team-roster-item-name-alias"><i class="flag mod-us"></i> zekken</div>
      <div class="team-roster-item-name-real">Zachary Patrone</div>
    </div>
  </a>
</div>
<div class="team-roster-item">
  <a href="/player/555/johnqt">
    <div class="team-roster-item-name">
      <div class="team-roster-item-name-alias"><i class="flag mod-ma"></i> johnqt</div>
      <div class="wf-tag mod-light team-roster-item-name-role">Sub</div>
    </div>
  </a>
</div>
<div class="team-roster-item">
  <a href="/player/777/kaplan">
    <div class="team-roster-item-name">
      <div class="team-roster-item-name-alias"><i class="flag mod-us"></i> kaplan</div>
      <div class="wf-tag mod-light team-roster-item-name-role">manager</div>
    </div>
  </a>
</div>
"""


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


@pytest.fixture
def source():
    return VlrDataSource(base_url="https://www.vlr.gg", api_url="https://api.test")


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.vlr.gg/353177/sentinels-vs-g2-champions-tour", "353177"),
            ("/353177/sentinels-vs-g2", "353177"),
            ("/team/2/sentinels", "2"),
            ("https://www.vlr.gg/team/2593/fnatic", "2593"),
            ("/team/matches/2/?page=3", "2"),
            ("https://www.vlr.gg/events", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract_id_from_url(self, url, expected):
        assert extract_id_from_url(url) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2024-08-25 19:00:00", datetime(2024, 8, 25, 19, 0)),
            ("2024-08-25 19:00", datetime(2024, 8, 25, 19, 0)),
            ("2024-08-25T19:00:00Z", datetime(2024, 8, 25, 19, 0)),
            ("2024-08-25T21:00:00+02:00", datetime(2024, 8, 25, 19, 0)),
            ("1724612400", datetime(2024, 8, 25, 19, 0)),
        ],
    )
    def test_parse_start_time(self, raw, expected):
        assert parse_start_time(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "TBD", "25/08/2024 7pm", "2024-13-45 99:00:00"])
    def test_parse_start_time_invalid(self, raw):
        assert parse_start_time(raw) is None

    def test_parse_score(self):
        assert parse_score(" 13 ") == 13
        assert parse_score("-") is None
        assert parse_score(None) is None


# =============================================================================
# Page parsers
# =============================================================================

class TestMatchPage:

    def test_finished_match(self, source):
        detail = parse_match_page(_soup(MATCH_PAGE), "378829", "https://www.vlr.gg/378829", source._absolute)

        assert detail.is_final
        assert detail.event_name == "Valorant Champions 2024"
        assert detail.event_series == "Playoffs: Grand Final"
        assert detail.start_time_raw == "2024-08-25 19:00:00"
        assert detail.team_a.name == "FNATIC"
        assert detail.team_a.external_id == "2593"
        assert detail.team_a.logo_url == "https://owcdn.net/img/fnatic.png"
        assert detail.team_b.name == "EDward Gaming"
        assert detail.team_b.external_id == "11058"
        assert (detail.score_a, detail.score_b) == (2, 3)
        assert detail.best_of == "Bo5"
        assert detail.streams == [
            {"name": "Valorant", "link": "https://www.twitch.tv/valorant"},
            {"name": "Valorant EMEA", "link": "https://www.twitch.tv/valorant_emea"},
        ]

    def test_upcoming_match_with_tbd(self, source):
        detail = parse_match_page(_soup(UPCOMING_PAGE), "400001", None, source._absolute)

        assert not detail.is_final
        assert detail.status == "2d 4h"
        assert detail.score_a is None and detail.score_b is None
        assert detail.team_a.logo_url == "https://www.vlr.gg/img/vlr/tmp/vlr.png"
        assert detail.team_b.name == "TBD"
        assert detail.team_b.external_id is None

    def test_missing_header_raises(self, source):
        with pytest.raises(DataSourceError):
            parse_match_page(_soup("<html><body>Not found</body></html>"), "1", None, source._absolute)


class TestTeamPage:

    def test_team_with_roster(self, source):
        team = parse_team_page(_soup(TEAM_PAGE), "2", source._absolute)

        assert team.name == "Sentinels"
        assert team.tag == "SEN"
        assert team.country == "United States"
        assert team.logo_url == "https://owcdn.net/img/sen.png"
        assert [p.name for p in team.roster] == ["TenZ", "zekken", "johnqt"]

        tenz = team.roster[0]
        assert tenz.external_id == "9"
        assert tenz.real_name == "Tyson Ngo"
        assert tenz.country == "CA"
        assert tenz.is_sub is False

        assert team.roster[2].is_sub is True

    def test_missing_name_raises(self, source):
        with pytest.raises(DataSourceError):
            parse_team_page(_soup("<div></div>"), "2", source._absolute)


# =============================================================================
# HTTP layer
# =============================================================================

def _source_with(handler, **kwargs) -> tuple[VlrDataSource, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    source = VlrDataSource(
        base_url="https://www.vlr.gg",
        api_url="https://api.test",
        client=client,
        **kwargs,
    )
    source.retry_strategy = RetryStrategy(max_retries=2, base_delay=0.0)
    return source, client


@pytest.mark.asyncio
async def test_list_upcoming_matches():
    payload = {
        "data": {
            "status": 200,
            "segments": [
                {
                    "team1": "Sentinels",
                    "team2": "G2 Esports",
                    "match_event": "Champions Tour 2024: Americas Stage 2",
                    "match_series": "Week 3",
                    "unix_timestamp": "2024-06-01 18:00:00",
                    "match_page": "https://www.vlr.gg/353177/sentinels-vs-g2",
                },
                {"team1": "X", "team2": "Y", "match_page": ""},
            ],
        }
    }

    def handler(request):
        assert request.url.path == "/match"
        assert request.url.params["q"] == "upcoming"
        return httpx.Response(200, json=payload)

    source, client = _source_with(handler)
    async with client:
        upcoming = await source.list_upcoming_matches()

    assert len(upcoming) == 1
    assert upcoming[0].external_id == "353177"
    assert upcoming[0].team_a_name == "Sentinels"
    assert upcoming[0].start_time_raw == "2024-06-01 18:00:00"


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, text=TEAM_PAGE)

    source, client = _source_with(handler)
    async with client:
        team = await source.get_team_detail("2")

    assert team.name == "Sentinels"
    assert calls == ["/team/2"] * 3


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(404)

    source, client = _source_with(handler)
    async with client:
        with pytest.raises(DataSourceError):
            await source.get_match_detail("999")

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retries_exhausted_raises():
    def handler(request):
        return httpx.Response(500)

    source, client = _source_with(handler)
    async with client:
        with pytest.raises(DataSourceError) as exc_info:
            await source.get_match_detail("1")

    assert not isinstance(exc_info.value, DataSourceUnavailable)


@pytest.mark.asyncio
async def test_unreachable_source():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    source, client = _source_with(handler)
    async with client:
        with pytest.raises(DataSourceUnavailable):
            await source.list_upcoming_matches()


@pytest.mark.asyncio
async def test_team_match_history_paginates_and_keeps_final():
    history_pages = {
        "1": '<a class="wf-card fc-flex m-item" href="/378829/fnatic-vs-edg"></a>'
             '<a class="wf-card fc-flex m-item" href="/400001/alpha-vs-tbd"></a>',
        "2": '<a class="wf-card fc-flex m-item" href="/378829/fnatic-vs-edg"></a>',
        "3": "<div>no more matches</div>",
    }
    requested = []

    def handler(request):
        path = request.url.path
        requested.append(path)
        if path.startswith("/team/matches/2593"):
            return httpx.Response(200, text=history_pages[request.url.params["page"]])
        if path == "/378829":
            return httpx.Response(200, text=MATCH_PAGE)
        if path == "/400001":
            return httpx.Response(200, text=UPCOMING_PAGE)
        return httpx.Response(404)

    source, client = _source_with(handler, concurrency=2)
    async with client:
        history = await source.get_team_match_history("2593")

    assert [d.external_id for d in history] == ["378829"]
    assert requested.count("/378829") == 1
    assert "/team/matches/2593/" in requested


@pytest.mark.asyncio
async def test_team_match_history_bounded_pages():
    pages_seen = []

    def handler(request):
        if request.url.path.startswith("/team/matches/"):
            pages_seen.append(request.url.params["page"])
            return httpx.Response(200, text='<a class="wf-card fc-flex m-item" href="/1/a-vs-b"></a>')
        return httpx.Response(200, text=MATCH_PAGE)

    source, client = _source_with(handler, max_history_pages=3)
    async with client:
        await source.get_team_match_history("7")

    assert pages_seen == ["1", "2", "3"]
