"""Unit tests for the match status state machine."""

import pytest

from velo.match_statuses import (
    ALL_MATCH_STATUSES,
    CANCELLED,
    FINISHED,
    LIVE,
    UPCOMING,
    can_transition,
    get_status_group,
    status_from_source,
)


@pytest.mark.parametrize(
    "current,new",
    [
        (UPCOMING, LIVE),
        (UPCOMING, FINISHED),
        (UPCOMING, CANCELLED),
        (LIVE, FINISHED),
        (LIVE, CANCELLED),
    ],
)
def test_forward_transitions_allowed(current, new):
    assert can_transition(current, new) is True


@pytest.mark.parametrize(
    "current,new",
    [
        (FINISHED, UPCOMING),
        (FINISHED, LIVE),
        (LIVE, UPCOMING),
        (CANCELLED, UPCOMING),
        (FINISHED, CANCELLED),
    ],
)
def test_regressions_rejected(current, new):
    assert can_transition(current, new) is False


@pytest.mark.parametrize("status", ALL_MATCH_STATUSES)
def test_same_status_is_noop(status):
    assert can_transition(status, status) is True


def test_unknown_status_rejected():
    assert can_transition(UPCOMING, "scheduled") is False
    assert can_transition("scheduled", FINISHED) is False


@pytest.mark.parametrize(
    "raw,status",
    [
        ("final", FINISHED),
        (" Final ", FINISHED),
        ("LIVE", LIVE),
        ("postponed", CANCELLED),
        ("2h 30m", UPCOMING),
        ("upcoming", UPCOMING),
        ("", UPCOMING),
        (None, UPCOMING),
    ],
)
def test_status_from_source(raw, status):
    assert status_from_source(raw) == status


def test_status_groups():
    assert get_status_group("pending") == (UPCOMING, LIVE)
    assert set(get_status_group("terminal")) == {FINISHED, CANCELLED}
    with pytest.raises(KeyError):
        get_status_group("nope")
