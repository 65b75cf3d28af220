"""Unit tests for odds derivation."""

import pytest

from velo.elo.odds import derive_odds


def test_equal_ratings_give_even_odds():
    quote = derive_odds(1000.0, 1000.0)

    assert quote.prob_a == 0.5
    assert quote.prob_b == 0.5
    assert quote.odds_a == 2.0
    assert quote.odds_b == 2.0
    assert quote.clamped is False


def test_favourite_has_shorter_odds():
    quote = derive_odds(1100.0, 1000.0)

    assert quote.prob_a == pytest.approx(0.6401, abs=1e-4)
    assert quote.prob_a + quote.prob_b == pytest.approx(1.0)
    assert quote.odds_a < 2.0 < quote.odds_b
    assert quote.favourite == "A"


def test_odds_are_inverse_probabilities():
    quote = derive_odds(950.0, 1210.0)

    assert quote.odds_a == pytest.approx(1.0 / quote.prob_a)
    assert quote.odds_b == pytest.approx(1.0 / quote.prob_b)
    assert quote.favourite == "B"


def test_extreme_gap_is_clamped():
    quote = derive_odds(5000.0, 0.0, min_probability=0.01)

    assert quote.clamped is True
    assert quote.prob_a == pytest.approx(0.99)
    assert quote.prob_b == pytest.approx(0.01)
    assert quote.odds_b == pytest.approx(100.0)


def test_overflowing_gap_does_not_divide_by_zero():
    quote = derive_odds(0.0, 1e9)

    assert quote.clamped is True
    assert quote.odds_a == pytest.approx(100.0)


@pytest.mark.parametrize("min_probability", [0.0, 0.5, -0.1, 0.7])
def test_invalid_min_probability(min_probability):
    with pytest.raises(ValueError):
        derive_odds(1000.0, 1000.0, min_probability=min_probability)
