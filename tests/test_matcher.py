"""Test cross-venue matching and the volume filter."""

import pytest

from divergence_arb.core.matcher import (
    average_diff_percent, calculate_divergence, find_opportunities, match_snapshots,
)
from divergence_arb.core.volume_filter import filter_by_volume, restrict_to_symbols
from sample_data import snapshot


class TestCalculateDivergence:
    """Test divergence against the venue A reference price."""

    def test_percent_uses_venue_a_as_reference(self):
        abs_diff, diff_percent = calculate_divergence(100.0, 101.0)
        assert abs_diff == pytest.approx(1.0)
        assert diff_percent == pytest.approx(1.0)

    def test_direction_does_not_change_magnitude(self):
        assert calculate_divergence(101.0, 100.0)[0] == pytest.approx(1.0)

    def test_non_positive_reference_gives_zero_percent(self):
        assert calculate_divergence(0.0, 5.0) == (5.0, 0.0)


class TestMatchSnapshots:
    """Test intersection and ranking."""

    def test_matched_set_is_intersection(self):
        a = snapshot("gateio", {"BTC": 100.0, "ETH": 50.0, "ORBS": 0.02})
        b = snapshot("orderly", {"BTC": 100.5, "ETH": 50.0, "WOO": 0.3})
        pairs = match_snapshots(a, b)
        assert {pair.symbol for pair in pairs} == {"BTC", "ETH"}

    def test_prices_carried_verbatim(self):
        a = snapshot("gateio", {"BTC": 100.123})
        b = snapshot("orderly", {"BTC": 99.877})
        pair = match_snapshots(a, b)[0]
        assert pair.price_a == 100.123
        assert pair.price_b == 99.877

    def test_sorted_by_divergence_descending(self):
        a = snapshot("gateio", {"X": 100.0, "Y": 100.0, "Z": 100.0})
        b = snapshot("orderly", {"X": 100.8, "Y": 101.2, "Z": 100.5})
        pairs = match_snapshots(a, b)
        assert [pair.symbol for pair in pairs] == ["Y", "X", "Z"]
        assert pairs[0].diff_percent == pytest.approx(1.2)

    def test_ties_keep_venue_a_order(self):
        a = snapshot("gateio", {"ETH": 100.0, "BTC": 100.0, "SOL": 100.0})
        b = snapshot("orderly", {"SOL": 101.0, "BTC": 101.0, "ETH": 101.0})
        assert [pair.symbol for pair in match_snapshots(a, b)] == ["ETH", "BTC", "SOL"]

    def test_duplicate_symbol_last_wins(self):
        a = snapshot("gateio", {"BTC": 100.0}) + snapshot("gateio", {"BTC": 110.0})
        b = snapshot("orderly", {"BTC": 110.0})
        pair = match_snapshots(a, b)[0]
        assert pair.price_a == 110.0
        assert pair.diff_percent == 0.0

    def test_empty_snapshots(self):
        assert match_snapshots([], snapshot("orderly", {"BTC": 1.0})) == []

    def test_find_opportunities_and_average(self):
        a = snapshot("gateio", {"X": 100.0, "Y": 100.0})
        b = snapshot("orderly", {"X": 101.0, "Y": 100.2})
        pairs = match_snapshots(a, b)
        assert [pair.symbol for pair in find_opportunities(pairs, 0.5)] == ["X"]
        assert average_diff_percent(pairs) == pytest.approx(0.6)
        assert average_diff_percent([]) == 0.0


class TestVolumeFilter:
    """Test the both-legs volume rule."""

    def test_one_leg_below_minimum_is_excluded(self):
        a = snapshot("gateio", {"RUNE": 1.0}, {"RUNE": 400_000})
        b = snapshot("orderly", {"RUNE": 1.0}, {"RUNE": 250_000})
        assert filter_by_volume(a, b, 300_000) == []

    def test_both_legs_above_minimum_is_included_with_average(self):
        a = snapshot("gateio", {"RUNE": 1.0}, {"RUNE": 400_000})
        b = snapshot("orderly", {"RUNE": 1.01}, {"RUNE": 350_000})
        pairs = filter_by_volume(a, b, 300_000)
        assert len(pairs) == 1
        assert pairs[0].avg_volume == pytest.approx(375_000)
        assert pairs[0].volume_a == 400_000
        assert pairs[0].volume_b == 350_000

    def test_high_average_does_not_rescue_thin_leg(self):
        a = snapshot("gateio", {"BTC": 1.0}, {"BTC": 10_000_000})
        b = snapshot("orderly", {"BTC": 1.0}, {"BTC": 299_999})
        assert filter_by_volume(a, b, 300_000) == []

    def test_sorted_by_average_volume(self):
        volumes = {"A": 500_000, "B": 900_000, "C": 700_000}
        a = snapshot("gateio", {s: 1.0 for s in volumes}, volumes)
        b = snapshot("orderly", {s: 1.0 for s in volumes}, volumes)
        assert [pair.symbol for pair in filter_by_volume(a, b, 300_000)] == ["B", "C", "A"]

    def test_restrict_to_symbols(self):
        entries = snapshot("gateio", {"A": 1.0, "B": 2.0})
        assert [entry.symbol for entry in restrict_to_symbols(entries, {"B"})] == ["B"]
