"""
Tests for the chart-pattern recognizer.
"""

import numpy as np

from tradebrain.constants import Bias
from tradebrain.core.patterns import PatternRecognizer, PatternReport, DEFAULT_STRENGTH


class TestInsufficientData:
    """Short histories short-circuit."""

    def test_under_fifty_points(self):
        """Fewer than 50 closes is reported as insufficient data."""
        report = PatternRecognizer().identify(list(range(1, 40)))
        assert report.insufficient_data
        assert report.patterns == []
        assert report.strength == DEFAULT_STRENGTH
        assert report.label == "insufficient_data"

    def test_none_history(self):
        assert PatternRecognizer().identify(None).insufficient_data


class TestGoldenCross:
    """50/200 SMA crossovers."""

    def test_golden_cross_detected(self, golden_cross_prices):
        """The crafted series triggers a golden cross and no death cross."""
        report = PatternRecognizer().identify(golden_cross_prices)
        assert "Golden Cross" in report.names
        assert "Death Cross" not in report.names
        assert report.strength >= 0.85

    def test_golden_cross_is_deterministic(self, golden_cross_prices):
        """Same history in, same matched set out."""
        recognizer = PatternRecognizer()
        first = recognizer.identify(golden_cross_prices)
        second = recognizer.identify(list(golden_cross_prices))
        assert first.names == second.names
        assert first.strength == second.strength
        assert [p.to_dict() for p in first.patterns] == [p.to_dict() for p in second.patterns]

    def test_death_cross_detected(self):
        """Mirror image of the golden-cross series."""
        closes = [100.0] * 150 + [101.0] * 50 + [1.0]
        assert PatternRecognizer.is_death_cross(np.asarray(closes))

    def test_cross_needs_two_hundred_points(self):
        assert not PatternRecognizer.is_golden_cross(np.arange(1.0, 150.0))


class TestShapePatterns:
    """Flags, ranges and the report summary."""

    def test_bull_flag_on_steady_uptrend(self):
        """A smooth rise has a strong trend and low short-term volatility."""
        closes = 100.0 * 1.03 ** np.arange(60)
        assert PatternRecognizer.is_bull_flag(closes)
        assert not PatternRecognizer.is_bear_flag(closes)

    def test_bear_flag_on_steady_downtrend(self):
        closes = 100.0 * 0.97 ** np.arange(60)
        assert PatternRecognizer.is_bear_flag(closes)

    def test_range_on_flat_series(self):
        closes = np.full(60, 50.0)
        assert PatternRecognizer.is_range(closes)
        report = PatternRecognizer().identify(closes)
        assert "Range Bound" in report.names
        assert report.net_bias is Bias.NEUTRAL

    def test_head_and_shoulders(self):
        closes = np.concatenate([np.full(20, 100.0), np.full(20, 120.0), np.full(20, 101.0)])
        assert PatternRecognizer.is_head_and_shoulders(closes)

    def test_strength_is_max_confidence(self, sample_prices):
        report = PatternRecognizer().identify(sample_prices)
        expected = max((p.confidence for p in report.patterns), default=DEFAULT_STRENGTH)
        assert report.strength == expected

    def test_no_pattern_label(self):
        """An empty report is labelled as having no clear pattern."""
        assert PatternReport().label == "No Clear Pattern"
