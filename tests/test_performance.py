"""
Tests for the strategy performance tracker.
"""

import pytest

from tradebrain.constants import MarketCondition
from tradebrain.core.regime import MarketConditionClassifier
from tradebrain.core.state import ModelState
from tradebrain.trading.performance import StrategyPerformanceTracker


@pytest.fixture
def tracker(cfg):
    return StrategyPerformanceTracker(ModelState.default(cfg), cfg)


def feed(tracker, name, returns, condition=MarketCondition.SIDEWAYS):
    for r in returns:
        tracker.record_outcome([name], r > 0, r, condition)


class TestWeights:
    """Bounded weight multipliers."""

    def test_ttm_squeeze_scenario(self, tracker):
        """4 wins out of 5 at +8% average lifts the weight above neutral."""
        assert tracker.weight("ttm_squeeze") == 1.0
        feed(tracker, "ttm_squeeze", [12.0, 10.0, 9.0, 15.0, -6.0])
        rec = tracker.state.strategies["ttm_squeeze"]
        assert rec.trades == 5 and rec.wins == 4
        assert rec.avg_return == pytest.approx(8.0)
        weights = tracker.derive_weights()
        assert 1.0 < weights["ttm_squeeze"] <= 2.0

    def test_too_few_trades_stay_neutral(self, tracker):
        feed(tracker, "dark_pool", [5.0, 6.0])
        tracker.derive_weights()
        assert tracker.weight("dark_pool") == 1.0

    def test_extreme_streaks_stay_in_bounds(self, tracker):
        """Long win and loss streaks clamp to [0.1, 2.0]."""
        feed(tracker, "options_flow", [20.0] * 40)
        feed(tracker, "gamma_exposure", [-20.0] * 40)
        weights = tracker.derive_weights()
        assert weights["options_flow"] == 2.0
        assert weights["gamma_exposure"] == 0.1
        assert all(0.1 <= w <= 2.0 for w in weights.values())

    def test_all_losses_floor(self, tracker):
        """With a zero average win rate, traded strategies take the floor."""
        feed(tracker, "technical_analysis", [-4.0] * 5)
        tracker.derive_weights()
        assert tracker.weight("technical_analysis") == 0.1
        assert tracker.weight("ttm_squeeze") == 1.0

    def test_unknown_strategy_is_neutral(self, tracker):
        assert tracker.weight("never_seen") == 1.0

    def test_strategy_bonus_capped(self, tracker):
        for name in ("options_flow", "dark_pool", "unusual_activity"):
            feed(tracker, name, [10.0] * 5)
        tracker.derive_weights()
        bonus = tracker.strategy_bonus(["options_flow", "dark_pool", "unusual_activity"])
        assert bonus == 10.0
        assert tracker.strategy_bonus([]) == 0.0

    def test_strategy_bonus_negative(self, tracker):
        feed(tracker, "options_flow", [10.0] * 5)
        feed(tracker, "gamma_exposure", [-10.0] * 5)
        tracker.derive_weights()
        assert tracker.strategy_bonus(["gamma_exposure"]) < 0


class TestConditionsAndPatterns:
    """Per-condition buckets and pattern statistics."""

    def test_condition_bucket_updated(self, tracker):
        tracker.record_outcome(["ttm_squeeze"], True, 5.0, MarketCondition.BULLISH)
        assert tracker.state.conditions["bullish"].trades == 1
        assert tracker.state.conditions["bullish"].win_rate == 1.0

    def test_unknown_condition_not_recorded(self, tracker):
        tracker.record_outcome(["ttm_squeeze"], True, 5.0, MarketCondition.UNKNOWN)
        assert "unknown" not in tracker.state.conditions
        assert tracker.state.strategies["ttm_squeeze"].trades == 1

    def test_condition_analysis_ranks_strategies(self, tracker):
        feed(tracker, "options_flow", [5.0] * 5, MarketCondition.BEARISH)
        feed(tracker, "dark_pool", [5.0, -5.0, -5.0, -5.0, -5.0], MarketCondition.BEARISH)
        feed(tracker, "gamma_exposure", [5.0] * 3, MarketCondition.BEARISH)
        bearish = tracker.condition_analysis()["bearish"]
        assert bearish["trades"] == 13
        assert [s["strategy"] for s in bearish["strategies"]] == ["options_flow", "dark_pool"]

    def test_pattern_success_rate(self, tracker):
        assert tracker.pattern_success_rate(["Bull Flag"]) is None
        tracker.record_patterns(["Bull Flag"], 8.0)
        tracker.record_patterns(["Bull Flag"], -3.0)
        assert tracker.pattern_success_rate(["Bull Flag"]) == 0.5
        assert tracker.state.patterns["Bull Flag"].total_return == 5.0


class TestRecommendations:
    """Recent-vs-overall weight recommendations."""

    def test_increase_when_recent_improves(self, tracker):
        feed(tracker, "options_flow", [-5.0] * 20 + [5.0] * 20)
        recs = tracker.recommendations()
        assert recs[0]["strategy"] == "options_flow"
        assert recs[0]["recommendation"] == "INCREASE_WEIGHT"
        assert recs[0]["confidence"] == 0.9

    def test_decrease_when_recent_worsens(self, tracker):
        feed(tracker, "dark_pool", [5.0] * 20 + [-5.0] * 20)
        rec = tracker.recommendations()[0]
        assert rec["recommendation"] == "DECREASE_WEIGHT"

    def test_maintain_and_minimum_sample(self, tracker):
        feed(tracker, "ttm_squeeze", [5.0, -5.0] * 6)
        feed(tracker, "dark_pool", [5.0] * 9)
        recs = tracker.recommendations()
        assert [r["strategy"] for r in recs] == ["ttm_squeeze"]
        assert recs[0]["recommendation"] == "MAINTAIN"

    def test_best_and_worst(self, tracker):
        assert tracker.best_strategy() is None
        feed(tracker, "options_flow", [5.0] * 4)
        feed(tracker, "dark_pool", [-5.0] * 4)
        assert tracker.best_strategy() == "options_flow"
        assert tracker.worst_strategy() == "dark_pool"


class TestMarketConditionClassifier:
    """Entry-context bucketing."""

    @pytest.mark.parametrize("context, expected", [
        ({"changePercent": 3.5}, MarketCondition.BULLISH),
        ({"changePercent": -2.5}, MarketCondition.BEARISH),
        ({"changePercent": 0.5, "volume": 3e6, "avgVolume": 1e6}, MarketCondition.HIGH_VOLATILITY),
        ({"changePercent": 0.5, "volume": 2e5, "avgVolume": 1e6}, MarketCondition.LOW_VOLATILITY),
        ({"changePercent": 0.5, "volume": 1e6, "avgVolume": 1e6}, MarketCondition.SIDEWAYS),
        ({}, MarketCondition.UNKNOWN),
        (None, MarketCondition.UNKNOWN),
    ])
    def test_detect(self, context, expected):
        assert MarketConditionClassifier.detect(context) is expected

    def test_change_from_prices(self):
        assert MarketConditionClassifier.detect({"prices": [100.0, 105.0]}) is MarketCondition.BULLISH
