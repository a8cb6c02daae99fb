"""
End-to-end tests for the LearningCore facade.

Verifies:
- The full selection → entry → outcome → learning loop
- Referential errors come back as failed Results, never exceptions
- Persistence round-trips and degraded stores
- Reset scopes
"""

import pytest

from tradebrain.engine import LearningCore, Result
from tradebrain.trading.journal import MemoryStore, JsonFileStore
from tradebrain.utils.errors import PersistenceError


def enter(core, trade_entry, **kwargs):
    result = core.record_entry(trade_entry(**kwargs))
    assert result.ok, result.error
    return result.value["trade_id"]


def run_trades(core, trade_entry, returns, strategy="ttm_squeeze"):
    for i, ret in enumerate(returns):
        trade_id = enter(core, trade_entry, symbol=f"S{i}", strategy=strategy)
        result = core.record_outcome(trade_id, {"percentReturn": ret, "exitReason": "manual"})
        assert result.ok, result.error


class FailingStore(MemoryStore):
    def save(self, name, doc):
        raise PersistenceError("disk full")


class TestLearningLoop:
    """Entry → outcome → model update."""

    def test_outcome_updates_model(self, core, trade_entry):
        trade_id = enter(core, trade_entry)
        result = core.record_outcome(trade_id, {"exitPrice": 112.0, "exitReason": "profit_target"})
        assert result.ok
        value = result.value
        assert value["result"] == "win"
        assert value["persisted"] is True
        stats = value["stats"]
        assert stats["total_trades"] == 1
        assert stats["successful_trades"] == 1
        assert stats["training_samples"] == 1
        assert stats["completed_trades"] == 1
        assert stats["strategy_performance"]["ttm_squeeze"]["trades"] == 1
        assert stats["last_trained"] is not None

    def test_entry_stores_features(self, core, trade_entry):
        trade_id = enter(core, trade_entry)
        active = core.get_active_trades().value
        assert active[0]["id"] == trade_id
        assert len(active[0]["features"]) == 15

    def test_unknown_trade_rejected(self, core):
        before = core.get_model_stats().value["total_trades"]
        result = core.record_outcome("nonexistent-id", {"exitPrice": 100.0})
        assert isinstance(result, Result)
        assert not result.ok
        assert result.code == "trade_not_found"
        assert "nonexistent-id" in result.error
        assert core.get_model_stats().value["total_trades"] == before

    def test_second_outcome_rejected(self, core, trade_entry):
        trade_id = enter(core, trade_entry)
        assert core.record_outcome(trade_id, {"exitPrice": 101.0}).ok
        again = core.record_outcome(trade_id, {"exitPrice": 150.0})
        assert again.code == "trade_not_found"
        assert core.get_model_stats().value["total_trades"] == 1

    def test_entry_without_context_rejected(self, core, trade_entry):
        result = core.record_entry(trade_entry(marketConditions=None))
        assert not result.ok
        assert result.code == "invalid_input"
        assert core.get_active_trades().value == []

    def test_ttm_squeeze_weight(self, core, trade_entry):
        run_trades(core, trade_entry, [12.0, 10.0, 9.0, 15.0, -6.0])
        weights = core.get_model_stats().value["strategy_weights"]
        assert 1.0 < weights["ttm_squeeze"] <= 2.0

    def test_condition_bucket_from_entry_context(self, core, trade_entry, market_context):
        trade_id = enter(core, trade_entry, marketConditions=market_context(changePercent=4.0))
        core.record_outcome(trade_id, {"percentReturn": 6.0})
        analysis = core.get_market_condition_analysis().value
        assert analysis["bullish"]["trades"] == 1
        assert analysis["bullish"]["win_rate"] == 1.0

    def test_update_progress(self, core, trade_entry):
        trade_id = enter(core, trade_entry, entry_price=50.0)
        result = core.update_progress(trade_id, 55.0)
        assert result.ok
        assert result.value["current_return"] == pytest.approx(10.0)
        assert core.update_progress("ghost", 1.0).code == "trade_not_found"

    def test_history_and_performance(self, core, trade_entry):
        run_trades(core, trade_entry, [5.0, -3.0, 8.0])
        history = core.get_trade_history(limit=2).value
        assert len(history) == 2
        perf = core.get_performance_stats().value
        assert perf["total_trades"] == 3
        assert perf["total_return"] == pytest.approx(10.0)

    def test_recommendations_need_sample(self, core, trade_entry):
        run_trades(core, trade_entry, [5.0] * 3)
        assert core.get_strategy_recommendations().value == []

    def test_selection_is_preference_only(self, core):
        result = core.record_selection({"symbol": "AMD", "detectedBy": ["gamma_exposure"], "sector": "Tech"})
        assert result.ok
        stats = core.get_model_stats().value
        assert stats["proposed_trades"] == 1
        assert stats["training_samples"] == 0
        assert core.state.preferences.preferred_sectors == ["Tech"]


class TestPersistence:
    """Store round-trips and degraded stores."""

    def test_round_trip_memory(self, cfg, store, clock, trade_entry):
        core = LearningCore(cfg, store, clock=clock)
        run_trades(core, trade_entry, [12.0, -5.0, 4.0, 20.0, -1.0, 7.0])
        core.record_selection({"symbol": "AMD", "detectedBy": ["dark_pool"]})
        before = core.get_model_stats().value
        reloaded = LearningCore(cfg, store, clock=clock)
        assert reloaded.get_model_stats().value == before

    def test_round_trip_json_files(self, cfg, tmp_path, clock, trade_entry):
        store = JsonFileStore(tmp_path)
        core = LearningCore(cfg, store, clock=clock)
        run_trades(core, trade_entry, [3.0, 11.0])
        before = core.get_model_stats().value
        assert (tmp_path / "network.json").exists()
        assert LearningCore(cfg, JsonFileStore(tmp_path), clock=clock).get_model_stats().value == before

    def test_reload_keeps_predictions(self, cfg, store, clock, trade_entry, market_context):
        core = LearningCore(cfg, store, clock=clock)
        run_trades(core, trade_entry, [12.0, -5.0, 4.0, 20.0, -1.0])
        candidates = [{"symbol": "AAA", "compositeScore": 60, "market": market_context()}]
        before = core.rank_opportunities(candidates).value
        after = LearningCore(cfg, store, clock=clock).rank_opportunities(candidates).value
        assert before == after

    def test_corrupt_store_falls_back(self, cfg, clock):
        store = MemoryStore()
        store.docs["model"] = "{corrupt"
        store.docs["network"] = '{"weights": {"ih": [[1]]}}'
        core = LearningCore(cfg, store, clock=clock)
        stats = core.get_model_stats().value
        assert stats["total_trades"] == 0
        assert stats["cold_start"] is True

    def test_save_failure_reported(self, cfg, clock, trade_entry):
        core = LearningCore(cfg, FailingStore(), clock=clock)
        result = core.record_entry(trade_entry())
        assert result.ok
        assert result.value["persisted"] is False
        assert core.save().value == {"persisted": False}

    def test_load_discards_unsaved_state(self, cfg, store, clock, trade_entry):
        core = LearningCore(cfg, store, clock=clock)
        run_trades(core, trade_entry, [4.0])
        core.state.total_trades = 99
        assert core.load().value["total_trades"] == 1


class TestReset:
    """Confirmation-gated resets."""

    def test_wrong_code_rejected(self, core, trade_entry):
        run_trades(core, trade_entry, [4.0])
        result = core.reset("yes please")
        assert result.code == "invalid_input"
        assert core.get_model_stats().value["total_trades"] == 1

    def test_unknown_scope(self, core):
        assert core.reset("FRESH_START_CONFIRMED", "everything").code == "invalid_input"

    def test_reset_all(self, core, store, cfg, clock, trade_entry):
        run_trades(core, trade_entry, [4.0, 6.0])
        assert core.reset("FRESH_START_CONFIRMED").ok
        stats = core.get_model_stats().value
        assert stats["total_trades"] == 0
        assert stats["completed_trades"] == 0
        assert LearningCore(cfg, store, clock=clock).get_model_stats().value["total_trades"] == 0

    def test_reset_ml_keeps_trades(self, core, trade_entry):
        run_trades(core, trade_entry, [4.0, 6.0])
        core.record_selection({"symbol": "AMD", "detectedBy": ["dark_pool"]})
        assert core.reset("FRESH_START_CONFIRMED", "ml").ok
        stats = core.get_model_stats().value
        assert stats["total_trades"] == 0
        assert stats["training_samples"] == 0
        assert stats["completed_trades"] == 2
        assert core.state.preferences.preferred_strategies == ["dark_pool"]

    def test_reset_trades_keeps_learning(self, core, trade_entry):
        run_trades(core, trade_entry, [4.0])
        assert core.reset("FRESH_START_CONFIRMED", "trades").ok
        stats = core.get_model_stats().value
        assert stats["completed_trades"] == 0
        assert stats["total_trades"] == 1

    def test_reset_preferences(self, core):
        core.record_selection({"symbol": "AMD", "detectedBy": ["dark_pool"], "sector": "Tech"})
        assert core.reset("FRESH_START_CONFIRMED", "preferences").ok
        assert core.state.preferences.preferred_strategies == []
        assert core.state.preferences.preferred_sectors == []
