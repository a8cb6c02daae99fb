import functools
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from .config import CoreConfig
from .constants import RESET_CONFIRMATION
from .core.feature_engine import FeatureEngine
from .core.network import ScoringNetwork, ARCHITECTURE
from .core.patterns import PatternRecognizer
from .core.regime import MarketConditionClassifier
from .core.state import (
    ModelState, DOCUMENTS, DOC_NETWORK, DOC_MODEL, DOC_TRADES, trades_document, trades_from_document,
)
from .trading.journal import StateStore, build_store
from .trading.lifecycle import TradeLifecycleTracker, utcnow
from .trading.performance import StrategyPerformanceTracker
from .trading.ranking import OpportunityRanker
from .utils.errors import TradeBrainError, InvalidInputError, PersistenceError
from .utils.logger import log
from .utils.records import Opportunity, as_float, pick

RESET_SCOPES = ("all", "ml", "trades", "preferences")

@dataclass
class Result:
    """Typed outcome of every public LearningCore operation."""
    ok: bool
    value: Any = None
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: Exception) -> "Result":
        code = exc.code if isinstance(exc, TradeBrainError) else "internal"
        return cls(ok=False, error=str(exc), code=code)


def guarded(fn: Callable) -> Callable:
    """Run a public operation; any exception becomes a failed Result."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs) -> Result:
        try:
            return Result.success(fn(self, *args, **kwargs))
        except TradeBrainError as e:
            log.warning("%s rejected: %s", fn.__name__, e)
            return Result.failure(e)
        except Exception as e:
            log.exception("%s failed unexpectedly", fn.__name__)
            return Result.failure(e)
    return wrapper


class LearningCore:
    """The adaptive learning core behind trade recommendations.

    Ranks candidate opportunities, tracks trades from selection to outcome,
    and learns from every completed trade: the scoring network takes one
    training step, strategy/condition/pattern statistics are updated, and
    all state is written back to the store, in that order.

    There is no locking. Mutating calls work on the in-memory state and
    end with a full save, so two processes (or threads) sharing one store
    interleave as last-write-wins.
    Callers that need concurrent safety must serialise writes to a model
    themselves, e.g. through a single-writer queue.
    """

    def __init__(self, config: Optional[CoreConfig] = None, store: Optional[StateStore] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.cfg = config or CoreConfig()
        log.setLevel(self.cfg.log_level)
        self.store = store if store is not None else build_store(self.cfg)
        self.clock = clock
        self.features = FeatureEngine()
        self.recognizer = PatternRecognizer()
        self._load_state()

    # ---- Wiring / persistence ----
    def _load_state(self):
        docs = {name: self.store.load(name) for name in DOCUMENTS}
        self.state = ModelState.from_documents(self.cfg, docs[DOC_NETWORK], docs[DOC_MODEL])
        self.lifecycle = TradeLifecycleTracker(self.cfg, trades_from_document(docs[DOC_TRADES]), self.clock)
        self._wire()
        log.info("🧠 Model loaded: %d trades learned, %d training samples, %d tracked trades",
                 self.state.total_trades, self.state.network.samples_seen, len(self.lifecycle.trades))

    def _wire(self):
        self.network = ScoringNetwork(self.state.network, self.cfg)
        self.tracker = StrategyPerformanceTracker(self.state, self.cfg)
        self.ranker = OpportunityRanker(self.state, self.network, self.tracker, self.cfg,
                                        self.features, self.recognizer)

    def _persist(self) -> bool:
        try:
            self.store.save(DOC_NETWORK, self.state.network_document())
            self.store.save(DOC_MODEL, self.state.model_document())
            self.store.save(DOC_TRADES, trades_document(self.lifecycle.to_list()))
        except PersistenceError as e:
            log.error("💾 Save failed: %s", e)
            return False
        log.debug("💾 State saved")
        return True

    @guarded
    def load(self) -> dict:
        """Discard in-memory state and reload every document from the store."""
        self._load_state()
        return self._model_stats()

    @guarded
    def save(self) -> dict:
        return {"persisted": self._persist()}

    # ---- Ranking ----
    @guarded
    def rank_opportunities(self, candidates: Any, context: Optional[dict] = None) -> list[dict]:
        return [r.to_dict() for r in self.ranker.rank(candidates, context)]

    # ---- Trade lifecycle ----
    @guarded
    def record_selection(self, opportunity: Any) -> dict:
        opp = Opportunity.from_dict(opportunity)
        ai_score = as_float(pick(opp.extra, "aiScore", "ai_score"))
        self.state.preferences.absorb(opp.detected_by, opp.sector)
        rec = self.lifecycle.propose(opp, ai_score)
        return {"trade_id": rec.id, "persisted": self._persist()}

    @guarded
    def record_entry(self, trade_data: Any) -> dict:
        rec = self.lifecycle.enter(trade_data)
        rec.features = self.features.compute(rec.context).tolist()
        return {"trade_id": rec.id, "persisted": self._persist()}

    @guarded
    def record_outcome(self, trade_id: str, outcome: Any) -> dict:
        rec = self.lifecycle.complete(trade_id, outcome)
        result = rec.outcome
        features = rec.features if rec.features is not None else self.features.compute(rec.context)

        self.network.train(features, result.return_pct, rec.symbol)

        condition = MarketConditionClassifier.detect(rec.context)
        report = self.recognizer.identify((rec.context or {}).get("prices"))
        self.tracker.record_patterns(report.names, result.return_pct)
        self.tracker.record_outcome(rec.strategies, result.success, result.return_pct, condition)
        self.tracker.derive_weights()

        self.state.record_result(result.success)
        self.state.last_trained = self.clock().isoformat()
        log.info("📊 Learned from %s: %s %+.2f%% in %s market | model WR %.1f%% over %d trades",
                 rec.symbol, result.result.value, result.return_pct, condition.value,
                 self.state.win_rate * 100, self.state.total_trades)

        persisted = self._persist()
        return {
            "trade_id": rec.id,
            "result": result.result.value,
            "return_pct": result.return_pct,
            "success": result.success,
            "market_condition": condition.value,
            "persisted": persisted,
            "stats": self._model_stats(),
        }

    @guarded
    def update_progress(self, trade_id: str, current_price: Any) -> dict:
        rec = self.lifecycle.update_progress(trade_id, current_price)
        return {**rec.to_dict(), "days_held": self.lifecycle.days_held(rec), "persisted": self._persist()}

    @guarded
    def get_active_trades(self) -> list[dict]:
        return [t.to_dict() for t in self.lifecycle.active()]

    @guarded
    def get_trade_history(self, limit: int = 50) -> list[dict]:
        return [t.to_dict() for t in self.lifecycle.completed(limit)]

    # ---- Reporting ----
    @guarded
    def get_performance_stats(self) -> dict:
        return self.lifecycle.performance_stats()

    @guarded
    def get_strategy_recommendations(self) -> list[dict]:
        return self.tracker.recommendations()

    @guarded
    def get_market_condition_analysis(self) -> dict:
        return self.tracker.condition_analysis()

    @guarded
    def get_model_stats(self) -> dict:
        return self._model_stats()

    def _model_stats(self) -> dict:
        net = self.network.stats()
        counts = self.lifecycle.counts()
        return {
            "accuracy": net["accuracy"],
            "confidence": net["confidence"],
            "total_trades": self.state.total_trades,
            "successful_trades": self.state.successful_trades,
            "win_rate": self.state.win_rate,
            "recent_win_rate": self.lifecycle.recent_win_rate(self.cfg.recent_window),
            "completed_trades": counts["completed"],
            "active_trades": counts["active"],
            "proposed_trades": counts["proposed"],
            "training_samples": net["training_samples"],
            "strategy_performance": self.tracker.strategy_performance(),
            "strategy_weights": self.tracker.weights(),
            "best_strategy": self.tracker.best_strategy(),
            "worst_strategy": self.tracker.worst_strategy(),
            "market_conditions": self.tracker.condition_stats(),
            "patterns_learned": len(self.state.patterns),
            "last_trained": self.state.last_trained,
            "architecture": ARCHITECTURE,
            "cold_start": self.ranker.cold_start,
            "version": self.state.version,
        }

    # ---- Maintenance ----
    @guarded
    def reset(self, confirmation_code: str, scope: str = "all") -> dict:
        if confirmation_code != RESET_CONFIRMATION:
            raise InvalidInputError("reset requires the confirmation code")
        if scope not in RESET_SCOPES:
            raise InvalidInputError(f"unknown reset scope '{scope}' (expected one of {', '.join(RESET_SCOPES)})")

        if scope == "all":
            self.state = ModelState.default(self.cfg)
            self.lifecycle.clear()
        elif scope == "ml":
            self.state.reset_learning(self.cfg)
        elif scope == "trades":
            self.lifecycle.clear()
        else:
            self.state.reset_preferences()
        self._wire()
        log.info("🔄 Reset complete (scope: %s)", scope)
        return {"scope": scope, "persisted": self._persist()}
