from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from ..config import CoreConfig
from ..core.feature_engine import FeatureEngine
from ..core.network import ScoringNetwork
from ..core.patterns import PatternRecognizer
from ..core.state import ModelState
from ..utils.errors import InvalidInputError
from ..utils.logger import log
from ..utils.records import MarketSnapshot, Opportunity
from .performance import StrategyPerformanceTracker

@dataclass
class RankedOpportunity:
    symbol: str
    ai_score: float
    composite_score: float
    network_bonus: float
    strategy_bonus: float
    preference_bonus: float
    confidence: float
    action: str
    cold_start: bool
    detected_by: list[str] = field(default_factory=list)
    sector: Optional[str] = None
    patterns: list[str] = field(default_factory=list)
    pattern_strength: float = 0.5
    probabilities: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "aiScore": self.ai_score,
            "compositeScore": self.composite_score,
            "networkBonus": self.network_bonus,
            "strategyBonus": self.strategy_bonus,
            "userPreferenceBonus": self.preference_bonus,
            "confidence": self.confidence,
            "action": self.action,
            "coldStart": self.cold_start,
            "detectedBy": list(self.detected_by),
            "sector": self.sector,
            "patterns": list(self.patterns),
            "patternStrength": self.pattern_strength,
            "probabilities": dict(self.probabilities),
        }


class OpportunityRanker:
    """aiScore = clamp(composite + network bonus + strategy bonus + preference bonus, 0, 100)."""

    def __init__(self, state: ModelState, network: ScoringNetwork,
                 tracker: StrategyPerformanceTracker, cfg: CoreConfig,
                 features: Optional[FeatureEngine] = None,
                 recognizer: Optional[PatternRecognizer] = None):
        self.state = state
        self.network = network
        self.tracker = tracker
        self.cfg = cfg
        self.features = features or FeatureEngine()
        self.recognizer = recognizer or PatternRecognizer()

    @property
    def cold_start(self) -> bool:
        return self.state.network.samples_seen < self.cfg.min_network_examples

    def preference_bonus(self, opp: Opportunity) -> float:
        prefs = self.state.preferences
        bonus = self.cfg.preference_strategy_points * sum(
            1 for s in dict.fromkeys(opp.detected_by) if s in prefs.preferred_strategies)
        if opp.sector and opp.sector in prefs.preferred_sectors:
            bonus += self.cfg.preference_sector_points
        return min(bonus, self.cfg.preference_bonus_cap)

    def network_bonus(self, confidence: float, pattern_strength: float, pattern_names: list[str]) -> float:
        """Network confidence blended with the (learned) pattern confidence, in points."""
        learned = self.tracker.pattern_success_rate(pattern_names)
        pattern_conf = pattern_strength if learned is None else (pattern_strength + learned) / 2.0
        blend = self.cfg.pattern_blend
        score = (1.0 - blend) * confidence + blend * pattern_conf
        return float(np.clip(score, 0.0, 1.0)) * self.cfg.network_bonus_points

    def score(self, opp: Opportunity, fallback_market: Optional[MarketSnapshot] = None) -> RankedOpportunity:
        market = opp.market
        if market.is_empty and fallback_market is not None:
            market = fallback_market
        features = self.features.compute(market)
        report = self.recognizer.identify(market.prices)
        cold = self.cold_start

        if cold:
            prediction = self.network.default_prediction()
            net_bonus = 0.0
        else:
            prediction = self.network.predict(features)
            net_bonus = self.network_bonus(prediction.confidence, report.strength, report.names)

        strat_bonus = self.tracker.strategy_bonus(opp.detected_by)
        # no learned outcomes yet: order stays on the composite score
        pref_bonus = self.preference_bonus(opp) if self.state.total_trades else 0.0
        ai_score = float(np.clip(opp.composite_score + net_bonus + strat_bonus + pref_bonus, 0.0, 100.0))

        log.debug("  %-6s composite %.1f  net %+.2f  strat %+.2f  pref %+.2f → %.2f",
                  opp.symbol, opp.composite_score, net_bonus, strat_bonus, pref_bonus, ai_score)
        return RankedOpportunity(
            symbol=opp.symbol,
            ai_score=ai_score,
            composite_score=opp.composite_score,
            network_bonus=net_bonus,
            strategy_bonus=strat_bonus,
            preference_bonus=pref_bonus,
            confidence=prediction.confidence,
            action=prediction.action.value,
            cold_start=cold,
            detected_by=list(opp.detected_by),
            sector=opp.sector,
            patterns=report.names,
            pattern_strength=report.strength,
            probabilities={a.value: p for a, p in prediction.probabilities.items()},
        )

    def rank(self, candidates: Any, context: Optional[dict] = None) -> list[RankedOpportunity]:
        if not isinstance(candidates, (list, tuple)):
            raise InvalidInputError("candidates must be a list")
        context = context or {}
        fallback = context.get("market")
        fallback_market = MarketSnapshot.from_dict(fallback) if fallback is not None else None

        ranked = []
        for raw in candidates:
            try:
                opp = Opportunity.from_dict(raw)
            except InvalidInputError as e:
                log.warning("Skipping candidate: %s", e)
                continue
            ranked.append(self.score(opp, fallback_market))

        ranked.sort(key=lambda r: (-r.ai_score, -len(r.detected_by), r.symbol))
        limit = context.get("limit")
        if limit:
            ranked = ranked[:int(limit)]

        if ranked:
            log.info("🧠 Ranked %d opportunities%s. Top: %s", len(ranked),
                     " (cold start)" if ranked[0].cold_start else "",
                     ", ".join(f"{r.symbol}:{r.ai_score:.1f}" for r in ranked[:3]))
        return ranked
