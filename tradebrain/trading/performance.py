from typing import Optional

import numpy as np

from ..config import CoreConfig
from ..constants import MarketCondition
from ..core.state import ModelState
from ..utils.logger import log
from ..utils.records import StrategyRecord, ConditionRecord, PatternRecord

class StrategyPerformanceTracker:
    """Rolling per-strategy, per-condition and per-pattern statistics, and the
    bounded weight multipliers the ranker applies to each strategy."""

    def __init__(self, state: ModelState, cfg: CoreConfig):
        self.state = state
        self.cfg = cfg

    # ---- Updates ----
    def record_outcome(self, strategies: list[str], success: bool, return_pct: float,
                       condition: MarketCondition = MarketCondition.UNKNOWN):
        for name in dict.fromkeys(strategies):
            rec = self.state.strategies.setdefault(name, StrategyRecord())
            rec.record(success, return_pct, self.cfg.recent_performance_lookback, condition.value)
            log.debug("  %s: %d trades, WR %.1f%%, avg %+.2f%%",
                      name, rec.trades, rec.win_rate * 100, rec.avg_return)

        if condition is not MarketCondition.UNKNOWN:
            self.state.conditions.setdefault(condition.value, ConditionRecord()).record(success)

    def record_patterns(self, names: list[str], return_pct: float):
        for name in dict.fromkeys(names):
            self.state.patterns.setdefault(name, PatternRecord()).record(return_pct)

    def derive_weights(self) -> dict[str, float]:
        """weight = clamp(win_rate / mean win rate of all tracked strategies);
        strategies with too few trades stay neutral at 1.0."""
        records = self.state.strategies
        if not records:
            return {}
        avg = float(np.mean([r.win_rate for r in records.values()]))
        for rec in records.values():
            if rec.trades < self.cfg.min_strategy_trades:
                rec.weight = 1.0
            elif avg <= 0:
                rec.weight = self.cfg.weight_floor
            else:
                rec.weight = float(np.clip(rec.win_rate / avg, self.cfg.weight_floor, self.cfg.weight_cap))
        weights = self.weights()
        log.info("⚖️  Strategy weights updated: %s",
                 ", ".join(f"{k}={v:.2f}" for k, v in weights.items() if v != 1.0) or "all neutral")
        return weights

    # ---- Reads ----
    def weights(self) -> dict[str, float]:
        return {name: rec.weight for name, rec in self.state.strategies.items()}

    def weight(self, name: str) -> float:
        rec = self.state.strategies.get(name)
        return rec.weight if rec else 1.0

    def strategy_bonus(self, strategies: list[str]) -> float:
        raw = sum((self.weight(s) - 1.0) * self.cfg.strategy_bonus_scale for s in dict.fromkeys(strategies))
        cap = self.cfg.strategy_bonus_cap
        return float(np.clip(raw, -cap, cap))

    def pattern_success_rate(self, names: list[str]) -> Optional[float]:
        """Mean learned success rate of the given patterns, None if none was seen before."""
        rates = [self.state.patterns[n].success_rate for n in names
                 if n in self.state.patterns and self.state.patterns[n].count > 0]
        return float(np.mean(rates)) if rates else None

    def _ranked(self) -> list[tuple[str, StrategyRecord]]:
        traded = [(n, r) for n, r in self.state.strategies.items() if r.trades > 0]
        return sorted(traded, key=lambda kv: (-kv[1].win_rate, -kv[1].avg_return, kv[0]))

    def best_strategy(self) -> Optional[str]:
        ranked = self._ranked()
        return ranked[0][0] if ranked else None

    def worst_strategy(self) -> Optional[str]:
        ranked = self._ranked()
        return ranked[-1][0] if ranked else None

    def strategy_performance(self) -> dict[str, dict]:
        return {
            name: {
                "trades": rec.trades,
                "wins": rec.wins,
                "win_rate": rec.win_rate,
                "avg_return": rec.avg_return,
                "weight": rec.weight,
            }
            for name, rec in self.state.strategies.items()
        }

    def condition_stats(self) -> dict[str, dict]:
        return {name: rec.to_dict() for name, rec in self.state.conditions.items()}

    def recent_win_rate(self, rec: StrategyRecord) -> float:
        recent = rec.recent[-self.cfg.recent_window:]
        if not recent:
            return 0.0
        return sum(1 for r in recent if r.get("success")) / len(recent)

    def recommendations(self) -> list[dict]:
        out = []
        for name, rec in self.state.strategies.items():
            if rec.trades < self.cfg.recommendation_min_trades:
                continue
            recent = self.recent_win_rate(rec)
            action, confidence = "MAINTAIN", 0.5
            if recent > rec.win_rate + 0.1 and recent > 0.6:
                action, confidence = "INCREASE_WEIGHT", min(0.9, recent)
            elif recent < rec.win_rate - 0.1 and recent < 0.4:
                action, confidence = "DECREASE_WEIGHT", min(0.9, 1.0 - recent)
            out.append({
                "strategy": name,
                "recommendation": action,
                "confidence": confidence,
                "metrics": {
                    "total_trades": rec.trades,
                    "overall_win_rate": rec.win_rate,
                    "recent_win_rate": recent,
                    "avg_return": rec.avg_return,
                },
            })
        out.sort(key=lambda r: (-r["confidence"], r["strategy"]))
        return out

    def condition_analysis(self, min_sample: int = 5) -> dict[str, dict]:
        """Per market condition: bucket totals plus the strategies that did best in it."""
        by_condition: dict[str, dict[str, list[int]]] = {}
        for name, rec in self.state.strategies.items():
            for entry in rec.recent:
                cond = entry.get("condition") or MarketCondition.UNKNOWN.value
                tally = by_condition.setdefault(cond, {}).setdefault(name, [0, 0])
                tally[1] += 1
                if entry.get("success"):
                    tally[0] += 1

        analysis = {}
        for cond in set(self.state.conditions) | set(by_condition):
            bucket = self.state.conditions.get(cond, ConditionRecord())
            ranked = sorted(
                ({"strategy": s, "win_rate": w / t, "sample_size": t}
                 for s, (w, t) in by_condition.get(cond, {}).items() if t >= min_sample),
                key=lambda x: (-x["win_rate"], x["strategy"]),
            )
            analysis[cond] = {**bucket.to_dict(), "strategies": ranked}
        return dict(sorted(analysis.items()))
