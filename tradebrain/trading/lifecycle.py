import math
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..config import CoreConfig
from ..constants import TradeState, TradeResult
from ..utils.errors import InvalidInputError, TradeNotFoundError
from ..utils.logger import log
from ..utils.records import (
    as_float, pick, MarketSnapshot, Opportunity, TradeOutcome, TradeRecord,
)

EXIT_REASONS = ("profit_target", "stop_loss", "expiration", "manual")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _parse_time(stamp: Optional[str]) -> Optional[datetime]:
    if not stamp:
        return None
    try:
        dt = datetime.fromisoformat(stamp)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def _strategies_of(data: dict) -> list[str]:
    raw = pick(data, "strategies", "detected_by", "detectedBy", default=[])
    if isinstance(raw, str):
        raw = [raw]
    names = [str(s) for s in raw if s]
    single = pick(data, "strategy", "strategyName", "strategy_name")
    if single and str(single) not in names:
        names.insert(0, str(single))
    return names


class TradeLifecycleTracker:
    """Proposed → Active → Completed state machine over trade records.

    Completed is terminal: the only transition out of Active is `complete`,
    and a completed record is never looked up as Active again.
    """

    def __init__(self, cfg: CoreConfig, trades: Optional[list[TradeRecord]] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.cfg = cfg
        self.clock = clock
        self.trades: dict[str, TradeRecord] = {t.id: t for t in trades or []}

    def _now(self) -> str:
        return self.clock().isoformat()

    @staticmethod
    def new_id(symbol: str, strategy: Optional[str]) -> str:
        return f"{symbol}_{strategy or 'manual'}_{uuid.uuid4().hex[:10]}".replace(" ", "_")

    # ---- Transitions ----
    def propose(self, opp: Opportunity, ai_score: float = 0.0) -> TradeRecord:
        """Create, or refresh, the Proposed record for a selected opportunity."""
        rec = next((t for t in self.trades.values()
                    if t.state is TradeState.PROPOSED and t.symbol == opp.symbol), None)
        if rec is None:
            rec = TradeRecord(
                id=self.new_id(opp.symbol, opp.detected_by[0] if opp.detected_by else None),
                symbol=opp.symbol,
                strategies=list(opp.detected_by),
                state=TradeState.PROPOSED,
                created_at=self._now(),
            )
            self.trades[rec.id] = rec
        else:
            rec.strategies = list(dict.fromkeys(rec.strategies + opp.detected_by))
        rec.sector = opp.sector or rec.sector
        rec.ai_score = ai_score or rec.ai_score
        rec.last_updated = self._now()
        log.info("📝 Selection recorded: %s (%s)", rec.symbol, ", ".join(rec.strategies) or "no strategy")
        return rec

    def enter(self, data: Any) -> TradeRecord:
        if not isinstance(data, dict):
            raise InvalidInputError("trade entry must be a mapping")
        symbol = pick(data, "symbol", "ticker")
        if not symbol or not isinstance(symbol, str):
            raise InvalidInputError("trade entry is missing a symbol")
        symbol = symbol.upper()
        entry_price = as_float(pick(data, "entry_price", "entryPrice"))
        if entry_price <= 0:
            raise InvalidInputError(f"trade entry for {symbol} needs a positive entry price")
        raw_context = pick(data, "context", "marketConditions", "market_conditions", "market")
        context = MarketSnapshot.from_dict(raw_context)
        if not isinstance(raw_context, (dict, MarketSnapshot)) or context.is_empty:
            raise InvalidInputError(f"trade entry for {symbol} has no market context")

        strategies = _strategies_of(data)
        rec = self._proposal_for(data.get("trade_id") or data.get("tradeId"), symbol)
        now = self._now()
        if rec is None:
            rec = TradeRecord(
                id=self.new_id(symbol, strategies[0] if strategies else None),
                symbol=symbol,
                strategies=strategies,
                state=TradeState.ACTIVE,
                created_at=now,
            )
            self.trades[rec.id] = rec
        else:
            rec.strategies = list(dict.fromkeys(rec.strategies + strategies))
            rec.state = TradeState.ACTIVE

        rec.sector = pick(data, "sector") or context.sector or rec.sector
        rec.ai_score = as_float(pick(data, "ai_score", "aiScore"), rec.ai_score)
        rec.entry_price = entry_price
        rec.entry_date = now
        rec.position_size = as_float(pick(data, "position_size", "positionSize"), 1.0)
        rec.max_loss = as_float(pick(data, "max_loss", "maxLoss"))
        rec.max_gain = as_float(pick(data, "max_gain", "maxGain"))
        rec.context = context.to_dict()
        rec.current_price = entry_price
        rec.current_return = 0.0
        rec.last_updated = now
        log.info("📋 Trade entry recorded: %s %s @ %.2f (ID: %s)",
                 rec.symbol, "/".join(rec.strategies) or "manual", entry_price, rec.id)
        return rec

    def _proposal_for(self, trade_id: Optional[str], symbol: str) -> Optional[TradeRecord]:
        if trade_id:
            rec = self.trades.get(str(trade_id))
            if rec is None:
                raise TradeNotFoundError(str(trade_id))
            if rec.state is not TradeState.PROPOSED:
                raise InvalidInputError(f"trade {rec.id} is already {rec.state.value}")
            return rec
        proposals = [t for t in self.trades.values()
                     if t.state is TradeState.PROPOSED and t.symbol == symbol]
        return proposals[-1] if proposals else None

    def get_active(self, trade_id: str) -> TradeRecord:
        rec = self.trades.get(trade_id)
        if rec is None or rec.state is not TradeState.ACTIVE:
            raise TradeNotFoundError(trade_id)
        return rec

    def update_progress(self, trade_id: str, current_price: Any) -> TradeRecord:
        rec = self.get_active(trade_id)
        price = as_float(current_price)
        if price <= 0:
            raise InvalidInputError(f"current price for {trade_id} must be positive")
        rec.current_price = price
        rec.current_return = (price - rec.entry_price) / rec.entry_price * 100.0
        rec.last_updated = self._now()
        return rec

    def days_held(self, rec: TradeRecord) -> int:
        entered = _parse_time(rec.entry_date)
        if entered is None:
            return 0
        return max(0, math.floor((self.clock() - entered).total_seconds() / 86400))

    def complete(self, trade_id: str, outcome: Any) -> TradeRecord:
        rec = self.get_active(trade_id)
        if not isinstance(outcome, dict):
            raise InvalidInputError("outcome must be a mapping")

        exit_price = as_float(pick(outcome, "exit_price", "exitPrice"))
        given_return = pick(outcome, "return_pct", "percentReturn", "percent_return")
        if given_return is not None and math.isfinite(as_float(given_return, float("nan"))):
            return_pct = as_float(given_return)
        elif exit_price > 0:
            return_pct = (exit_price - rec.entry_price) / rec.entry_price * 100.0
        else:
            raise InvalidInputError(f"outcome for {trade_id} needs an exit price or a return")

        reason = str(pick(outcome, "exit_reason", "exitReason", default="manual"))
        if reason not in EXIT_REASONS:
            raise InvalidInputError(f"unknown exit reason '{reason}'")

        stated = outcome.get("success")
        success = stated if isinstance(stated, bool) else return_pct > self.cfg.success_threshold
        if success:
            result = TradeResult.WIN
        elif return_pct > self.cfg.breakeven_floor:
            result = TradeResult.BREAKEVEN
        else:
            result = TradeResult.LOSS

        rec.outcome = TradeOutcome(
            exit_price=exit_price if exit_price > 0 else rec.entry_price * (1 + return_pct / 100.0),
            exit_date=self._now(),
            return_pct=return_pct,
            days_held=self.days_held(rec),
            exit_reason=reason,
            result=result,
            success=success,
            notes=str(outcome.get("notes", "")),
        )
        rec.state = TradeState.COMPLETED
        rec.current_price = rec.outcome.exit_price
        rec.current_return = return_pct
        rec.last_updated = rec.outcome.exit_date
        log.info("✅ Trade outcome recorded: %s → %s (%+.2f%%)",
                 rec.symbol, result.value.upper(), return_pct)
        return rec

    # ---- Queries ----
    def _in_state(self, state: TradeState) -> list[TradeRecord]:
        return [t for t in self.trades.values() if t.state is state]

    def active(self) -> list[TradeRecord]:
        return sorted(self._in_state(TradeState.ACTIVE), key=lambda t: t.entry_date or "", reverse=True)

    def completed(self, limit: Optional[int] = 50) -> list[TradeRecord]:
        done = sorted(self._in_state(TradeState.COMPLETED),
                      key=lambda t: t.outcome.exit_date, reverse=True)
        return done[:limit] if limit else done

    def counts(self) -> dict[str, int]:
        return {s.value: len(self._in_state(s)) for s in TradeState}

    @staticmethod
    def profit_factor(returns: list[float]) -> float:
        gross_win = sum(r for r in returns if r > 0)
        gross_loss = sum(-r for r in returns if r <= 0)
        if gross_loss > 0:
            return gross_win / gross_loss
        return 999.0 if gross_win > 0 else 0.0

    def performance_stats(self) -> dict:
        done = self.completed(limit=None)
        if not done:
            return {"total_trades": 0, "win_rate": 0.0, "avg_return": 0.0, "total_return": 0.0,
                    "avg_days_held": 0.0, "best_trade": None, "worst_trade": None, "strategies": {}}

        returns = [t.outcome.return_pct for t in done]
        wins = sum(1 for t in done if t.outcome.success)
        best = max(done, key=lambda t: t.outcome.return_pct)
        worst = min(done, key=lambda t: t.outcome.return_pct)

        per_strategy: dict[str, list[TradeRecord]] = {}
        for t in done:
            for s in t.strategies or ["manual"]:
                per_strategy.setdefault(s, []).append(t)
        strategies = {}
        for name, trades in sorted(per_strategy.items()):
            rets = [t.outcome.return_pct for t in trades]
            strategies[name] = {
                "trades": len(trades),
                "win_rate": sum(1 for t in trades if t.outcome.success) / len(trades),
                "avg_return": sum(rets) / len(rets),
                "total_return": sum(rets),
                "profit_factor": self.profit_factor(rets),
            }

        return {
            "total_trades": len(done),
            "win_rate": wins / len(done),
            "avg_return": sum(returns) / len(returns),
            "total_return": sum(returns),
            "avg_days_held": sum(t.outcome.days_held for t in done) / len(done),
            "best_trade": {"id": best.id, "symbol": best.symbol, "return_pct": best.outcome.return_pct},
            "worst_trade": {"id": worst.id, "symbol": worst.symbol, "return_pct": worst.outcome.return_pct},
            "strategies": strategies,
        }

    def recent_win_rate(self, window: int) -> float:
        recent = self.completed(limit=window)
        if not recent:
            return 0.0
        return sum(1 for t in recent if t.outcome.success) / len(recent)

    # ---- State ----
    def to_list(self) -> list[TradeRecord]:
        return list(self.trades.values())

    def clear(self):
        self.trades.clear()
