import math
from dataclasses import dataclass, field, asdict
from typing import Any, Optional

from ..constants import TradeState, TradeResult
from .errors import InvalidInputError

def as_float(value: Any, default: float = 0.0) -> float:
    """Coerce anything to a finite float; None, junk, NaN and ±inf become `default`."""
    if value is None:
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if math.isfinite(out) else default

def pick(data: dict, *keys, default=None):
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return default

# ---------------------------------------------------------------------------
# Market observations / candidates
# ---------------------------------------------------------------------------

@dataclass
class MarketSnapshot:
    """One per-symbol market observation as delivered by the calling layer."""
    prices: list[float] = field(default_factory=list)   # oldest → newest
    price: float = 0.0
    vwap: float = 0.0
    volume: float = 0.0
    avg_volume: float = 0.0
    change_percent: Optional[float] = None
    social_sentiment: float = 0.0
    news_sentiment: float = 0.0
    call_volume: float = 0.0
    put_volume: float = 0.0
    unusual_activity: bool = False
    market_cap: float = 0.0
    sector_strength: float = 0.0
    correlation_spy: float = 0.0
    sector: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return (not self.prices and self.price == 0 and self.volume == 0
                and self.change_percent is None and self.market_cap == 0)

    @property
    def last_price(self) -> float:
        if self.price > 0:
            return self.price
        return self.prices[-1] if self.prices else 0.0

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "MarketSnapshot":
        """Accepts both the dashboard's camelCase keys and snake_case ones."""
        if isinstance(data, MarketSnapshot):
            return data
        if not isinstance(data, dict):
            return cls()
        raw_prices = pick(data, "prices", "priceHistory", "price_history", default=[])
        prices = []
        if isinstance(raw_prices, (list, tuple)):
            for p in raw_prices:
                v = as_float(p, default=float("nan"))
                if math.isfinite(v):
                    prices.append(v)
        change = pick(data, "change_percent", "changePercent", "change")
        sector = pick(data, "sector")
        return cls(
            prices=prices,
            price=as_float(pick(data, "price", "currentPrice", "current_price")),
            vwap=as_float(pick(data, "vwap")),
            volume=as_float(pick(data, "volume")),
            avg_volume=as_float(pick(data, "avg_volume", "avgVolume")),
            change_percent=None if change is None else as_float(change),
            social_sentiment=as_float(pick(data, "social_sentiment", "socialSentiment")),
            news_sentiment=as_float(pick(data, "news_sentiment", "newsSentiment")),
            call_volume=as_float(pick(data, "call_volume", "callVolume")),
            put_volume=as_float(pick(data, "put_volume", "putVolume")),
            unusual_activity=bool(pick(data, "unusual_activity", "unusualActivity", default=False)),
            market_cap=as_float(pick(data, "market_cap", "marketCap")),
            sector_strength=as_float(pick(data, "sector_strength", "sectorStrength")),
            correlation_spy=as_float(pick(data, "correlation_spy", "correlationSPY", "correlationSpy")),
            sector=str(sector) if sector is not None else None,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Opportunity:
    """A candidate surfaced by one or more heuristic strategies."""
    symbol: str
    composite_score: float = 0.0
    detected_by: list[str] = field(default_factory=list)
    strategy: Optional[str] = None
    sector: Optional[str] = None
    market: MarketSnapshot = field(default_factory=MarketSnapshot)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "Opportunity":
        if isinstance(data, Opportunity):
            return data
        if not isinstance(data, dict):
            raise InvalidInputError("opportunity must be a mapping")
        symbol = pick(data, "symbol", "ticker")
        if not symbol or not isinstance(symbol, str):
            raise InvalidInputError("opportunity is missing a symbol")
        detected = pick(data, "detected_by", "detectedBy", "strategies", default=[])
        if isinstance(detected, str):
            detected = [detected]
        detected = [str(s) for s in detected if s]
        strategy = pick(data, "strategy", "strategyName", "strategy_name")
        if strategy and not detected:
            detected = [str(strategy)]
        market_raw = pick(data, "market", "marketData", "market_data")
        market = MarketSnapshot.from_dict(market_raw if market_raw is not None else data)
        sector = pick(data, "sector") or market.sector
        known = {"symbol", "ticker", "compositeScore", "composite_score", "score",
                 "detectedBy", "detected_by", "strategies", "strategy", "strategyName",
                 "strategy_name", "sector", "market", "marketData", "market_data"}
        return cls(
            symbol=symbol.upper(),
            composite_score=as_float(pick(data, "composite_score", "compositeScore", "score")),
            detected_by=detected,
            strategy=str(strategy) if strategy else None,
            sector=sector,
            market=market,
            extra={k: v for k, v in data.items() if k not in known},
        )

# ---------------------------------------------------------------------------
# Trade lifecycle
# ---------------------------------------------------------------------------

@dataclass
class TradeOutcome:
    exit_price: float
    exit_date: str
    return_pct: float
    days_held: int
    exit_reason: str                         # profit_target / stop_loss / expiration / manual
    result: TradeResult
    success: bool
    notes: str = ""

    def to_dict(self) -> dict:
        d = asdict(self)
        d["result"] = self.result.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "TradeOutcome":
        return cls(
            exit_price=as_float(data.get("exit_price")),
            exit_date=str(data.get("exit_date", "")),
            return_pct=as_float(data.get("return_pct")),
            days_held=int(as_float(data.get("days_held"))),
            exit_reason=str(data.get("exit_reason", "manual")),
            result=TradeResult(data.get("result", TradeResult.LOSS.value)),
            success=bool(data.get("success", False)),
            notes=str(data.get("notes", "")),
        )


@dataclass
class TradeRecord:
    id: str
    symbol: str
    strategies: list[str]
    state: TradeState
    created_at: str
    sector: Optional[str] = None
    ai_score: float = 0.0
    entry_price: Optional[float] = None
    entry_date: Optional[str] = None
    position_size: float = 1.0
    max_loss: float = 0.0
    max_gain: float = 0.0
    context: Optional[dict] = None          # MarketSnapshot.to_dict() captured at entry
    features: Optional[list[float]] = None  # feature vector at entry
    current_price: Optional[float] = None
    current_return: Optional[float] = None
    last_updated: Optional[str] = None
    outcome: Optional[TradeOutcome] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["state"] = self.state.value
        d["outcome"] = self.outcome.to_dict() if self.outcome else None
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "TradeRecord":
        state = TradeState(data["state"])
        outcome = data.get("outcome")
        rec = cls(
            id=str(data["id"]),
            symbol=str(data["symbol"]),
            strategies=list(data.get("strategies") or []),
            state=state,
            created_at=str(data.get("created_at", "")),
            sector=data.get("sector"),
            ai_score=as_float(data.get("ai_score")),
            entry_price=data.get("entry_price"),
            entry_date=data.get("entry_date"),
            position_size=as_float(data.get("position_size"), 1.0),
            max_loss=as_float(data.get("max_loss")),
            max_gain=as_float(data.get("max_gain")),
            context=data.get("context"),
            features=data.get("features"),
            current_price=data.get("current_price"),
            current_return=data.get("current_return"),
            last_updated=data.get("last_updated"),
            outcome=TradeOutcome.from_dict(outcome) if outcome else None,
        )
        if (rec.outcome is not None) != (rec.state is TradeState.COMPLETED):
            raise ValueError(f"trade {rec.id}: outcome/state mismatch ({rec.state.value})")
        return rec

# ---------------------------------------------------------------------------
# Learned statistics
# ---------------------------------------------------------------------------

@dataclass
class StrategyRecord:
    trades: int = 0
    wins: int = 0
    win_rate: float = 0.0
    avg_return: float = 0.0
    weight: float = 1.0
    recent: list[dict] = field(default_factory=list)   # rolling outcome log

    def record(self, success: bool, return_pct: float, lookback: int, condition: str):
        self.trades += 1
        if success:
            self.wins += 1
        self.win_rate = self.wins / self.trades
        self.avg_return = (self.avg_return * (self.trades - 1) + return_pct) / self.trades
        self.recent.append({"success": success, "return_pct": return_pct, "condition": condition})
        if len(self.recent) > lookback:
            del self.recent[:-lookback]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StrategyRecord":
        return cls(
            trades=int(as_float(data.get("trades"))),
            wins=int(as_float(data.get("wins"))),
            win_rate=as_float(data.get("win_rate")),
            avg_return=as_float(data.get("avg_return")),
            weight=as_float(data.get("weight"), 1.0),
            recent=list(data.get("recent") or []),
        )


@dataclass
class ConditionRecord:
    trades: int = 0
    wins: int = 0
    win_rate: float = 0.0

    def record(self, success: bool):
        self.trades += 1
        if success:
            self.wins += 1
        self.win_rate = self.wins / self.trades

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ConditionRecord":
        return cls(
            trades=int(as_float(data.get("trades"))),
            wins=int(as_float(data.get("wins"))),
            win_rate=as_float(data.get("win_rate")),
        )


@dataclass
class PatternRecord:
    count: int = 0
    success_count: int = 0
    total_return: float = 0.0
    success_rate: float = 0.5

    def record(self, return_pct: float):
        self.count += 1
        if return_pct > 0:
            self.success_count += 1
        self.total_return += return_pct
        self.success_rate = self.success_count / self.count

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PatternRecord":
        return cls(
            count=int(as_float(data.get("count"))),
            success_count=int(as_float(data.get("success_count"))),
            total_return=as_float(data.get("total_return")),
            success_rate=as_float(data.get("success_rate"), 0.5),
        )


@dataclass
class UserPreferences:
    """Strategies / sectors the user has picked before (insertion ordered, no dupes)."""
    preferred_strategies: list[str] = field(default_factory=list)
    preferred_sectors: list[str] = field(default_factory=list)
    risk_tolerance: str = "moderate"

    def absorb(self, strategies: list[str], sector: Optional[str]):
        for s in strategies:
            if s not in self.preferred_strategies:
                self.preferred_strategies.append(s)
        if sector and sector not in self.preferred_sectors:
            self.preferred_sectors.append(sector)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UserPreferences":
        return cls(
            preferred_strategies=[str(s) for s in data.get("preferred_strategies") or []],
            preferred_sectors=[str(s) for s in data.get("preferred_sectors") or []],
            risk_tolerance=str(data.get("risk_tolerance", "moderate")),
        )
