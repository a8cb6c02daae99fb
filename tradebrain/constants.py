from enum import Enum

class Action(Enum):
    STRONG_BUY = "strongBuy"
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"
    STRONG_SELL = "strongSell"

    @property
    def direction(self) -> int:
        """+1 for the buy side, -1 for the sell side, 0 for hold."""
        if self in (Action.STRONG_BUY, Action.BUY):
            return 1
        if self in (Action.SELL, Action.STRONG_SELL):
            return -1
        return 0

# output-layer order of the scoring network
ACTIONS = (Action.STRONG_BUY, Action.BUY, Action.HOLD, Action.SELL, Action.STRONG_SELL)

class Bias(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

class MarketCondition(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    SIDEWAYS = "sideways"
    HIGH_VOLATILITY = "high_volatility"
    LOW_VOLATILITY = "low_volatility"
    UNKNOWN = "unknown"

# buckets tracked by the strategy tracker (UNKNOWN is never recorded)
CONDITION_BUCKETS = (
    MarketCondition.BULLISH,
    MarketCondition.BEARISH,
    MarketCondition.SIDEWAYS,
    MarketCondition.HIGH_VOLATILITY,
    MarketCondition.LOW_VOLATILITY,
)

class TradeState(Enum):
    PROPOSED = "proposed"
    ACTIVE = "active"
    COMPLETED = "completed"

class TradeResult(Enum):
    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"

DEFAULT_STRATEGIES = (
    "ttm_squeeze",
    "options_flow",
    "gamma_exposure",
    "dark_pool",
    "technical_analysis",
    "unusual_activity",
)

RESET_CONFIRMATION = "FRESH_START_CONFIRMED"
