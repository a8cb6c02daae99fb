import numpy as np

from ..constants import MarketCondition
from ..utils.records import MarketSnapshot

class MarketConditionClassifier:
    """Buckets a trade's entry context into one market condition."""

    BULLISH_CHANGE = 2.0        # % day change
    BEARISH_CHANGE = -2.0
    HIGH_VOLUME_RATIO = 2.0     # volume / average volume
    LOW_VOLUME_RATIO = 0.5

    @staticmethod
    def change_percent(snap: MarketSnapshot) -> float | None:
        if snap.change_percent is not None:
            return snap.change_percent
        if len(snap.prices) >= 2 and snap.prices[-2] > 0:
            closes = np.asarray(snap.prices[-2:], dtype=np.float64)
            return float((closes[1] - closes[0]) / closes[0] * 100.0)
        return None

    @classmethod
    def detect(cls, context) -> MarketCondition:
        snap = MarketSnapshot.from_dict(context)
        if snap.is_empty:
            return MarketCondition.UNKNOWN

        change = cls.change_percent(snap)
        if change is not None:
            if change > cls.BULLISH_CHANGE:
                return MarketCondition.BULLISH
            if change < cls.BEARISH_CHANGE:
                return MarketCondition.BEARISH

        if snap.volume > 0 and snap.avg_volume > 0:
            ratio = snap.volume / snap.avg_volume
            if ratio > cls.HIGH_VOLUME_RATIO:
                return MarketCondition.HIGH_VOLATILITY
            if ratio < cls.LOW_VOLUME_RATIO:
                return MarketCondition.LOW_VOLATILITY

        return MarketCondition.SIDEWAYS
