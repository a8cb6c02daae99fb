import math
from typing import Any

import numpy as np

from ..utils.records import MarketSnapshot, as_float

class FeatureEngine:
    """Converts one market observation into the fixed 15-slot input vector of the
    scoring network.

    Slots 0-6 are technical indicators, 7-8 sentiment, 9-10 options flow and
    11-14 market structure. Any missing source is imputed as 0 and every
    non-finite value is coerced to 0 before the vector leaves this class.
    """

    NAMES = [
        # technical (0-6)
        "rsi", "macd", "bb_position", "vwap_dist", "rel_volume", "volatility", "trend",
        # sentiment (7-8)
        "social_sentiment", "news_sentiment",
        # options flow (9-10)
        "call_put_ratio", "unusual_activity",
        # market structure (11-14)
        "momentum", "market_cap", "sector_strength", "correlation_spy",
    ]
    NUM_FEATURES = len(NAMES)       # 15

    MAX_REL_VOLUME = 5.0
    MAX_CALL_PUT = 10.0

    def compute(self, observation: Any) -> np.ndarray:
        snap = MarketSnapshot.from_dict(observation)
        prices = np.asarray(snap.prices, dtype=np.float64)
        price = snap.last_price

        feats: list[float] = []

        # --- Technical ---
        if len(prices) > 0:
            feats.append(self.rsi(prices) / 100.0)
            feats.append(self.macd(prices) / (price + 1e-10) if price > 0 else 0.0)
            feats.append(self.bollinger_position(prices))
        else:
            feats.extend([0.0, 0.0, 0.0])

        if snap.vwap > 0 and price > 0:
            feats.append((price - snap.vwap) / snap.vwap)
        else:
            feats.append(0.0)

        if snap.volume > 0:
            avg = snap.avg_volume if snap.avg_volume > 0 else snap.volume
            feats.append(min(snap.volume / avg, self.MAX_REL_VOLUME))
        else:
            feats.append(0.0)

        if len(prices) > 0:
            feats.append(self.volatility(prices))
            feats.append(self.trend(prices))
        else:
            feats.extend([0.0, 0.0])

        # --- Sentiment ---
        feats.append(snap.social_sentiment)
        feats.append(snap.news_sentiment)

        # --- Options flow ---
        if snap.call_volume > 0 or snap.put_volume > 0:
            calls = snap.call_volume if snap.call_volume > 0 else 1.0
            puts = snap.put_volume if snap.put_volume > 0 else 1.0
            feats.append(min(calls / puts, self.MAX_CALL_PUT))
        else:
            feats.append(0.0)
        feats.append(1.0 if snap.unusual_activity else 0.0)

        # --- Market structure ---
        feats.append(self.momentum(prices) if len(prices) > 0 else 0.0)
        feats.append(math.log(snap.market_cap) / 20.0 if snap.market_cap > 1 else 0.0)
        feats.append(snap.sector_strength)
        feats.append(snap.correlation_spy)

        return self.sanitize(feats)

    @classmethod
    def sanitize(cls, values) -> np.ndarray:
        """Exactly NUM_FEATURES finite floats: pad/trim, NaN and ±inf → 0."""
        out = np.zeros(cls.NUM_FEATURES, dtype=np.float64)
        vals = [as_float(v) for v in list(values)[:cls.NUM_FEATURES]]
        out[:len(vals)] = vals
        return np.nan_to_num(out, nan=0.0, posinf=0.0, neginf=0.0)

    def describe(self, features: np.ndarray) -> dict[str, float]:
        return {name: float(v) for name, v in zip(self.NAMES, features)}

    # ---- Helpers (shared with the pattern recognizer) ----
    @staticmethod
    def sma(data: np.ndarray) -> float:
        if len(data) == 0:
            return 0.0
        return float(np.mean(data))

    @staticmethod
    def ema(data: np.ndarray, span: int) -> float:
        if len(data) == 0:
            return 0.0
        alpha = 2.0 / (span + 1)
        val = float(data[0])
        for d in data[1:]:
            val = alpha * d + (1 - alpha) * val
        return val

    @staticmethod
    def macd(closes: np.ndarray) -> float:
        return FeatureEngine.ema(closes, 12) - FeatureEngine.ema(closes, 26)

    @staticmethod
    def rsi(closes: np.ndarray, period: int = 14) -> float:
        if len(closes) < period + 1:
            return 50.0
        deltas = np.diff(closes[-(period + 1):])
        gain = np.sum(np.maximum(deltas, 0)) / period
        loss = np.sum(np.maximum(-deltas, 0)) / period
        if loss == 0:
            return 100.0 if gain > 0 else 50.0
        rs = gain / loss
        return float(100.0 - 100.0 / (1.0 + rs))

    @staticmethod
    def bollinger_position(closes: np.ndarray, window: int = 20) -> float:
        if len(closes) < window:
            return 0.5
        recent = closes[-window:]
        mid = np.mean(recent)
        std = np.std(recent)
        upper = mid + 2 * std
        lower = mid - 2 * std
        if upper - lower < 1e-10:
            return 0.5
        return float((closes[-1] - lower) / (upper - lower))

    @staticmethod
    def volatility(closes: np.ndarray) -> float:
        """Annualised standard deviation of log returns."""
        if len(closes) < 2:
            return 0.2
        if np.any(closes <= 0):
            return 0.0
        rets = np.diff(np.log(closes))
        return float(np.sqrt(np.var(rets) * 252))

    @staticmethod
    def trend(values) -> float:
        """Least-squares slope normalised by the mean level."""
        y = np.asarray(values, dtype=np.float64)
        n = len(y)
        if n < 2:
            return 0.0
        slope = np.polyfit(np.arange(n, dtype=np.float64), y, 1)[0]
        mean = np.mean(y)
        if abs(mean) < 1e-10:
            return 0.0
        return float(slope / mean)

    @staticmethod
    def momentum(closes: np.ndarray) -> float:
        if len(closes) < 10:
            return 0.0
        recent = np.mean(closes[-5:])
        older = np.mean(closes[-10:-5])
        if abs(older) < 1e-10:
            return 0.0
        return float((recent - older) / older)


def extract_features(observation: Any) -> np.ndarray:
    """Module-level shortcut for one-off extraction."""
    return FeatureEngine().compute(observation)
