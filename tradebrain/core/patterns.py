from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from ..constants import Bias
from .feature_engine import FeatureEngine

MIN_HISTORY = 50
DEFAULT_STRENGTH = 0.5

@dataclass(frozen=True)
class PatternMatch:
    name: str
    bias: Bias
    confidence: float
    timeframe: str
    description: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "bias": self.bias.value,
            "confidence": self.confidence,
            "timeframe": self.timeframe,
            "description": self.description,
        }


@dataclass
class PatternReport:
    patterns: list[PatternMatch] = field(default_factory=list)
    strength: float = DEFAULT_STRENGTH
    insufficient_data: bool = False

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.patterns]

    @property
    def label(self) -> str:
        if self.insufficient_data:
            return "insufficient_data"
        return ", ".join(self.names) if self.patterns else "No Clear Pattern"

    @property
    def net_bias(self) -> Bias:
        score = sum(p.confidence if p.bias is Bias.BULLISH else
                    -p.confidence if p.bias is Bias.BEARISH else 0.0
                    for p in self.patterns)
        if score > 0:
            return Bias.BULLISH
        if score < 0:
            return Bias.BEARISH
        return Bias.NEUTRAL


class PatternRecognizer:
    """Flags classic chart patterns in a close-price history.

    Every detector is a pure function of the series, so identical histories
    always produce identical reports.
    """

    def __init__(self):
        # (name, bias, nominal confidence, timeframe, description, detector)
        self.catalogue: list[tuple[str, Bias, float, str, str, Callable[[np.ndarray], bool]]] = [
            ("Golden Cross", Bias.BULLISH, 0.85, "5-20 days",
             "50 SMA crosses above 200 SMA", self.is_golden_cross),
            ("Death Cross", Bias.BEARISH, 0.82, "5-20 days",
             "50 SMA crosses below 200 SMA", self.is_death_cross),
            ("Bull Flag", Bias.BULLISH, 0.75, "3-10 days",
             "Tight consolidation after a strong uptrend", self.is_bull_flag),
            ("Bear Flag", Bias.BEARISH, 0.73, "3-10 days",
             "Tight consolidation after a strong downtrend", self.is_bear_flag),
            ("Cup and Handle", Bias.BULLISH, 0.78, "10-30 days",
             "Rounded base with matching rims", self.is_cup_and_handle),
            ("Head and Shoulders", Bias.BEARISH, 0.80, "10-25 days",
             "Peak flanked by two lower, similar peaks", self.is_head_and_shoulders),
            ("Triangle", Bias.NEUTRAL, 0.65, "5-15 days",
             "Converging swing highs and lows", self.is_triangle),
            ("Range Bound", Bias.NEUTRAL, 0.70, "5-20 days",
             "Sideways drift between support and resistance", self.is_range),
        ]

    def identify(self, prices) -> PatternReport:
        closes = np.asarray(prices if prices is not None else [], dtype=np.float64)
        if len(closes) < MIN_HISTORY:
            return PatternReport(insufficient_data=True)

        matches = [
            PatternMatch(name, bias, conf, timeframe, desc)
            for name, bias, conf, timeframe, desc, detector in self.catalogue
            if detector(closes)
        ]
        strength = max((m.confidence for m in matches), default=DEFAULT_STRENGTH)
        return PatternReport(patterns=matches, strength=strength)

    # ---- Detectors ----
    @staticmethod
    def _sma_cross(closes: np.ndarray) -> Optional[tuple[float, float, float, float]]:
        if len(closes) < 200:
            return None
        sma = FeatureEngine.sma
        return (sma(closes[-51:-1]), sma(closes[-201:-1]), sma(closes[-50:]), sma(closes[-200:]))

    @staticmethod
    def is_golden_cross(closes: np.ndarray) -> bool:
        smas = PatternRecognizer._sma_cross(closes)
        if smas is None:
            return False
        prev50, prev200, sma50, sma200 = smas
        return prev50 <= prev200 and sma50 > sma200

    @staticmethod
    def is_death_cross(closes: np.ndarray) -> bool:
        smas = PatternRecognizer._sma_cross(closes)
        if smas is None:
            return False
        prev50, prev200, sma50, sma200 = smas
        return prev50 >= prev200 and sma50 < sma200

    @staticmethod
    def is_bull_flag(closes: np.ndarray) -> bool:
        if len(closes) < 30:
            return False
        trend = FeatureEngine.trend(closes[-30:])
        vol = FeatureEngine.volatility(closes[-10:])
        return trend > 0.02 and vol < 0.3

    @staticmethod
    def is_bear_flag(closes: np.ndarray) -> bool:
        if len(closes) < 30:
            return False
        trend = FeatureEngine.trend(closes[-30:])
        vol = FeatureEngine.volatility(closes[-10:])
        return trend < -0.02 and vol < 0.3

    @staticmethod
    def is_cup_and_handle(closes: np.ndarray) -> bool:
        if len(closes) < MIN_HISTORY:
            return False
        left_high = np.max(closes[:10])
        right_high = np.max(closes[-10:])
        cup_low = np.min(closes[10:-10])
        return bool(left_high > cup_low * 1.1 and right_high > cup_low * 1.1
                    and abs(left_high - right_high) < left_high * 0.05)

    @staticmethod
    def is_head_and_shoulders(closes: np.ndarray) -> bool:
        if len(closes) < 30:
            return False
        seg = len(closes) // 3
        left = np.max(closes[:seg])
        head = np.max(closes[seg:2 * seg])
        right = np.max(closes[2 * seg:])
        return bool(head > left * 1.05 and head > right * 1.05
                    and abs(left - right) < left * 0.1)

    @staticmethod
    def is_triangle(closes: np.ndarray) -> bool:
        if len(closes) < 20:
            return False
        mid = closes[1:-1]
        peaks = mid[(mid > closes[:-2]) & (mid > closes[2:])]
        troughs = mid[(mid < closes[:-2]) & (mid < closes[2:])]
        return bool(len(peaks) >= 2 and len(troughs) >= 2
                    and abs(FeatureEngine.trend(peaks)) > 0.01
                    and abs(FeatureEngine.trend(troughs)) > 0.01)

    @staticmethod
    def is_range(closes: np.ndarray) -> bool:
        if len(closes) < 10:
            return False
        return FeatureEngine.volatility(closes) < 0.2 and abs(FeatureEngine.trend(closes)) < 0.01
