"""
Pytest configuration and shared fixtures for the learning-core tests.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tradebrain.config import CoreConfig
from tradebrain.engine import LearningCore
from tradebrain.trading.journal import MemoryStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 2, 15, 30, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def cfg():
    """Seeded config backed by an in-memory store."""
    return CoreConfig(seed=42, store_backend="memory")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def core(cfg, store, clock):
    """Fresh learning core over an isolated in-memory store."""
    return LearningCore(cfg, store, clock=clock)


@pytest.fixture
def sample_prices():
    """220 closes of a gently rising random walk."""
    np.random.seed(42)
    returns = np.random.randn(220) * 0.01 + 0.001
    return (100 * np.exp(np.cumsum(returns))).round(4).tolist()


@pytest.fixture
def golden_cross_prices():
    """201 closes where the 50-SMA crosses above the 200-SMA on the last bar."""
    return [100.0] * 150 + [99.0] * 50 + [200.0]


@pytest.fixture
def market_context(sample_prices):
    """Factory for a full market observation; keyword overrides win."""
    def make(**overrides):
        ctx = {
            "prices": list(sample_prices),
            "vwap": float(np.mean(sample_prices[-20:])),
            "volume": 1_500_000,
            "avgVolume": 1_000_000,
            "changePercent": 0.8,
            "socialSentiment": 0.4,
            "newsSentiment": 0.1,
            "callVolume": 3200,
            "putVolume": 1600,
            "unusualActivity": True,
            "marketCap": 2.5e11,
            "sectorStrength": 0.3,
            "correlationSPY": 0.7,
        }
        ctx.update(overrides)
        return ctx
    return make


@pytest.fixture
def trade_entry(market_context):
    """Factory for a recordEntry payload."""
    def make(symbol="NVDA", strategy="ttm_squeeze", entry_price=100.0, **overrides):
        data = {
            "symbol": symbol,
            "strategyName": strategy,
            "entryPrice": entry_price,
            "positionSize": 2,
            "maxLoss": 200.0,
            "maxGain": 600.0,
            "marketConditions": market_context(),
        }
        data.update(overrides)
        return data
    return make
