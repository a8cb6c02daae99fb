import json
import os
import sys

import numpy as np

from tradebrain.config import CoreConfig
from tradebrain.engine import LearningCore

WATCHLIST = [
    # symbol, composite score, detecting strategies, sector
    ("NVDA", 82.0, ["ttm_squeeze", "options_flow"], "Technology"),
    ("AMD", 74.0, ["gamma_exposure"], "Technology"),
    ("XOM", 68.0, ["dark_pool", "unusual_activity"], "Energy"),
    ("JPM", 61.0, ["technical_analysis"], "Financials"),
]

def synthetic_market(rng: np.random.RandomState, start: float) -> dict:
    """Random-walk close history plus the flow/sentiment fields the core reads."""
    closes = start * np.exp(np.cumsum(rng.normal(0.0005, 0.015, 220)))
    volume = float(rng.uniform(0.5, 3.0) * 1e6)
    return {
        "prices": closes.round(2).tolist(),
        "vwap": float(np.mean(closes[-20:])),
        "volume": volume,
        "avgVolume": 1e6,
        "changePercent": float((closes[-1] / closes[-2] - 1) * 100),
        "socialSentiment": float(rng.uniform(-1, 1)),
        "newsSentiment": float(rng.uniform(-1, 1)),
        "callVolume": float(rng.randint(500, 5000)),
        "putVolume": float(rng.randint(500, 5000)),
        "unusualActivity": bool(rng.rand() > 0.7),
        "marketCap": float(rng.uniform(5e10, 2e12)),
        "sectorStrength": float(rng.uniform(-1, 1)),
        "correlationSPY": float(rng.uniform(0, 1)),
    }

def main():
    # --- Load config from a JSON file or env ---
    config_path = os.environ.get("TB_CONFIG", "")
    if config_path:
        try:
            cfg = CoreConfig.from_json(config_path)
        except (OSError, ValueError) as e:
            print(f"Warning: could not read config '{config_path}' ({e}), using defaults")
            cfg = CoreConfig()
    else:
        cfg = CoreConfig(
            store_backend=os.environ.get("TB_BACKEND", "json"),
            state_dir=os.environ.get("TB_STATE_DIR", "brain_state"),
            db_path=os.environ.get("TB_DB_PATH", "brain_state/brain.db"),
            log_level=os.environ.get("TB_LOG_LEVEL", "INFO"),
        )

    core = LearningCore(cfg)
    rng = np.random.RandomState(int(os.environ.get("TB_DEMO_SEED", "7")))

    candidates = [
        {
            "symbol": symbol,
            "compositeScore": score,
            "detectedBy": strategies,
            "sector": sector,
            "market": synthetic_market(rng, start=rng.uniform(40, 400)),
        }
        for symbol, score, strategies, sector in WATCHLIST
    ]

    ranked = core.rank_opportunities(candidates)
    if not ranked.ok:
        print(f"Ranking failed: {ranked.error}")
        sys.exit(1)

    print("=" * 60)
    print(f"  {'SYMBOL':<8}{'AI':>7}{'BASE':>7}{'NET':>7}{'STRAT':>7}{'PREF':>7}  ACTION")
    for r in ranked.value:
        print(f"  {r['symbol']:<8}{r['aiScore']:>7.1f}{r['compositeScore']:>7.1f}"
              f"{r['networkBonus']:>7.1f}{r['strategyBonus']:>7.1f}{r['userPreferenceBonus']:>7.1f}"
              f"  {r['action']}{'  (cold start)' if r['coldStart'] else ''}")
    print("=" * 60)

    stats = core.get_model_stats()
    print(json.dumps(stats.value, indent=2))

if __name__ == "__main__":
    main()
