import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

from .constants import DEFAULT_STRATEGIES

@dataclass
class CoreConfig:
    """All tuneable knobs in one place."""

    # --- scoring network ---
    learning_rate: float = 0.01             # SGD step per labeled example
    max_grad_norm: float = 1.0              # per-matrix gradient clip
    weight_limit: float = 5.0               # hard bound on any single weight
    max_training_examples: int = 10000      # buffer size, oldest evicted
    accuracy_window: int = 100              # recent examples scored for accuracy
    accuracy_min_examples: int = 10         # no accuracy before this many examples
    hold_band: float = 2.0                  # hold call is right when |return %| is inside this
    seed: Optional[int] = None              # weight init RNG seed

    # --- target encoding (percent return) ---
    strong_threshold: float = 10.0          # beyond ±10% → strongBuy / strongSell
    weak_threshold: float = 3.0             # beyond ±3%  → buy / sell

    # --- ranking ---
    min_network_examples: int = 5           # cold start until this many completed trades
    network_bonus_points: float = 10.0      # max network confidence contribution
    pattern_blend: float = 0.3              # share of pattern confidence in that bonus
    strategy_bonus_scale: float = 5.0       # points per unit of weight above 1.0
    strategy_bonus_cap: float = 10.0        # strategy bonus bounded to ±cap
    preference_strategy_points: float = 2.0
    preference_sector_points: float = 3.0
    preference_bonus_cap: float = 10.0

    # --- strategy tracker ---
    min_strategy_trades: int = 3            # fewer trades → neutral weight 1.0
    weight_floor: float = 0.1
    weight_cap: float = 2.0
    recent_window: int = 20                 # "recent" win rate window
    recommendation_min_trades: int = 10
    recent_performance_lookback: int = 50
    default_strategies: tuple = DEFAULT_STRATEGIES

    # --- outcomes ---
    success_threshold: float = 0.0          # return % above this is a win
    breakeven_floor: float = -2.0           # non-wins above this are breakeven

    # --- persistence ---
    store_backend: str = "json"             # "json" | "sqlite" | "memory"
    state_dir: str = "brain_state"
    db_path: str = "brain_state/brain.db"

    # --- misc ---
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CoreConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in (data or {}).items() if k in known}
        if "default_strategies" in kwargs:
            kwargs["default_strategies"] = tuple(kwargs["default_strategies"])
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: str | Path) -> "CoreConfig":
        with open(Path(path), "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))
