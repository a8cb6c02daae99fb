import copy
from dataclasses import dataclass, field
from typing import Optional

from ..config import CoreConfig
from ..constants import CONDITION_BUCKETS
from ..utils.logger import log
from ..utils.records import (
    as_float, StrategyRecord, ConditionRecord, PatternRecord, UserPreferences, TradeRecord,
)
from .network import NetworkState

VERSION = "3.0"

# one persisted document per logical store
DOC_NETWORK = "network"
DOC_MODEL = "model"
DOC_TRADES = "trades"
DOCUMENTS = (DOC_NETWORK, DOC_MODEL, DOC_TRADES)

def default_model_document(cfg: CoreConfig) -> dict:
    return {
        "version": VERSION,
        "strategies": {name: StrategyRecord().to_dict() for name in cfg.default_strategies},
        "conditions": {c.value: ConditionRecord().to_dict() for c in CONDITION_BUCKETS},
        "patterns": {},
        "preferences": UserPreferences().to_dict(),
        "total_trades": 0,
        "successful_trades": 0,
        "win_rate": 0.0,
        "last_trained": None,
    }

def default_trades_document() -> dict:
    return {"version": VERSION, "trades": []}

def merge_defaults(defaults: dict, loaded: Optional[dict]) -> dict:
    """Shallow-merge a persisted document onto its default structure.

    Keys missing from `loaded` keep their default; maps present on both sides
    are merged one level down so new default entries survive old files.
    """
    merged = copy.deepcopy(defaults)
    if not isinstance(loaded, dict):
        return merged
    for key, value in loaded.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


@dataclass
class ModelState:
    """Aggregate root for everything the learning core remembers, except the
    trade history (owned by the lifecycle tracker, persisted as its own document)."""
    network: NetworkState
    strategies: dict[str, StrategyRecord] = field(default_factory=dict)
    conditions: dict[str, ConditionRecord] = field(default_factory=dict)
    patterns: dict[str, PatternRecord] = field(default_factory=dict)
    preferences: UserPreferences = field(default_factory=UserPreferences)
    total_trades: int = 0
    successful_trades: int = 0
    win_rate: float = 0.0
    last_trained: Optional[str] = None
    version: str = VERSION

    @classmethod
    def default(cls, cfg: CoreConfig) -> "ModelState":
        return cls.from_documents(cfg, None, None)

    @classmethod
    def from_documents(cls, cfg: CoreConfig, network_doc: Optional[dict],
                       model_doc: Optional[dict]) -> "ModelState":
        try:
            network = NetworkState.from_dict(network_doc, seed=cfg.seed)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            log.warning("Network document unusable (%s) — starting with fresh weights.", e)
            network = NetworkState.fresh(cfg.seed)

        defaults = default_model_document(cfg)
        try:
            return cls._from_model_doc(network, merge_defaults(defaults, model_doc))
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            log.warning("Model document unusable (%s) — starting from defaults.", e)
            return cls._from_model_doc(network, defaults)

    @classmethod
    def _from_model_doc(cls, network: NetworkState, doc: dict) -> "ModelState":
        return cls(
            network=network,
            strategies={str(k): StrategyRecord.from_dict(v) for k, v in doc["strategies"].items()},
            conditions={str(k): ConditionRecord.from_dict(v) for k, v in doc["conditions"].items()},
            patterns={str(k): PatternRecord.from_dict(v) for k, v in doc["patterns"].items()},
            preferences=UserPreferences.from_dict(doc["preferences"]),
            total_trades=int(as_float(doc["total_trades"])),
            successful_trades=int(as_float(doc["successful_trades"])),
            win_rate=as_float(doc["win_rate"]),
            last_trained=doc.get("last_trained"),
            version=str(doc.get("version", VERSION)),
        )

    def model_document(self) -> dict:
        return {
            "version": self.version,
            "strategies": {k: v.to_dict() for k, v in self.strategies.items()},
            "conditions": {k: v.to_dict() for k, v in self.conditions.items()},
            "patterns": {k: v.to_dict() for k, v in self.patterns.items()},
            "preferences": self.preferences.to_dict(),
            "total_trades": self.total_trades,
            "successful_trades": self.successful_trades,
            "win_rate": self.win_rate,
            "last_trained": self.last_trained,
        }

    def network_document(self) -> dict:
        return self.network.to_dict()

    def record_result(self, success: bool):
        self.total_trades += 1
        if success:
            self.successful_trades += 1
        self.win_rate = self.successful_trades / self.total_trades

    # -- reset scopes --
    def reset_learning(self, cfg: CoreConfig):
        """Forget the network and every learned statistic; keep preferences."""
        fresh = ModelState.default(cfg)
        self.network = fresh.network
        self.strategies = fresh.strategies
        self.conditions = fresh.conditions
        self.patterns = fresh.patterns
        self.total_trades = 0
        self.successful_trades = 0
        self.win_rate = 0.0
        self.last_trained = None

    def reset_preferences(self):
        self.preferences = UserPreferences()


def trades_document(trades: list[TradeRecord]) -> dict:
    return {"version": VERSION, "trades": [t.to_dict() for t in trades]}

def trades_from_document(doc: Optional[dict]) -> list[TradeRecord]:
    merged = merge_defaults(default_trades_document(), doc)
    raw = merged["trades"] if isinstance(merged["trades"], list) else []
    trades = []
    for item in raw:
        try:
            trades.append(TradeRecord.from_dict(item))
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            log.warning("Dropping unreadable trade record: %s", e)
    return trades
