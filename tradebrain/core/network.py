from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

import numpy as np
from sklearn.metrics import accuracy_score
from sklearn.utils import check_random_state

from ..config import CoreConfig
from ..constants import Action, ACTIONS
from ..utils.logger import log
from ..utils.records import as_float
from .feature_engine import FeatureEngine

# name, fan-in, fan-out  (15 → 30 → 20 → 10 → 5)
LAYERS = (("ih", 15, 30), ("hh1", 30, 20), ("hh2", 20, 10), ("ho", 10, 5))
ARCHITECTURE = "15→30→20→10→5"

DEFAULT_DISTRIBUTION = {
    Action.STRONG_BUY: 0.1,
    Action.BUY: 0.2,
    Action.HOLD: 0.4,
    Action.SELL: 0.2,
    Action.STRONG_SELL: 0.1,
}

def init_weights(seed=None) -> dict[str, np.ndarray]:
    rng = check_random_state(seed)
    return {name: rng.uniform(-0.5, 0.5, size=(rows, cols)) for name, rows, cols in LAYERS}


@dataclass
class TrainingExample:
    features: list[float]
    return_pct: float
    target: int
    symbol: str = ""
    timestamp: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "TrainingExample":
        return cls(
            features=[as_float(v) for v in data.get("features") or []],
            return_pct=as_float(data.get("return_pct")),
            target=int(as_float(data.get("target"), 2)),
            symbol=str(data.get("symbol", "")),
            timestamp=str(data.get("timestamp", "")),
        )


@dataclass
class NetworkState:
    """Everything the scoring network owns; persisted as one document."""
    weights: dict[str, np.ndarray]
    accuracy: float = 0.0
    confidence: float = 0.0
    samples_seen: int = 0
    examples: list[TrainingExample] = field(default_factory=list)
    version: str = "3.0"

    @classmethod
    def fresh(cls, seed=None) -> "NetworkState":
        return cls(weights=init_weights(seed))

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "architecture": ARCHITECTURE,
            "weights": {k: v.tolist() for k, v in self.weights.items()},
            "accuracy": self.accuracy,
            "confidence": self.confidence,
            "samples_seen": self.samples_seen,
            "examples": [asdict(e) for e in self.examples],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict], seed=None) -> "NetworkState":
        """Shallow-merge `data` onto a fresh state; malformed weights are re-initialised."""
        state = cls.fresh(seed)
        if not data:
            return state
        weights = data.get("weights") or {}
        loaded: dict[str, np.ndarray] = {}
        for name, rows, cols in LAYERS:
            try:
                arr = np.asarray(weights.get(name), dtype=np.float64)
            except (TypeError, ValueError):
                arr = None
            if arr is None or arr.shape != (rows, cols) or not np.all(np.isfinite(arr)):
                log.warning("Network weights '%s' missing or malformed — re-initialising.", name)
                loaded = {}
                break
            loaded[name] = arr
        if loaded:
            state.weights = loaded
        state.accuracy = as_float(data.get("accuracy"), state.accuracy)
        state.confidence = as_float(data.get("confidence"), state.confidence)
        state.samples_seen = int(as_float(data.get("samples_seen")))
        state.examples = [TrainingExample.from_dict(e) for e in data.get("examples") or []]
        state.version = str(data.get("version", state.version))
        return state


@dataclass
class Prediction:
    probabilities: dict[Action, float]
    action: Action
    confidence: float
    is_default: bool = False

    def to_dict(self) -> dict:
        return {
            "probabilities": {a.value: p for a, p in self.probabilities.items()},
            "action": self.action.value,
            "confidence": self.confidence,
            "is_default": self.is_default,
        }


class ScoringNetwork:
    """Fixed-topology feed-forward net (ReLU hidden layers, softmax output) over
    the five ordinal actions, trained online one labeled example at a time.

    Each example triggers exactly one cross-entropy gradient step with
    per-matrix gradient-norm clipping and a hard weight bound, so an update
    costs O(network size) and weights cannot run away.
    """

    def __init__(self, state: NetworkState, cfg: CoreConfig):
        self.state = state
        self.cfg = cfg

    # -- inference --
    def predict(self, features) -> Prediction:
        x = self._validate(features)
        if x is None:
            log.warning("Invalid features for neural network prediction — using default.")
            return self.default_prediction()
        try:
            probs, _, _ = self._forward(x)
        except Exception as e:
            log.warning("Neural network prediction failed: %s", e)
            return self.default_prediction()
        idx = int(np.argmax(probs))
        return Prediction(
            probabilities={a: float(p) for a, p in zip(ACTIONS, probs)},
            action=ACTIONS[idx],
            confidence=float(probs[idx]),
        )

    @staticmethod
    def default_prediction() -> Prediction:
        return Prediction(
            probabilities=dict(DEFAULT_DISTRIBUTION),
            action=Action.HOLD,
            confidence=0.5,
            is_default=True,
        )

    @staticmethod
    def _validate(features) -> Optional[np.ndarray]:
        try:
            x = np.asarray(features, dtype=np.float64)
        except (TypeError, ValueError):
            return None
        if x.shape != (FeatureEngine.NUM_FEATURES,) or not np.all(np.isfinite(x)):
            return None
        return x

    def _forward(self, x: np.ndarray):
        w = self.state.weights
        activations = [x]
        pre = []
        a = x
        for i, (name, _, _) in enumerate(LAYERS):
            z = a @ w[name]
            pre.append(z)
            if i < len(LAYERS) - 1:
                a = np.maximum(z, 0.0)
                activations.append(a)
        return self._softmax(pre[-1]), pre, activations

    @staticmethod
    def _softmax(z: np.ndarray) -> np.ndarray:
        e = np.exp(z - np.max(z))
        return e / np.sum(e)

    # -- training --
    def encode_target(self, return_pct: float) -> int:
        if return_pct > self.cfg.strong_threshold:
            return 0
        if return_pct > self.cfg.weak_threshold:
            return 1
        if return_pct > -self.cfg.weak_threshold:
            return 2
        if return_pct > -self.cfg.strong_threshold:
            return 3
        return 4

    def train(self, features, return_pct: float, symbol: str = "") -> Optional[float]:
        """Record one labeled example and apply one weight update. Returns the
        pre-update cross-entropy loss, or None when the vector is unusable."""
        x = self._validate(features)
        if x is None:
            log.warning("Skipping training example for %s: invalid feature vector.", symbol or "?")
            return None

        target = self.encode_target(return_pct)
        self.state.examples.append(TrainingExample(
            features=x.tolist(),
            return_pct=float(return_pct),
            target=target,
            symbol=symbol,
            timestamp=datetime.now(timezone.utc).isoformat(),
        ))
        if len(self.state.examples) > self.cfg.max_training_examples:
            del self.state.examples[:-self.cfg.max_training_examples]

        loss = self._step(x, target)
        self.state.samples_seen += 1
        self.update_accuracy()
        log.info("🧠 Network trained on %s → %s  |  loss %.4f  acc %.3f",
                 symbol or "?", ACTIONS[target].value, loss, self.state.accuracy)
        return loss

    def _step(self, x: np.ndarray, target: int) -> float:
        w = self.state.weights
        probs, pre, activations = self._forward(x)
        loss = float(-np.log(probs[target] + 1e-12))

        delta = probs.copy()
        delta[target] -= 1.0                           # d(CE)/d(logits)

        grads: dict[str, np.ndarray] = {}
        for i in range(len(LAYERS) - 1, -1, -1):
            name = LAYERS[i][0]
            grads[name] = np.outer(activations[i], delta)
            if i > 0:
                delta = (delta @ w[name].T) * (pre[i - 1] > 0)

        for name, g in grads.items():
            norm = np.linalg.norm(g)
            if norm > self.cfg.max_grad_norm:
                g = g * (self.cfg.max_grad_norm / norm)
            w[name] -= self.cfg.learning_rate * g
            np.clip(w[name], -self.cfg.weight_limit, self.cfg.weight_limit, out=w[name])
        return loss

    def direction_correct(self, direction: int, return_pct: float) -> bool:
        """Buy side is right on any gain, sell side on any loss, hold inside the band."""
        if direction > 0:
            return return_pct > 0
        if direction < 0:
            return return_pct < 0
        return abs(return_pct) < self.cfg.hold_band

    def update_accuracy(self):
        """Directional accuracy over the most recent labeled examples."""
        examples = self.state.examples
        if len(examples) < self.cfg.accuracy_min_examples:
            return
        recent = examples[-self.cfg.accuracy_window:]
        hits = [self.direction_correct(self.predict(e.features).action.direction, e.return_pct)
                for e in recent]
        self.state.accuracy = float(accuracy_score([True] * len(hits), hits))
        self.state.confidence = min(self.state.accuracy * 1.2, 0.95)

    # -- reporting --
    def stats(self) -> dict:
        return {
            "accuracy": self.state.accuracy,
            "confidence": self.state.confidence,
            "training_samples": self.state.samples_seen,
            "buffered_examples": len(self.state.examples),
            "architecture": ARCHITECTURE,
            "features": FeatureEngine.NUM_FEATURES,
            "version": self.state.version,
        }
