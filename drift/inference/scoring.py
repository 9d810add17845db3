"""
Scoring Engine — maps a full feature window to a distraction score in [0, 1].

Two backends share one lifecycle (NOT_LOADED → LOADING → READY, or FAILED):

  RuleBasedScorer  deterministic weighted sum over the newest vector
  ModelScorer      scikit-learn estimator saved with joblib, fed the whole
                   flattened window (see scripts/train_estimator.py)

Callers never block on a load: predict() on an engine that is not READY
fails fast with EngineNotReady.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..errors import EngineLoadError, EngineNotReady
from .features import FEATURE_NAMES

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


def _clamp01(value: float) -> float:
    return max(0.0, min(float(value), 1.0))


def validate_window(window: Sequence[Sequence[float]], size: int) -> List[List[float]]:
    """Return the window as plain float rows; ValueError on a shape mismatch."""
    rows = [list(map(float, row)) for row in window]
    if len(rows) != size:
        raise ValueError(f"Expected a window of {size} vectors, got {len(rows)}")
    for row in rows:
        if len(row) != len(FEATURE_NAMES):
            raise ValueError(
                f"Expected {len(FEATURE_NAMES)} features per vector, got {len(row)}"
            )
    return rows


class ScoringEngine:
    """Base class: owns the load state machine, subclasses supply _load/_score."""

    name = "base"

    def __init__(self, window_size: int = 10):
        self.window_size = window_size
        self.state = EngineState.NOT_LOADED
        self.version: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.state is EngineState.READY

    @property
    def is_loading(self) -> bool:
        return self.state is EngineState.LOADING

    def status(self) -> Dict[str, Any]:
        return {"isReady": self.is_ready, "isLoading": self.is_loading}

    async def load(self) -> None:
        """No-op while loading or ready. Raises EngineLoadError on failure."""
        if self.state in (EngineState.LOADING, EngineState.READY):
            return
        self.state = EngineState.LOADING
        self.last_error = None
        try:
            self.version = await self._load()
        except Exception as e:
            self.state = EngineState.FAILED
            self.last_error = str(e) or type(e).__name__
            logger.error("Scoring engine %s failed to load: %s", self.name, self.last_error)
            raise EngineLoadError(self.last_error) from e
        self.state = EngineState.READY
        logger.info("Scoring engine %s ready (version %s)", self.name, self.version)

    async def predict(self, window: Sequence[Sequence[float]]) -> float:
        if not self.is_ready:
            raise EngineNotReady(f"Scoring engine is {self.state.value}")
        rows = validate_window(window, self.window_size)
        return _clamp01(await self._score(rows))

    async def _load(self) -> str:
        raise NotImplementedError

    async def _score(self, rows: List[List[float]]) -> float:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Rule-based backend
# ---------------------------------------------------------------------------

# Weights over the newest feature vector; typing_speed carries no weight
# since a long interval means either deep reading or idling.
RULE_WEIGHTS: Dict[str, float] = {
    "tab_count": 0.35,
    "scroll_velocity": 0.25,
    "mouse_entropy": 0.25,
    "error_rate": 0.15,
}


class RuleBasedScorer(ScoringEngine):
    name = "rule"

    def __init__(self, window_size: int = 10, weights: Optional[Dict[str, float]] = None):
        super().__init__(window_size)
        self.weights = dict(weights or RULE_WEIGHTS)
        unknown = set(self.weights) - set(FEATURE_NAMES)
        if unknown:
            raise ValueError(f"Unknown features in weights: {sorted(unknown)}")

    async def _load(self) -> str:
        return "rule-v1"

    async def _score(self, rows: List[List[float]]) -> float:
        return self.score_vector(rows[-1])

    def score_vector(self, row: Sequence[float]) -> float:
        total_weight = sum(abs(w) for w in self.weights.values())
        if total_weight == 0:
            return 0.0
        values = dict(zip(FEATURE_NAMES, row))
        score = sum(w * values[name] for name, w in self.weights.items())
        return _clamp01(score / total_weight)


# ---------------------------------------------------------------------------
# Learned backend
# ---------------------------------------------------------------------------

class ModelScorer(ScoringEngine):
    """
    Wraps a fitted scikit-learn estimator. Classifiers contribute the
    probability of the last class ("distracted"); regressors their raw output.
    """

    name = "model"

    def __init__(self, model_path: Path, window_size: int = 10):
        super().__init__(window_size)
        self.model_path = Path(model_path)
        self._model = None

    async def _load(self) -> str:
        if not self.model_path.exists():
            raise FileNotFoundError(f"No model file at {self.model_path}")
        loop = asyncio.get_running_loop()
        self._model = await loop.run_in_executor(None, self._read_model)
        return getattr(self._model, "drift_version", type(self._model).__name__)

    def _read_model(self):
        import joblib
        return joblib.load(self.model_path)

    async def _score(self, rows: List[List[float]]) -> float:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._predict_sync, rows)

    def _predict_sync(self, rows: List[List[float]]) -> float:
        X = np.asarray(rows, dtype=np.float32).reshape(1, -1)
        if hasattr(self._model, "predict_proba"):
            return float(self._model.predict_proba(X)[0][-1])
        return float(np.ravel(self._model.predict(X))[0])


def build_engine(kind: str, window_size: int, model_path: Optional[Path] = None) -> ScoringEngine:
    if kind == "model":
        if model_path is None:
            raise ValueError("model scorer needs a model_path")
        return ModelScorer(model_path, window_size=window_size)
    if kind == "rule":
        return RuleBasedScorer(window_size=window_size)
    raise ValueError(f"Unknown scorer kind: {kind!r}")
