"""Single linear unit per strategy key.

Features are the UTC hour of the action, every numeric or boolean parameter
scaled into [0, 1], and the size of the context. The forward pass is a ReLU
over a weighted sum; training nudges the weights toward the observed reward.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from ostinato.core.config import LearningConfig, PredictorConfig
from ostinato.learning.models import PredictorWeights, ScalarMap, clamp
from ostinato.utils.time import ensure_utc


def extract_features(
    timestamp: datetime,
    context: dict[str, Any],
    parameters: ScalarMap,
    config: PredictorConfig,
) -> dict[str, float]:
    """Feature vector for one action."""
    features = {"hour_normalized": ensure_utc(timestamp).hour / 24}
    span = config.feature_max - config.feature_min
    for name, value in parameters.items():
        # bool is an int subclass; check it first
        if isinstance(value, bool):
            features[f"param_{name}"] = 1.0 if value else 0.0
        elif isinstance(value, int | float):
            features[f"param_{name}"] = clamp((value - config.feature_min) / span, 0.0, 1.0)
    features["context_complexity"] = len(context) / config.context_complexity_divisor
    return features


def forward(features: dict[str, float], weights: PredictorWeights) -> float:
    total = weights.bias
    for name, value in features.items():
        total += weights.input_weights.get(name, 0.0) * value
    return max(0.0, total)


class LinearPredictor:
    """Owns the predictor weight table."""

    def __init__(self, learning: LearningConfig, config: PredictorConfig) -> None:
        self._learning_rate = learning.learning_rate
        self._config = config
        self._lock = threading.RLock()
        self._weights: dict[str, PredictorWeights] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._weights)

    def features(
        self, timestamp: datetime, context: dict[str, Any], parameters: ScalarMap
    ) -> dict[str, float]:
        return extract_features(timestamp, context, parameters, self._config)

    def update(self, key: str, features: dict[str, float], reward: float) -> PredictorWeights:
        """One training step toward ``reward``."""
        alpha = self._learning_rate
        with self._lock:
            weights = self._weights.get(key)
            if weights is None:
                weights = self._weights[key] = PredictorWeights(
                    output_weight=self._config.initial_output_weight
                )
            error = reward - weights.output_weight
            weights.output_weight += alpha * error
            for name, value in features.items():
                weights.input_weights[name] = (
                    weights.input_weights.get(name, 0.0) + alpha * error * value
                )
            return weights.copy()

    def predict(self, key: str, features: dict[str, float]) -> float | None:
        """Forward pass for ``key``; None when no weights exist yet."""
        with self._lock:
            weights = self._weights.get(key)
            if weights is None:
                return None
            return forward(features, weights)

    def get(self, key: str) -> PredictorWeights | None:
        with self._lock:
            weights = self._weights.get(key)
            return weights.copy() if weights is not None else None

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {key: w.to_dict() for key, w in self._weights.items()}

    def load(self, data: dict[str, Any]) -> int:
        loaded: dict[str, PredictorWeights] = {}
        dropped = 0
        for key, entry in data.items():
            if isinstance(entry, dict):
                loaded[key] = PredictorWeights.from_dict(entry)
            else:
                dropped += 1
        with self._lock:
            self._weights = loaded
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._weights.clear()
