"""Tests for ostinato.learning.predictor."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from ostinato.core.config import LearningConfig, PredictorConfig
from ostinato.learning.models import PredictorWeights
from ostinato.learning.predictor import LinearPredictor, extract_features, forward

NOON = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class TestExtractFeatures:
    """Tests for the feature vector."""

    def test_hour_and_context_size(self):
        features = extract_features(NOON, {"a": 1, "b": 2}, {}, PredictorConfig())
        assert features == {"hour_normalized": 0.5, "context_complexity": 0.2}

    def test_numeric_parameters_scaled(self):
        features = extract_features(
            NOON, {}, {"maxTokens": 50, "big": 1000, "neg": -5}, PredictorConfig()
        )
        assert features["param_maxTokens"] == pytest.approx(0.5)
        assert features["param_big"] == 1.0
        assert features["param_neg"] == 0.0

    def test_bool_parameters_are_zero_or_one(self):
        features = extract_features(NOON, {}, {"on": True, "off": False}, PredictorConfig())
        assert features["param_on"] == 1.0
        assert features["param_off"] == 0.0

    def test_string_parameters_skipped(self):
        features = extract_features(NOON, {}, {"mode": "fast"}, PredictorConfig())
        assert "param_mode" not in features

    def test_custom_range(self):
        config = PredictorConfig(feature_min=0.0, feature_max=2.0)
        features = extract_features(NOON, {}, {"temperature": 0.5}, config)
        assert features["param_temperature"] == pytest.approx(0.25)


class TestForward:
    """Tests for the ReLU forward pass."""

    def test_weighted_sum(self):
        weights = PredictorWeights(input_weights={"x": 2.0, "y": 1.0}, bias=0.1)
        assert forward({"x": 0.5, "y": 0.25}, weights) == pytest.approx(1.35)

    def test_negative_sum_clipped(self):
        weights = PredictorWeights(input_weights={"x": -3.0})
        assert forward({"x": 1.0}, weights) == 0.0

    def test_unknown_features_ignored(self):
        assert forward({"z": 1.0}, PredictorWeights()) == 0.0


class TestLinearPredictor:
    """Tests for training and prediction."""

    def test_predict_without_weights_is_none(self):
        predictor = LinearPredictor(LearningConfig(), PredictorConfig())
        assert predictor.predict("k", {"x": 1.0}) is None

    def test_update_moves_toward_reward(self):
        predictor = LinearPredictor(LearningConfig(learning_rate=0.1), PredictorConfig())
        weights = predictor.update("k", {"x": 1.0}, reward=1.0)
        assert weights.output_weight == pytest.approx(0.55)
        assert weights.input_weights["x"] == pytest.approx(0.05)
        assert predictor.predict("k", {"x": 1.0}) == pytest.approx(0.05)

    def test_repeated_training_increases_prediction(self):
        predictor = LinearPredictor(LearningConfig(learning_rate=0.1), PredictorConfig())
        features = {"x": 1.0}
        predictor.update("k", features, reward=1.0)
        first = predictor.predict("k", features)
        for _ in range(10):
            predictor.update("k", features, reward=1.0)
        assert predictor.predict("k", features) > first

    def test_keys_are_independent(self):
        predictor = LinearPredictor(LearningConfig(), PredictorConfig())
        predictor.update("a", {"x": 1.0}, reward=1.0)
        assert predictor.predict("b", {"x": 1.0}) is None
        assert len(predictor) == 1

    def test_snapshot_and_load(self):
        predictor = LinearPredictor(LearningConfig(), PredictorConfig())
        predictor.update("k", {"x": 1.0}, reward=0.8)
        restored = LinearPredictor(LearningConfig(), PredictorConfig())
        assert restored.load(predictor.snapshot()) == 0
        assert restored.get("k") == predictor.get("k")

    def test_load_tolerates_legacy_fields(self):
        predictor = LinearPredictor(LearningConfig(), PredictorConfig())
        dropped = predictor.load({
            "k": {"inputWeights": {"x": 0.3}, "outputWeight": 0.7, "bias": 0.1},
            "bad": [1, 2, 3],
        })
        assert dropped == 1
        weights = predictor.get("k")
        assert weights.input_weights == {"x": 0.3}
        assert weights.output_weight == 0.7
