"""Configuration models for the Ostinato engine.

Pydantic models for loading and validating YAML engine configurations.
All models are re-exported from this ``__init__``.
"""

from ostinato.core.config.engine import EngineConfig
from ostinato.core.config.learning import (
    AnomalyConfig,
    LearningConfig,
    PatternMiningConfig,
    PredictorConfig,
    RewardWeights,
    ScoreWeights,
)
from ostinato.core.config.storage import LogConfig, MaintenanceConfig, PersistenceConfig

__all__ = [
    "AnomalyConfig",
    "EngineConfig",
    "LearningConfig",
    "LogConfig",
    "MaintenanceConfig",
    "PatternMiningConfig",
    "PersistenceConfig",
    "PredictorConfig",
    "RewardWeights",
    "ScoreWeights",
]
