"""Learning, prediction, anomaly and pattern-mining configuration models.

Defines the tunable numbers of the engine. Defaults come from
``ostinato.core.constants`` so the hand-tuned weights live in one place.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from ostinato.core.constants import (
    DEFAULT_ACTION_PARAMETERS,
    DEFAULT_BASELINE_TIME_MS,
    DEFAULT_BASELINE_TIMES_MS,
    DEFAULT_EXPLORATION_RATE,
    DEFAULT_LEARNING_RATE,
    DEFAULT_MAX_HISTORY_SIZE,
    ERROR_RATE_SCALE,
    MAX_PATTERN_CONTEXTS,
    NEAR_OPTIMAL_RATIO,
    PERFORMANCE_WINDOW,
    REWARD_EFFICIENCY_WEIGHT,
    REWARD_ERROR_WEIGHT,
    REWARD_FAILURE_PENALTY,
    REWARD_QUALITY_WEIGHT,
    REWARD_SATISFACTION_WEIGHT,
    REWARD_SUCCESS_BONUS,
    SCORE_EFFICIENCY_WEIGHT,
    SCORE_ERROR_WEIGHT,
    SCORE_QUALITY_WEIGHT,
    SCORE_SUCCESS_WEIGHT,
    WARMUP_ATTEMPTS,
)

ScalarValue = str | int | float | bool


class RewardWeights(BaseModel):
    """Weights of the multi-objective reward used for EMA updates.

    reward = quality*q + efficiency*e + (success_bonus | failure_penalty)
             + error*(1 - min(1, error_rate/error_scale)) + satisfaction*s
    """

    quality: float = Field(default=REWARD_QUALITY_WEIGHT, ge=0.0, le=1.0)
    efficiency: float = Field(default=REWARD_EFFICIENCY_WEIGHT, ge=0.0, le=1.0)
    success_bonus: float = Field(default=REWARD_SUCCESS_BONUS, ge=0.0, le=1.0)
    failure_penalty: float = Field(default=REWARD_FAILURE_PENALTY, ge=-1.0, le=0.0)
    error: float = Field(default=REWARD_ERROR_WEIGHT, ge=0.0, le=1.0)
    satisfaction: float = Field(default=REWARD_SATISFACTION_WEIGHT, ge=0.0, le=1.0)
    error_scale: float = Field(
        default=ERROR_RATE_SCALE,
        gt=0.0,
        description="Error count at which the error component reaches zero",
    )


class ScoreWeights(BaseModel):
    """Weights of the score used to rank best-known parameters."""

    quality: float = Field(default=SCORE_QUALITY_WEIGHT, ge=0.0, le=1.0)
    efficiency: float = Field(default=SCORE_EFFICIENCY_WEIGHT, ge=0.0, le=1.0)
    success: float = Field(default=SCORE_SUCCESS_WEIGHT, ge=0.0, le=1.0)
    error: float = Field(default=SCORE_ERROR_WEIGHT, ge=0.0, le=1.0)
    error_scale: float = Field(default=ERROR_RATE_SCALE, gt=0.0)


class LearningConfig(BaseModel):
    """Configuration for the action ledger and strategy optimizer."""

    max_history_size: int = Field(
        default=DEFAULT_MAX_HISTORY_SIZE,
        ge=1,
        description="Maximum actions retained by the ledger; oldest are evicted first",
    )
    learning_rate: float = Field(
        default=DEFAULT_LEARNING_RATE,
        gt=0.0,
        le=1.0,
        description="Base EMA learning rate (alpha)",
    )
    exploration_rate: float = Field(
        default=DEFAULT_EXPLORATION_RATE,
        ge=0.0,
        le=1.0,
        description="Epsilon in epsilon-greedy best-parameter exploration. "
        "0.0 = pure exploitation.",
    )
    near_optimal_ratio: float = Field(
        default=NEAR_OPTIMAL_RATIO,
        ge=0.0,
        le=1.0,
        description="Exploration accepts parameters scoring at least ratio x best",
    )
    warmup_attempts: int = Field(
        default=WARMUP_ATTEMPTS,
        ge=0,
        description="Attempts during which the base learning rate is not variance-scaled",
    )
    performance_window: int = Field(
        default=PERFORMANCE_WINDOW,
        ge=2,
        description="Number of recent rewards kept per strategy for variance",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for the exploration draw. None = nondeterministic.",
    )
    reward: RewardWeights = Field(default_factory=RewardWeights)
    score: ScoreWeights = Field(default_factory=ScoreWeights)
    baseline_times_ms: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_BASELINE_TIMES_MS),
        description="Expected execution time per action type, used to assess efficiency",
    )
    default_baseline_time_ms: float = Field(default=DEFAULT_BASELINE_TIME_MS, gt=0.0)
    default_parameters: dict[str, dict[str, ScalarValue]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_ACTION_PARAMETERS.items()},
        description="Parameters suggested for action types with no learned strategy",
    )

    def baseline_time(self, action_type: str) -> float:
        """Expected execution time (ms) for an action type."""
        return self.baseline_times_ms.get(action_type, self.default_baseline_time_ms)


class PredictorConfig(BaseModel):
    """Configuration for the per-strategy linear predictor."""

    feature_min: float = Field(default=0.0, description="Lower bound for numeric parameter scaling")
    feature_max: float = Field(
        default=100.0, description="Upper bound for numeric parameter scaling"
    )
    context_complexity_divisor: float = Field(default=10.0, gt=0.0)
    initial_output_weight: float = Field(default=0.5)

    @model_validator(mode="after")
    def _validate_range(self) -> PredictorConfig:
        if self.feature_max <= self.feature_min:
            raise ValueError(
                f"feature_max ({self.feature_max}) must exceed feature_min ({self.feature_min})"
            )
        return self


class AnomalyConfig(BaseModel):
    """Thresholds for outcome and sequence anomaly detection."""

    zscore_threshold: float = Field(default=2.5, gt=0.0)
    high_zscore_threshold: float = Field(default=3.0, gt=0.0)
    min_samples: int = Field(
        default=5,
        ge=2,
        description="Rewards required in the window before z-scores are computed",
    )
    error_rate_threshold: float = Field(default=5.0, ge=0.0)
    execution_time_threshold_ms: float = Field(default=10_000.0, gt=0.0)
    quality_drop_prior: float = Field(default=0.7, ge=0.0, le=1.0)
    quality_drop_current: float = Field(default=0.3, ge=0.0, le=1.0)
    max_anomalies: int = Field(default=100, ge=1)
    window_hours: float = Field(
        default=24.0,
        gt=0.0,
        description="Anomalies older than this are dropped and not reported as recent",
    )

    @model_validator(mode="after")
    def _validate_zscores(self) -> AnomalyConfig:
        if self.high_zscore_threshold < self.zscore_threshold:
            raise ValueError(
                "high_zscore_threshold must not be below zscore_threshold"
            )
        return self


class PatternMiningConfig(BaseModel):
    """Configuration for subsequence mining and sequence clustering."""

    min_sequence_length: int = Field(default=2, ge=1)
    max_sequence_length: int = Field(default=10, ge=1)
    min_support: int = Field(
        default=3,
        ge=1,
        description="Minimum occurrences for a subsequence (and for a successor insight)",
    )
    mine_every_actions: int = Field(
        default=10,
        ge=1,
        description="Re-mine the pattern table every K recorded actions",
    )
    clustering_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_sequences: int = Field(default=500, ge=1)
    max_pattern_contexts: int = Field(default=MAX_PATTERN_CONTEXTS, ge=0)
    session_gap_seconds: float = Field(
        default=1800.0,
        gt=0.0,
        description="Idle gap that closes a ledger session",
    )

    @model_validator(mode="after")
    def _validate_lengths(self) -> PatternMiningConfig:
        if self.min_sequence_length > self.max_sequence_length:
            raise ValueError(
                f"min_sequence_length ({self.min_sequence_length}) must not exceed "
                f"max_sequence_length ({self.max_sequence_length})"
            )
        return self
