"""Strategy optimizer: per-key online reward estimation.

A strategy is identified by the action type plus a digest of its context.
Every outcome updates exponential moving averages of success, quality,
efficiency and a multi-objective reward. The learning rate is the configured
base rate during warm-up and is then scaled by the strategy's recent reward
spread, so settled strategies move slowly and noisy ones keep adapting.

Best-known parameters are tracked with epsilon-greedy exploration: a better
score always wins; a near-optimal score wins when the exploration draw fires.
"""

from __future__ import annotations

import hashlib
import json
import math
import posixpath
import random
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ostinato.core.config import LearningConfig
from ostinato.core.constants import MIN_VARIANCE_FACTOR
from ostinato.core.logging import get_logger
from ostinato.learning.models import (
    BestParameters,
    Metrics,
    ScalarMap,
    ScalarValue,
    Strategy,
)
from ostinato.utils.time import utc_now

_logger = get_logger("strategy")


def strategy_key(action_type: str, context: dict[str, Any] | None) -> str:
    """Stable key for an (action type, context) pair.

    ``language`` and ``filePath`` take precedence because they are what
    usually distinguishes strategies; any other context is digested so the
    key does not depend on key order.
    """
    if not context:
        return action_type
    language = context.get("language")
    if isinstance(language, str) and language:
        return f"{action_type}:{language}"
    file_path = context.get("filePath")
    if isinstance(file_path, str) and file_path:
        return f"{action_type}:{posixpath.basename(file_path.replace(chr(92), '/'))}"
    canonical = json.dumps(context, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(f"{action_type}:{canonical}".encode()).hexdigest()
    return f"{action_type}:{digest[:16]}"


def calculate_reward(metrics: Metrics, config: LearningConfig) -> float:
    """Multi-objective reward in roughly [-0.1, 1.1]."""
    weights = config.reward
    reward = weights.quality * metrics.quality
    reward += weights.efficiency * metrics.efficiency
    reward += weights.success_bonus if metrics.success else weights.failure_penalty
    reward += weights.error * (1 - min(1.0, metrics.error_rate / weights.error_scale))
    reward += weights.satisfaction * metrics.user_satisfaction
    return reward


def calculate_score(metrics: Metrics, config: LearningConfig) -> float:
    """Score used to rank parameter sets for a strategy."""
    weights = config.score
    return (
        weights.quality * metrics.quality
        + weights.efficiency * metrics.efficiency
        + weights.success * (1.0 if metrics.success else 0.0)
        + weights.error * (1 - metrics.error_rate / weights.error_scale)
    )


def population_std(values: list[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


@dataclass
class StrategyUpdate:
    """Result of applying one outcome to a strategy."""

    prior: Strategy | None
    current: Strategy
    reward: float
    explored: bool = False


class StrategyOptimizer:
    """Owns the strategy table."""

    def __init__(
        self,
        config: LearningConfig,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._rng = rng or random.Random(config.random_seed)
        self._clock = clock
        self._lock = threading.RLock()
        self._strategies: dict[str, Strategy] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._strategies)

    def update(
        self,
        key: str,
        action_type: str,
        parameters: ScalarMap,
        metrics: Metrics,
    ) -> StrategyUpdate:
        """Fold one outcome into the strategy for ``key``."""
        reward = calculate_reward(metrics, self._config)
        score = calculate_score(metrics, self._config)
        now = self._clock()

        with self._lock:
            strategy = self._strategies.get(key)
            prior = strategy.copy() if strategy is not None else None
            if strategy is None:
                strategy = self._strategies[key] = Strategy(key=key, action_type=action_type)

            success = 1.0 if metrics.success else 0.0
            if strategy.attempts == 0:
                alpha = self._config.learning_rate
                strategy.success_rate = success
                strategy.avg_quality = metrics.quality
                strategy.avg_efficiency = metrics.efficiency
                strategy.avg_reward = reward
            else:
                alpha = self._learning_rate(strategy)
                strategy.success_rate = _ema(strategy.success_rate, success, alpha)
                strategy.avg_quality = _ema(strategy.avg_quality, metrics.quality, alpha)
                strategy.avg_efficiency = _ema(strategy.avg_efficiency, metrics.efficiency, alpha)
                strategy.avg_reward = _ema(strategy.avg_reward, reward, alpha)

            strategy.attempts += 1
            strategy.learning_rate = alpha
            strategy.last_update = now

            strategy.recent_performance.append(reward)
            window = self._config.performance_window
            if len(strategy.recent_performance) > window:
                del strategy.recent_performance[:-window]
            if len(strategy.recent_performance) >= 2:
                strategy.variance = population_std(strategy.recent_performance)
            else:
                strategy.variance = 1.0

            explored = self._update_best(strategy, parameters, metrics, score, now)
            current = strategy.copy()

        if explored:
            _logger.debug("strategy.explored", key=key, score=round(score, 4))
        return StrategyUpdate(prior=prior, current=current, reward=reward, explored=explored)

    def _learning_rate(self, strategy: Strategy) -> float:
        base = self._config.learning_rate
        if strategy.attempts + 1 - strategy.relearn_from <= self._config.warmup_attempts:
            return base
        return base * max(MIN_VARIANCE_FACTOR, min(1.0, strategy.variance))

    def _update_best(
        self,
        strategy: Strategy,
        parameters: ScalarMap,
        metrics: Metrics,
        score: float,
        now: datetime,
    ) -> bool:
        """Replace best parameters when warranted; True if exploration did it."""
        best = strategy.best_parameters
        explored = False
        if best is not None and score <= best.score:
            if not (
                self._rng.random() < self._config.exploration_rate
                and score >= self._config.near_optimal_ratio * best.score
            ):
                return False
            explored = True
            strategy.exploration_count += 1
        strategy.best_parameters = BestParameters(
            parameters=dict(parameters),
            metrics=Metrics.from_dict(metrics.to_dict()),
            score=score,
            timestamp=now,
        )
        return explored

    def get(self, key: str) -> Strategy | None:
        with self._lock:
            strategy = self._strategies.get(key)
            return strategy.copy() if strategy is not None else None

    def strategies(self) -> list[Strategy]:
        with self._lock:
            return [s.copy() for s in self._strategies.values()]

    def optimized_parameters(
        self, action_type: str, context: dict[str, Any] | None = None
    ) -> dict[str, ScalarValue]:
        """Best-known parameters plus ``_confidence`` and ``_quality``."""
        strategy = self.get(strategy_key(action_type, context))
        if strategy is not None and strategy.best_parameters is not None:
            return {
                **strategy.best_parameters.parameters,
                "_confidence": strategy.success_rate,
                "_quality": strategy.avg_quality,
            }
        defaults = self._config.default_parameters.get(action_type, {})
        return {**defaults, "_confidence": 0.5, "_quality": 0.5}

    def relearn(self, key: str) -> bool:
        """Re-open warm-up so the base learning rate applies again."""
        with self._lock:
            strategy = self._strategies.get(key)
            if strategy is None:
                return False
            strategy.relearn_from = strategy.attempts
        _logger.info("strategy.relearn", key=key, attempts=strategy.attempts)
        return True

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {key: s.to_dict() for key, s in self._strategies.items()}

    def load(self, data: dict[str, Any]) -> int:
        """Replace the table with persisted strategies; returns entries dropped."""
        loaded: dict[str, Strategy] = {}
        dropped = 0
        for key, entry in data.items():
            if not isinstance(entry, dict):
                dropped += 1
                continue
            try:
                loaded[key] = Strategy.from_dict(entry, key=key)
            except (KeyError, TypeError, ValueError, OverflowError):
                dropped += 1
        with self._lock:
            self._strategies = loaded
        if dropped:
            _logger.debug("strategy.invalid_entries_dropped", count=dropped)
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._strategies.clear()


def _ema(average: float, value: float, alpha: float) -> float:
    return (1 - alpha) * average + alpha * value
