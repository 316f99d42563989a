"""Data models for the learning engine.

Plain dataclasses with ``to_dict``/``from_dict`` pairs. ``to_dict`` output is
JSON-safe (datetimes as ISO-8601 strings, enums as values) and is what the
snapshot store persists. ``from_dict`` accepts both the snake_case keys
written here and the camelCase keys found in legacy ledgers.
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ostinato.core.constants import (
    DEFAULT_USER_SATISFACTION,
    MAX_ACTION_TYPE_LENGTH,
    MAX_ERROR_RATE,
    MAX_EXECUTION_TIME_MS,
)
from ostinato.core.errors import InvalidActionError
from ostinato.utils.time import parse_timestamp

ScalarValue = str | int | float | bool
ScalarMap = dict[str, ScalarValue]


class Level(str, Enum):
    """Three-step ranking used for anomaly severity, insight priority
    and prediction confidence."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class AnomalyKind(str, Enum):
    """What an anomaly was flagged for."""

    STATISTICAL = "statistical"
    SECURITY = "security"
    PERFORMANCE = "performance"
    QUALITY = "quality"
    BEHAVIORAL = "behavioral"


# =============================================================================
# Validation helpers
# =============================================================================


def clamp(value: Any, low: float, high: float) -> float:
    """Clamp a number into [low, high].

    NaN and non-numeric values map to ``low``; infinities map to the nearest
    bound.
    """
    if isinstance(value, bool):
        value = float(value)
    if not isinstance(value, int | float):
        return low
    if isinstance(value, int) and abs(value) > sys.float_info.max:
        return high if value > 0 else low
    value = float(value)
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def validate_action_type(action_type: Any) -> str:
    """Raise InvalidActionError unless action_type is a 1-99 char string."""
    if not isinstance(action_type, str) or not action_type:
        raise InvalidActionError("Action type must be a non-empty string")
    if len(action_type) > MAX_ACTION_TYPE_LENGTH:
        raise InvalidActionError(
            f"Action type exceeds {MAX_ACTION_TYPE_LENGTH} characters "
            f"(got {len(action_type)})"
        )
    return action_type


def validate_scalar_map(name: str, values: Any) -> ScalarMap:
    """Copy a context/parameter/metadata map, rejecting non-scalar values."""
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise InvalidActionError(f"{name} must be a mapping, got {type(values).__name__}")
    result: ScalarMap = {}
    for key, value in values.items():
        if not isinstance(key, str):
            raise InvalidActionError(f"{name} keys must be strings, got {key!r}")
        if not isinstance(value, str | int | float | bool):
            raise InvalidActionError(
                f"{name}[{key!r}] must be a str, int, float or bool, "
                f"got {type(value).__name__}"
            )
        result[key] = value
    return result


def _pick(data: dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _scalar_items(values: Any) -> ScalarMap:
    """Lenient scalar-map filter used when loading persisted data."""
    if not isinstance(values, dict):
        return {}
    return {
        str(k): v for k, v in values.items() if isinstance(v, str | int | float | bool)
    }


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        return float(value)
    except OverflowError:
        # integers too large for a float
        return None


_TRUE_STRINGS = frozenset({"true", "yes", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "0", ""})


def _flag(value: Any, default: bool) -> bool:
    """Read a boolean that may arrive as a JSON string or number."""
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        return default
    return bool(value)


# =============================================================================
# Actions, outcomes and metrics
# =============================================================================


@dataclass
class Outcome:
    """Observed result of an action, as reported by the caller.

    Every field except ``success`` is optional; missing values are assessed
    when metrics are derived.
    """

    success: bool = True
    quality: float | None = None
    efficiency: float | None = None
    error_rate: float | None = None
    errors: list[str] | None = None
    execution_time: float | None = None
    user_satisfaction: float | None = None
    code_quality: float | None = None
    resource_usage: ScalarMap = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        for name in (
            "quality",
            "efficiency",
            "error_rate",
            "execution_time",
            "user_satisfaction",
            "code_quality",
        ):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.errors is not None:
            result["errors"] = list(self.errors)
        if self.resource_usage:
            result["resource_usage"] = dict(self.resource_usage)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Outcome:
        errors = data.get("errors")
        return cls(
            success=_flag(data.get("success"), True),
            quality=_optional_float(data.get("quality")),
            efficiency=_optional_float(data.get("efficiency")),
            error_rate=_optional_float(_pick(data, "error_rate", "errorRate")),
            errors=[str(e) for e in errors] if isinstance(errors, list) else None,
            execution_time=_optional_float(_pick(data, "execution_time", "executionTime")),
            user_satisfaction=_optional_float(
                _pick(data, "user_satisfaction", "userSatisfaction")
            ),
            code_quality=_optional_float(_pick(data, "code_quality", "codeQuality")),
            resource_usage=_scalar_items(_pick(data, "resource_usage", "resourceUsage", {})),
        )


@dataclass
class Metrics:
    """Normalized metrics derived from an Outcome.

    Invariants: quality, efficiency and user_satisfaction lie in [0, 1];
    error_rate and execution_time are non-negative and finite.
    """

    success: bool
    quality: float
    efficiency: float
    error_rate: float = 0.0
    execution_time: float = 0.0
    user_satisfaction: float = DEFAULT_USER_SATISFACTION
    resource_usage: ScalarMap = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.quality = clamp(self.quality, 0.0, 1.0)
        self.efficiency = clamp(self.efficiency, 0.0, 1.0)
        self.user_satisfaction = clamp(self.user_satisfaction, 0.0, 1.0)
        self.error_rate = clamp(self.error_rate, 0.0, MAX_ERROR_RATE)
        self.execution_time = clamp(self.execution_time, 0.0, MAX_EXECUTION_TIME_MS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "quality": self.quality,
            "efficiency": self.efficiency,
            "error_rate": self.error_rate,
            "execution_time": self.execution_time,
            "user_satisfaction": self.user_satisfaction,
            "resource_usage": dict(self.resource_usage),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Metrics:
        return cls(
            success=_flag(data.get("success"), False),
            quality=data.get("quality", 0.0),
            efficiency=data.get("efficiency", 0.0),
            error_rate=_pick(data, "error_rate", "errorRate", 0.0),
            execution_time=_pick(data, "execution_time", "executionTime", 0.0),
            user_satisfaction=_pick(
                data, "user_satisfaction", "userSatisfaction", DEFAULT_USER_SATISFACTION
            ),
            resource_usage=_scalar_items(_pick(data, "resource_usage", "resourceUsage", {})),
        )


@dataclass
class Action:
    """One recorded action in the ledger."""

    id: str
    timestamp: datetime
    type: str
    context: ScalarMap = field(default_factory=dict)
    parameters: ScalarMap = field(default_factory=dict)
    metadata: ScalarMap = field(default_factory=dict)
    outcome: Outcome | None = None
    metrics: Metrics | None = None

    def copy(self) -> Action:
        """Detached copy safe to hand out of the ledger lock."""
        return Action(
            id=self.id,
            timestamp=self.timestamp,
            type=self.type,
            context=dict(self.context),
            parameters=dict(self.parameters),
            metadata=dict(self.metadata),
            outcome=Outcome.from_dict(self.outcome.to_dict()) if self.outcome else None,
            metrics=Metrics.from_dict(self.metrics.to_dict()) if self.metrics else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.type,
            "context": dict(self.context),
            "parameters": dict(self.parameters),
            "metadata": dict(self.metadata),
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "metrics": self.metrics.to_dict() if self.metrics else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        """Build an Action from persisted data.

        Raises:
            KeyError: If id, type or timestamp is missing.
            ValueError: If the type or timestamp is invalid.
        """
        action_id = data["id"]
        if not isinstance(action_id, str) or not action_id:
            raise ValueError(f"Invalid action id: {action_id!r}")
        outcome = data.get("outcome")
        metrics = data.get("metrics")
        return cls(
            id=action_id,
            timestamp=parse_timestamp(data["timestamp"]),
            type=validate_action_type(data["type"]),
            context=_scalar_items(data.get("context")),
            parameters=_scalar_items(data.get("parameters")),
            metadata=_scalar_items(data.get("metadata")),
            outcome=Outcome.from_dict(outcome) if isinstance(outcome, dict) else None,
            metrics=Metrics.from_dict(metrics) if isinstance(metrics, dict) else None,
        )


# =============================================================================
# Strategies and predictor weights
# =============================================================================


@dataclass
class BestParameters:
    """Parameters that produced the best score seen for a strategy."""

    parameters: ScalarMap
    metrics: Metrics
    score: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameters": dict(self.parameters),
            "metrics": self.metrics.to_dict(),
            "score": self.score,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BestParameters:
        return cls(
            parameters=_scalar_items(data.get("parameters")),
            metrics=Metrics.from_dict(data.get("metrics") or {}),
            score=_optional_float(data.get("score")) or 0.0,
            timestamp=parse_timestamp(data["timestamp"]),
        )


@dataclass
class Strategy:
    """Online reward statistics for one strategy key."""

    key: str
    action_type: str
    attempts: int = 0
    success_rate: float = 0.0
    avg_quality: float = 0.0
    avg_efficiency: float = 0.0
    avg_reward: float = 0.0
    variance: float = 1.0
    recent_performance: list[float] = field(default_factory=list)
    best_parameters: BestParameters | None = None
    exploration_count: int = 0
    learning_rate: float = 0.0
    last_update: datetime | None = None
    relearn_from: int = 0

    def copy(self) -> Strategy:
        return Strategy.from_dict(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "action_type": self.action_type,
            "attempts": self.attempts,
            "success_rate": self.success_rate,
            "avg_quality": self.avg_quality,
            "avg_efficiency": self.avg_efficiency,
            "avg_reward": self.avg_reward,
            "variance": self.variance,
            "recent_performance": list(self.recent_performance),
            "best_parameters": self.best_parameters.to_dict() if self.best_parameters else None,
            "exploration_count": self.exploration_count,
            "learning_rate": self.learning_rate,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "relearn_from": self.relearn_from,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], key: str | None = None) -> Strategy:
        """Build a Strategy from persisted data, clamping statistics into range."""
        strategy_key = key if key is not None else data["key"]
        action_type = _pick(data, "action_type", "actionType") or strategy_key.split(":", 1)[0]
        best = _pick(data, "best_parameters", "bestParameters")
        last_update = _pick(data, "last_update", "lastUpdate")
        recent = _pick(data, "recent_performance", "recentPerformance", [])
        return cls(
            key=strategy_key,
            action_type=str(action_type),
            attempts=max(0, int(data.get("attempts", 0))),
            success_rate=clamp(_pick(data, "success_rate", "successRate", 0.0), 0.0, 1.0),
            avg_quality=clamp(_pick(data, "avg_quality", "avgQuality", 0.0), 0.0, 1.0),
            avg_efficiency=clamp(_pick(data, "avg_efficiency", "avgEfficiency", 0.0), 0.0, 1.0),
            avg_reward=clamp(_pick(data, "avg_reward", "avgReward", 0.0), -1.0, 2.0),
            variance=clamp(data.get("variance", 1.0), 0.0, 1.0),
            recent_performance=[
                clamp(v, -1.0, 2.0) for v in recent if isinstance(v, int | float)
            ],
            best_parameters=BestParameters.from_dict(best) if isinstance(best, dict) else None,
            exploration_count=max(0, int(_pick(data, "exploration_count", "explorationCount", 0))),
            learning_rate=clamp(_pick(data, "learning_rate", "learningRate", 0.0), 0.0, 1.0),
            last_update=parse_timestamp(last_update) if last_update is not None else None,
            relearn_from=max(0, int(data.get("relearn_from", 0))),
        )


@dataclass
class PredictorWeights:
    """Weights of the single linear unit kept per strategy key."""

    input_weights: dict[str, float] = field(default_factory=dict)
    output_weight: float = 0.5
    bias: float = 0.0

    def copy(self) -> PredictorWeights:
        return PredictorWeights(dict(self.input_weights), self.output_weight, self.bias)

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_weights": dict(self.input_weights),
            "output_weight": self.output_weight,
            "bias": self.bias,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PredictorWeights:
        weights = _pick(data, "input_weights", "inputWeights", {})
        if not isinstance(weights, dict):
            weights = {}
        output = _optional_float(_pick(data, "output_weight", "outputWeight"))
        bias = _optional_float(data.get("bias"))
        return cls(
            input_weights={
                str(k): float(v)
                for k, v in weights.items()
                if _optional_float(v) is not None and math.isfinite(v)
            },
            output_weight=output if output is not None and math.isfinite(output) else 0.5,
            bias=bias if bias is not None and math.isfinite(bias) else 0.0,
        )


# =============================================================================
# Derived knowledge
# =============================================================================


@dataclass
class KnowledgeNode:
    """Occurrence and predecessor statistics for one action type."""

    action_type: str
    occurrences: int = 0
    related_actions: dict[str, int] = field(default_factory=dict)
    outcomes: int = 0
    successes: int = 0
    quality_sum: float = 0.0

    @property
    def mean_quality(self) -> float:
        return self.quality_sum / self.outcomes if self.outcomes else 0.0

    def top_related(self, limit: int = 3) -> list[tuple[str, int]]:
        return sorted(self.related_actions.items(), key=lambda kv: kv[1], reverse=True)[:limit]

    def copy(self) -> KnowledgeNode:
        return KnowledgeNode(
            action_type=self.action_type,
            occurrences=self.occurrences,
            related_actions=dict(self.related_actions),
            outcomes=self.outcomes,
            successes=self.successes,
            quality_sum=self.quality_sum,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_type": self.action_type,
            "occurrences": self.occurrences,
            "related_actions": dict(self.related_actions),
            "outcomes": self.outcomes,
            "successes": self.successes,
            "mean_quality": self.mean_quality,
        }


@dataclass
class SequenceStep:
    """One action inside a behaviour sequence."""

    type: str
    context: ScalarMap = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "context": dict(self.context)}


@dataclass
class Sequence:
    """An ordered run of actions treated as one unit of behaviour."""

    id: str
    steps: list[SequenceStep]
    context: dict[str, Any]
    started_at: datetime
    execution_time: float | None = None

    @property
    def types(self) -> list[str]:
        return [step.type for step in self.steps]

    def __len__(self) -> int:
        return len(self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "steps": [step.to_dict() for step in self.steps],
            "context": dict(self.context),
            "started_at": self.started_at.isoformat(),
            "execution_time": self.execution_time,
        }


@dataclass
class PatternRecord:
    """A frequent contiguous subsequence of action types."""

    key: str
    pattern: list[str]
    frequency: int
    confidence: float
    contexts: list[dict[str, Any]]
    discovered_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "pattern": list(self.pattern),
            "frequency": self.frequency,
            "confidence": self.confidence,
            "contexts": [dict(c) for c in self.contexts],
            "discovered_at": self.discovered_at.isoformat(),
        }


@dataclass
class Cluster:
    """Sequences grouped by LCS similarity, with a representative member."""

    id: str
    members: list[str]
    centroid: str
    representative: list[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.members)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "size": self.size,
            "members": list(self.members),
            "centroid": self.centroid,
            "representative": list(self.representative),
        }


@dataclass
class AnomalyRecord:
    """A flagged deviation from learned behaviour."""

    kind: AnomalyKind
    severity: Level
    message: str
    action_type: str
    timestamp: datetime
    zscore: float | None = None
    action_id: str | None = None
    sequence_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "action_type": self.action_type,
            "timestamp": self.timestamp.isoformat(),
            "zscore": self.zscore,
            "action_id": self.action_id,
            "sequence_id": self.sequence_id,
        }


# =============================================================================
# Engine results
# =============================================================================


@dataclass
class Insight:
    """A ranked observation produced by pattern analysis."""

    kind: str
    message: str
    confidence: float
    priority: Level
    action_type: str | None = None
    support: int | None = None
    anomalies: list[AnomalyRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "confidence": self.confidence,
            "priority": self.priority.value,
        }
        if self.action_type is not None:
            result["action_type"] = self.action_type
        if self.support is not None:
            result["support"] = self.support
        if self.anomalies:
            result["anomalies"] = [a.to_dict() for a in self.anomalies]
        return result


@dataclass
class Prediction:
    """Expected outcome of an action before it is taken."""

    confidence: Level
    predicted_success: float
    predicted_quality: float
    predicted_efficiency: float
    recommendation: str
    based_on_attempts: int = 0
    variance: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "confidence": self.confidence.value,
            "predicted_success": self.predicted_success,
            "predicted_quality": self.predicted_quality,
            "predicted_efficiency": self.predicted_efficiency,
            "recommendation": self.recommendation,
            "based_on_attempts": self.based_on_attempts,
            "variance": self.variance,
        }


@dataclass
class Improvement:
    """A suggested change in behaviour, derived from strategies or insights."""

    area: str
    recommendation: str
    priority: Level
    strategy_key: str | None = None
    success_rate: float | None = None
    quality: float | None = None
    insight: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "area": self.area,
            "recommendation": self.recommendation,
            "priority": self.priority.value,
            "strategy_key": self.strategy_key,
            "success_rate": self.success_rate,
            "quality": self.quality,
            "insight": self.insight,
        }


@dataclass
class Optimization:
    """Record of one applied improvement."""

    area: str
    action: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"area": self.area, "action": self.action, "timestamp": self.timestamp.isoformat()}


@dataclass
class OptimizationResult:
    """Result of a self-optimisation pass."""

    applied_count: int
    improvements: list[Improvement]
    optimizations: list[Optimization]

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied_count": self.applied_count,
            "improvements": [i.to_dict() for i in self.improvements],
            "optimizations": [o.to_dict() for o in self.optimizations],
        }


@dataclass
class PerformanceBaseline:
    """Average performance over the ledger when it was loaded."""

    avg_quality: float
    avg_efficiency: float
    success_rate: float
    calculated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "avg_quality": self.avg_quality,
            "avg_efficiency": self.avg_efficiency,
            "success_rate": self.success_rate,
            "calculated_at": self.calculated_at.isoformat(),
        }


@dataclass
class StrategySummary:
    """Compact strategy view used in statistics."""

    key: str
    action_type: str
    success_rate: float
    quality: float
    attempts: int
    variance: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "action_type": self.action_type,
            "success_rate": self.success_rate,
            "quality": self.quality,
            "attempts": self.attempts,
            "variance": self.variance,
        }


@dataclass
class StatsSnapshot:
    """Point-in-time statistics about the engine."""

    total_actions: int
    success_rate: float
    avg_quality: float
    avg_efficiency: float
    improvement_rate: float
    strategies_learned: int
    knowledge_nodes: int
    predictor_weight_sets: int
    recent_anomalies: int
    action_type_distribution: dict[str, int]
    top_strategies: list[StrategySummary]
    baseline: PerformanceBaseline | None = None
    patterns: int = 0
    clusters: int = 0
    sequences: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_actions": self.total_actions,
            "success_rate": self.success_rate,
            "avg_quality": self.avg_quality,
            "avg_efficiency": self.avg_efficiency,
            "improvement_rate": self.improvement_rate,
            "strategies_learned": self.strategies_learned,
            "knowledge_nodes": self.knowledge_nodes,
            "predictor_weight_sets": self.predictor_weight_sets,
            "recent_anomalies": self.recent_anomalies,
            "action_type_distribution": dict(self.action_type_distribution),
            "top_strategies": [s.to_dict() for s in self.top_strategies],
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "patterns": self.patterns,
            "clusters": self.clusters,
            "sequences": self.sequences,
        }
