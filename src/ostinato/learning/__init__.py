"""Learning components and the engine that wires them together."""

from ostinato.learning.engine import LearningEngine
from ostinato.learning.maintenance import MaintenanceLoop
from ostinato.learning.models import (
    Action,
    AnomalyKind,
    AnomalyRecord,
    Cluster,
    Improvement,
    Insight,
    Level,
    Metrics,
    OptimizationResult,
    Outcome,
    PatternRecord,
    Prediction,
    StatsSnapshot,
    Strategy,
)

__all__ = [
    "Action",
    "AnomalyKind",
    "AnomalyRecord",
    "Cluster",
    "Improvement",
    "Insight",
    "LearningEngine",
    "Level",
    "MaintenanceLoop",
    "Metrics",
    "OptimizationResult",
    "Outcome",
    "PatternRecord",
    "Prediction",
    "StatsSnapshot",
    "Strategy",
]
