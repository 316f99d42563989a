"""Insights, predictions, improvements and statistics.

Everything here is a pure function over copies of engine state, so the
engine can gather snapshots under its component locks and compute outside
them.
"""

from __future__ import annotations

from datetime import datetime

from ostinato.core.constants import NEUTRAL_PREDICTION
from ostinato.learning.models import (
    Action,
    AnomalyRecord,
    Improvement,
    Insight,
    KnowledgeNode,
    Level,
    PerformanceBaseline,
    Prediction,
    StatsSnapshot,
    Strategy,
    StrategySummary,
)
from ostinato.utils.time import ensure_utc

MIN_PREDICTION_ATTEMPTS = 5
QUALITY_TREND_WINDOW = 100
TEMPORAL_MIN_SAMPLES = 5
TEMPORAL_MIN_SPREAD = 0.2
CONVERGENCE_MIN_ATTEMPTS = 20
CONVERGENCE_MAX_VARIANCE = 0.1
IMPROVEMENT_MIN_ATTEMPTS = 10
IMPROVEMENT_MAX_SUCCESS_RATE = 0.7
IMPROVEMENT_MIN_CONFIDENCE = 0.8
STATS_TREND_WINDOW = 10
TOP_STRATEGIES = 5
BASELINE_MIN_ACTIONS = 10


def _support_priority(support: int, occurrences: int) -> Level:
    ratio = support / occurrences if occurrences else 0.0
    if ratio > 0.7:
        return Level.HIGH
    if ratio > 0.4:
        return Level.MEDIUM
    return Level.LOW


def sequence_insights(nodes: list[KnowledgeNode], min_support: int) -> list[Insight]:
    """Action types that reliably follow particular predecessors."""
    insights = []
    for node in nodes:
        top = node.top_related(3)
        if not top or top[0][1] < min_support:
            continue
        support = top[0][1]
        insights.append(Insight(
            kind="sequence_pattern",
            message=(
                f'Action "{node.action_type}" frequently follows: '
                + ", ".join(name for name, _ in top)
            ),
            confidence=support / node.occurrences if node.occurrences else 0.0,
            priority=_support_priority(support, node.occurrences),
            action_type=node.action_type,
            support=support,
        ))
    return insights


def _mean_quality(actions: list[Action]) -> float | None:
    qualities = [a.metrics.quality for a in actions if a.metrics is not None]
    if not qualities:
        return None
    return sum(qualities) / len(qualities)


def quality_trend_insight(actions: list[Action]) -> Insight | None:
    """Report when recent quality beats the earliest recorded quality."""
    recent = _mean_quality(actions[-QUALITY_TREND_WINDOW:])
    early = _mean_quality(actions[:QUALITY_TREND_WINDOW])
    if recent is None or early is None or recent <= early:
        return None
    improvement = (recent - early) * 100
    return Insight(
        kind="improvement",
        message=f"Quality improved by {improvement:.1f}% over time",
        confidence=0.9,
        priority=Level.HIGH if improvement > 20 else Level.MEDIUM,
    )


def temporal_insights(actions: list[Action]) -> list[Insight]:
    """Best and worst UTC hour by mean quality, when they differ enough."""
    by_hour: dict[int, list[float]] = {}
    for action in actions:
        if action.metrics is None:
            continue
        hour = ensure_utc(action.timestamp).hour
        by_hour.setdefault(hour, []).append(action.metrics.quality)

    hourly = [
        (hour, sum(values) / len(values))
        for hour, values in by_hour.items()
        if len(values) >= TEMPORAL_MIN_SAMPLES
    ]
    if not hourly:
        return []
    hourly.sort(key=lambda item: item[1], reverse=True)
    best_hour, best_quality = hourly[0]
    worst_hour, worst_quality = hourly[-1]
    if best_quality - worst_quality <= TEMPORAL_MIN_SPREAD:
        return []
    return [Insight(
        kind="temporal_pattern",
        message=(
            f"Performance peaks at {best_hour}:00 UTC ({best_quality * 100:.0f}%) "
            f"and dips at {worst_hour}:00 UTC ({worst_quality * 100:.0f}%)"
        ),
        confidence=0.8,
        priority=Level.MEDIUM,
    )]


def anomaly_insight(anomalies: list[AnomalyRecord]) -> Insight | None:
    if not anomalies:
        return None
    return Insight(
        kind="anomaly_detected",
        message=f"Detected {len(anomalies)} performance anomalies requiring attention",
        confidence=0.85,
        priority=Level.HIGH,
        anomalies=anomalies[:5],
    )


def convergence_insights(strategies: list[Strategy]) -> list[Insight]:
    return [
        Insight(
            kind="convergence",
            message=(
                f'Strategy "{s.action_type}" has converged with '
                f"{s.success_rate * 100:.0f}% success rate"
            ),
            confidence=1 - s.variance,
            priority=Level.LOW,
            action_type=s.action_type,
        )
        for s in strategies
        if s.attempts > CONVERGENCE_MIN_ATTEMPTS and s.variance < CONVERGENCE_MAX_VARIANCE
    ]


def rank_insights(insights: list[Insight]) -> list[Insight]:
    """High before medium before low; order within a priority is kept."""
    return sorted(insights, key=lambda i: i.priority.rank, reverse=True)


def analyze_patterns(
    nodes: list[KnowledgeNode],
    actions: list[Action],
    anomalies: list[AnomalyRecord],
    strategies: list[Strategy],
    min_support: int,
) -> list[Insight]:
    insights = sequence_insights(nodes, min_support)
    trend = quality_trend_insight(actions)
    if trend is not None:
        insights.append(trend)
    insights.extend(temporal_insights(actions))
    anomaly = anomaly_insight(anomalies)
    if anomaly is not None:
        insights.append(anomaly)
    insights.extend(convergence_insights(strategies))
    return rank_insights(insights)


def recommendation(strategy: Strategy, predicted_quality: float) -> str:
    if predicted_quality > 0.8 and strategy.success_rate > 0.9:
        return "High confidence - proceed with current parameters"
    if predicted_quality > 0.6 and strategy.success_rate > 0.7:
        return "Good confidence - minor optimization possible"
    if strategy.attempts > CONVERGENCE_MIN_ATTEMPTS:
        return "Consider alternative approach - current strategy underperforming"
    return "Gather more data to improve predictions"


def predict(strategy: Strategy | None, predictor_output: float | None) -> Prediction:
    """Combine strategy statistics with the linear predictor's output."""
    if strategy is None or strategy.attempts < MIN_PREDICTION_ATTEMPTS:
        return Prediction(
            confidence=Level.LOW,
            predicted_success=NEUTRAL_PREDICTION,
            predicted_quality=NEUTRAL_PREDICTION,
            predicted_efficiency=NEUTRAL_PREDICTION,
            recommendation="Insufficient data for reliable prediction",
            based_on_attempts=strategy.attempts if strategy is not None else 0,
        )
    output = predictor_output if predictor_output is not None else NEUTRAL_PREDICTION
    predicted_quality = 0.6 * strategy.avg_quality + 0.4 * output
    if strategy.variance < 0.2:
        confidence = Level.HIGH
    elif strategy.variance < 0.4:
        confidence = Level.MEDIUM
    else:
        confidence = Level.LOW
    return Prediction(
        confidence=confidence,
        predicted_success=strategy.success_rate,
        predicted_quality=predicted_quality,
        predicted_efficiency=strategy.avg_efficiency,
        recommendation=recommendation(strategy, predicted_quality),
        based_on_attempts=strategy.attempts,
        variance=strategy.variance,
    )


def generate_improvements(
    strategies: list[Strategy], insights: list[Insight]
) -> list[Improvement]:
    """Low-performing strategies first, then high-confidence insights."""
    improvements = [
        Improvement(
            area=s.key,
            recommendation="Consider alternative approach or parameter tuning",
            priority=Level.HIGH,
            strategy_key=s.key,
            success_rate=s.success_rate,
            quality=s.avg_quality,
        )
        for s in strategies
        if s.attempts > IMPROVEMENT_MIN_ATTEMPTS and s.success_rate < IMPROVEMENT_MAX_SUCCESS_RATE
    ]
    improvements.extend(
        Improvement(
            area=insight.action_type or "general",
            recommendation="Apply discovered pattern for better results",
            priority=Level.MEDIUM,
            insight=insight.message,
        )
        for insight in insights
        if insight.confidence > IMPROVEMENT_MIN_CONFIDENCE
    )
    return improvements


def performance_baseline(
    actions: list[Action], now: datetime
) -> PerformanceBaseline | None:
    """Average metrics over the ledger; None with too little history."""
    if len(actions) < BASELINE_MIN_ACTIONS:
        return None
    metrics = [a.metrics for a in actions if a.metrics is not None]
    if not metrics:
        return None
    return PerformanceBaseline(
        avg_quality=sum(m.quality for m in metrics) / len(metrics),
        avg_efficiency=sum(m.efficiency for m in metrics) / len(metrics),
        success_rate=sum(1 for m in metrics if m.success) / len(metrics),
        calculated_at=now,
    )


def _quality_or_zero(actions: list[Action]) -> float:
    return sum(a.metrics.quality if a.metrics else 0.0 for a in actions) / len(actions)


def compute_stats(
    actions: list[Action],
    strategies: list[Strategy],
    knowledge_nodes: int,
    predictor_sets: int,
    recent_anomalies: int,
    baseline: PerformanceBaseline | None,
    patterns: int,
    clusters: int,
    sequences: int,
) -> StatsSnapshot:
    total = len(actions)
    successful = sum(1 for a in actions if a.metrics is not None and a.metrics.success)

    improvement_rate = 0.0
    if total >= 2 * STATS_TREND_WINDOW:
        early = _quality_or_zero(actions[:STATS_TREND_WINDOW])
        recent = _quality_or_zero(actions[-STATS_TREND_WINDOW:])
        improvement_rate = (recent - early) / early * 100 if early > 0 else 0.0

    distribution: dict[str, int] = {}
    for action in actions:
        distribution[action.type] = distribution.get(action.type, 0) + 1

    top = sorted(
        (s for s in strategies if s.attempts >= MIN_PREDICTION_ATTEMPTS),
        key=lambda s: s.avg_quality,
        reverse=True,
    )[:TOP_STRATEGIES]

    return StatsSnapshot(
        total_actions=total,
        success_rate=successful / total if total else 0.0,
        avg_quality=_quality_or_zero(actions) if total else 0.0,
        avg_efficiency=(
            sum(a.metrics.efficiency if a.metrics else 0.0 for a in actions) / total
            if total
            else 0.0
        ),
        improvement_rate=improvement_rate,
        strategies_learned=len(strategies) if strategies else len(distribution),
        knowledge_nodes=knowledge_nodes,
        predictor_weight_sets=predictor_sets,
        recent_anomalies=recent_anomalies,
        action_type_distribution=distribution,
        top_strategies=[
            StrategySummary(
                key=s.key,
                action_type=s.action_type,
                success_rate=s.success_rate,
                quality=s.avg_quality,
                attempts=s.attempts,
                variance=s.variance,
            )
            for s in top
        ],
        baseline=baseline,
        patterns=patterns,
        clusters=clusters,
        sequences=sequences,
    )

