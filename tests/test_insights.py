"""Tests for ostinato.learning.insights and the knowledge graph."""

from __future__ import annotations

from datetime import timedelta

import pytest

from ostinato.learning import insights
from ostinato.learning.knowledge import KnowledgeGraph
from ostinato.learning.models import (
    Action,
    AnomalyKind,
    AnomalyRecord,
    Insight,
    Level,
    Metrics,
    Strategy,
)


def make_actions(clock, qualities, action_type="code_edit", spacing_minutes=1):
    actions = []
    for i, quality in enumerate(qualities):
        actions.append(Action(
            id=f"action_{i:013d}_000001_aaaaaa",
            timestamp=clock() + timedelta(minutes=i * spacing_minutes),
            type=action_type,
            metrics=Metrics(success=quality >= 0.5, quality=quality, efficiency=0.5),
        ))
    return actions


def strategy(**overrides) -> Strategy:
    values = {
        "key": "code_edit:python",
        "action_type": "code_edit",
        "attempts": 12,
        "success_rate": 0.95,
        "avg_quality": 0.9,
        "avg_efficiency": 0.8,
        "variance": 0.1,
    }
    values.update(overrides)
    return Strategy(**values)


class TestKnowledgeGraph:
    """Tests for per-type counts and predecessors."""

    def test_observe_counts_predecessors(self):
        graph = KnowledgeGraph()
        graph.observe("file_read", None)
        graph.observe("code_edit", "file_read")
        graph.observe("code_edit", "file_read")
        node = graph.get("code_edit")
        assert node.occurrences == 2
        assert node.related_actions == {"file_read": 2}

    def test_rebuild_replays_actions(self, clock):
        graph = KnowledgeGraph()
        graph.observe("stale", None)
        graph.rebuild(make_actions(clock, [0.8, 0.4]))
        assert graph.get("stale") is None
        node = graph.get("code_edit")
        assert node.outcomes == 2
        assert node.successes == 1
        assert node.mean_quality == pytest.approx(0.6)


class TestAnalyzePatterns:
    """Tests for insight generation and ranking."""

    def test_sequence_insight_needs_support(self):
        graph = KnowledgeGraph()
        for _ in range(3):
            graph.observe("code_edit", "file_read")
        found = insights.sequence_insights(graph.nodes(), min_support=3)
        assert len(found) == 1
        assert found[0].kind == "sequence_pattern"
        assert found[0].priority is Level.HIGH
        assert insights.sequence_insights(graph.nodes(), min_support=4) == []

    def test_quality_trend(self, clock):
        actions = make_actions(clock, [0.3] * 100 + [0.9] * 100)
        trend = insights.quality_trend_insight(actions)
        assert trend is not None
        assert trend.priority is Level.HIGH
        assert "60.0%" in trend.message

    def test_no_trend_when_quality_flat(self, clock):
        assert insights.quality_trend_insight(make_actions(clock, [0.5] * 20)) is None

    def test_temporal_insight(self, clock):
        morning = make_actions(clock, [0.9] * 5)
        evening = make_actions(clock, [0.2] * 5)
        for action in evening:
            action.timestamp += timedelta(hours=8)
        found = insights.temporal_insights(morning + evening)
        assert len(found) == 1
        assert "10:00 UTC" in found[0].message
        assert "18:00 UTC" in found[0].message

    def test_convergence_insight(self):
        found = insights.convergence_insights([strategy(attempts=25, variance=0.05)])
        assert len(found) == 1
        assert found[0].confidence == pytest.approx(0.95)
        assert insights.convergence_insights([strategy(attempts=25, variance=0.5)]) == []

    def test_ranking_high_first(self, clock):
        anomaly = AnomalyRecord(
            kind=AnomalyKind.SECURITY,
            severity=Level.HIGH,
            message="Unusual error rate",
            action_type="code_edit",
            timestamp=clock(),
        )
        ranked = insights.analyze_patterns(
            nodes=[],
            actions=[],
            anomalies=[anomaly],
            strategies=[strategy(attempts=25, variance=0.05)],
            min_support=3,
        )
        assert [i.kind for i in ranked] == ["anomaly_detected", "convergence"]

    def test_rank_keeps_order_within_priority(self):
        items = [
            Insight(kind=name, message="", confidence=0.5, priority=Level.MEDIUM)
            for name in ("first", "second")
        ]
        assert [i.kind for i in insights.rank_insights(items)] == ["first", "second"]


class TestPredict:
    """Tests for outcome prediction."""

    def test_fallback_without_strategy(self):
        prediction = insights.predict(None, None)
        assert prediction.confidence is Level.LOW
        assert prediction.predicted_success == 0.5
        assert prediction.predicted_quality == 0.5
        assert prediction.predicted_efficiency == 0.5
        assert prediction.recommendation == "Insufficient data for reliable prediction"

    def test_fallback_with_few_attempts(self):
        prediction = insights.predict(strategy(attempts=4), 0.9)
        assert prediction.confidence is Level.LOW
        assert prediction.based_on_attempts == 4

    def test_blends_strategy_and_predictor(self):
        prediction = insights.predict(strategy(avg_quality=0.9, variance=0.1), 0.8)
        assert prediction.predicted_quality == pytest.approx(0.86)
        assert prediction.confidence is Level.HIGH
        assert prediction.recommendation.startswith("High confidence")

    @pytest.mark.parametrize(
        "variance, expected",
        [(0.1, Level.HIGH), (0.3, Level.MEDIUM), (0.6, Level.LOW)],
    )
    def test_confidence_from_variance(self, variance, expected):
        assert insights.predict(strategy(variance=variance), 0.5).confidence is expected

    def test_underperforming_recommendation(self):
        weak = strategy(attempts=30, success_rate=0.3, avg_quality=0.2)
        assert "alternative" in insights.predict(weak, 0.2).recommendation


class TestImprovements:
    """Tests for improvement generation."""

    def test_low_success_strategy(self):
        weak = strategy(attempts=15, success_rate=0.4)
        found = insights.generate_improvements([weak, strategy()], [])
        assert [i.strategy_key for i in found] == [weak.key]
        assert found[0].priority is Level.HIGH

    def test_confident_insights(self):
        confident = Insight(
            kind="improvement", message="Quality improved", confidence=0.9, priority=Level.HIGH
        )
        hesitant = Insight(
            kind="temporal_pattern", message="Peaks", confidence=0.8, priority=Level.MEDIUM
        )
        found = insights.generate_improvements([], [confident, hesitant])
        assert [i.insight for i in found] == ["Quality improved"]
        assert found[0].area == "general"


class TestStats:
    """Tests for compute_stats() and the performance baseline."""

    def test_empty_stats(self):
        stats = insights.compute_stats([], [], 0, 0, 0, None, 0, 0, 0)
        assert stats.total_actions == 0
        assert stats.success_rate == 0.0
        assert stats.top_strategies == []

    def test_improvement_rate_is_percent(self, clock):
        actions = make_actions(clock, [0.4] * 10 + [0.8] * 10)
        stats = insights.compute_stats(actions, [], 1, 0, 0, None, 0, 0, 0)
        assert stats.improvement_rate == pytest.approx(100.0)
        assert stats.action_type_distribution == {"code_edit": 20}
        assert stats.success_rate == pytest.approx(0.5)

    def test_top_strategies_need_attempts(self):
        stats = insights.compute_stats(
            [], [strategy(attempts=3), strategy(key="b", attempts=6)], 0, 0, 0, None, 0, 0, 0
        )
        assert [s.key for s in stats.top_strategies] == ["b"]

    def test_baseline_needs_history(self, clock):
        assert insights.performance_baseline(make_actions(clock, [0.5] * 9), clock()) is None
        baseline = insights.performance_baseline(make_actions(clock, [0.6] * 10), clock())
        assert baseline.avg_quality == pytest.approx(0.6)
        assert baseline.success_rate == 1.0
