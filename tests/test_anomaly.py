"""Tests for ostinato.learning.anomaly.

Injects outcomes that break each threshold and checks the flagged kind
and severity, then covers the time window and behavioural checks.
"""

from __future__ import annotations

import pytest

from ostinato.core.config import AnomalyConfig, PatternMiningConfig
from ostinato.learning.anomaly import AnomalyDetector
from ostinato.learning.models import Action, AnomalyKind, Level, Metrics, Strategy
from ostinato.learning.sequences import sequence_from_steps


def make_detector(clock, **overrides) -> AnomalyDetector:
    return AnomalyDetector(AnomalyConfig(**overrides), PatternMiningConfig(), clock=clock)


def make_action(clock, **metric_values) -> Action:
    values = {"success": True, "quality": 0.8, "efficiency": 0.8}
    values.update(metric_values)
    return Action(
        id="action_0000000000001_000001_abcdef",
        timestamp=clock(),
        type="code_edit",
        metrics=Metrics(**values),
    )


def settled_strategy(avg_reward: float = 0.9, variance: float = 0.05) -> Strategy:
    return Strategy(
        key="code_edit",
        action_type="code_edit",
        attempts=10,
        avg_quality=0.9,
        avg_reward=avg_reward,
        variance=variance,
        recent_performance=[avg_reward] * 10,
    )


class TestOutcomeChecks:
    """Tests for per-outcome anomaly checks."""

    def test_normal_outcome_not_flagged(self, clock):
        detector = make_detector(clock)
        assert detector.check_outcome(make_action(clock), 0.9, settled_strategy()) == []
        assert len(detector) == 0

    def test_high_error_rate_is_security(self, clock):
        detector = make_detector(clock)
        found = detector.check_outcome(make_action(clock, error_rate=10), 0.8, None)
        assert [(a.kind, a.severity) for a in found] == [(AnomalyKind.SECURITY, Level.HIGH)]

    def test_slow_execution_is_performance(self, clock):
        detector = make_detector(clock)
        found = detector.check_outcome(make_action(clock, execution_time=20_000), 0.8, None)
        assert [(a.kind, a.severity) for a in found] == [
            (AnomalyKind.PERFORMANCE, Level.MEDIUM)
        ]

    def test_quality_drop_against_prior(self, clock):
        detector = make_detector(clock)
        action = make_action(clock, quality=0.1)
        found = detector.check_outcome(action, 0.9, settled_strategy(variance=1.0))
        assert [(a.kind, a.severity) for a in found] == [(AnomalyKind.QUALITY, Level.HIGH)]
        assert "90%" in found[0].message

    def test_statistical_deviation(self, clock):
        detector = make_detector(clock)
        found = detector.check_outcome(make_action(clock), 0.2, settled_strategy())
        statistical = [a for a in found if a.kind is AnomalyKind.STATISTICAL]
        assert len(statistical) == 1
        assert statistical[0].severity is Level.HIGH
        assert statistical[0].zscore == pytest.approx(14.0)

    def test_medium_zscore(self, clock):
        detector = make_detector(clock)
        # z = 0.14 / 0.05 = 2.8, between 2.5 and 3
        found = detector.check_outcome(make_action(clock), 0.76, settled_strategy())
        assert [(a.kind, a.severity) for a in found] == [
            (AnomalyKind.STATISTICAL, Level.MEDIUM)
        ]

    def test_no_zscore_with_few_samples(self, clock):
        detector = make_detector(clock)
        prior = settled_strategy()
        prior.recent_performance = [0.9] * 4
        assert detector.check_outcome(make_action(clock), 0.0, prior) == []

    def test_injected_outcome_flags_several_kinds(self, clock):
        detector = make_detector(clock)
        action = make_action(clock, quality=0.05, error_rate=12, execution_time=60_000)
        found = detector.check_outcome(action, -0.05, settled_strategy())
        kinds = {a.kind for a in found}
        assert kinds == {
            AnomalyKind.STATISTICAL,
            AnomalyKind.SECURITY,
            AnomalyKind.PERFORMANCE,
            AnomalyKind.QUALITY,
        }
        assert all(a.action_id == action.id for a in found)


class TestWindow:
    """Tests for the bounded, time-windowed anomaly record."""

    def test_recent_respects_window(self, clock):
        detector = make_detector(clock)
        detector.check_outcome(make_action(clock, error_rate=10), 0.8, None)
        assert len(detector.recent()) == 1
        clock.advance(hours=25)
        assert detector.recent() == []
        assert detector.prune() == 1
        assert len(detector) == 0

    def test_max_anomalies(self, clock):
        detector = make_detector(clock, max_anomalies=3)
        for _ in range(5):
            detector.check_outcome(make_action(clock, error_rate=10), 0.8, None)
        assert len(detector) == 3

    def test_recent_limit(self, clock):
        detector = make_detector(clock)
        for _ in range(4):
            detector.check_outcome(make_action(clock, error_rate=10), 0.8, None)
        assert len(detector.recent(limit=2)) == 2
        assert detector.recent(limit=0) == []


class TestSequenceChecks:
    """Tests for behavioural checks on closed sequences."""

    def sequence(self, clock, *types: str, execution_time: float | None = None):
        steps = [{"type": t} for t in types]
        if execution_time is not None:
            steps[0]["execution_time"] = execution_time
        return sequence_from_steps(steps, started_at=clock())

    def test_unseen_sequence_flagged(self, clock):
        detector = make_detector(clock)
        found = detector.check_sequence(self.sequence(clock, "x", "y"), [], {"a→b"})
        assert [(a.kind, a.severity) for a in found] == [(AnomalyKind.BEHAVIORAL, Level.HIGH)]
        assert found[0].sequence_id is not None

    def test_sequence_containing_known_pattern_not_flagged(self, clock):
        detector = make_detector(clock)
        assert detector.check_sequence(self.sequence(clock, "a", "b", "c"), [], {"a→b"}) == []

    def test_no_pattern_table_means_no_novelty_check(self, clock):
        detector = make_detector(clock)
        assert detector.check_sequence(self.sequence(clock, "x", "y"), [], set()) == []

    def test_unusually_long_sequence(self, clock):
        detector = make_detector(clock)
        history = [self.sequence(clock, *(["a"] * n)) for n in (2, 2, 3, 3, 2)]
        found = detector.check_sequence(self.sequence(clock, *(["a"] * 10)), history, set())
        assert len(found) == 1
        assert found[0].severity is Level.MEDIUM

    def test_unusually_slow_sequence(self, clock):
        detector = make_detector(clock)
        history = [
            self.sequence(clock, "a", execution_time=t) for t in (100, 110, 90, 100, 105)
        ]
        found = detector.check_sequence(
            self.sequence(clock, "a", execution_time=5000), history, set()
        )
        assert [a.severity for a in found] == [Level.LOW]
