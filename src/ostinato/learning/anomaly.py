"""Anomaly detection for outcomes and behaviour sequences.

Outcome checks compare a fresh outcome with the strategy statistics as they
stood before that outcome was folded in. Sequence checks compare a closed
sequence with the stored sequence history and the mined pattern table.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Collection
from datetime import datetime, timedelta

from ostinato.core.config import AnomalyConfig, PatternMiningConfig
from ostinato.core.logging import get_logger
from ostinato.learning.mining import generate_subsequences, sequence_key
from ostinato.learning.models import (
    Action,
    AnomalyKind,
    AnomalyRecord,
    Level,
    Sequence,
    Strategy,
)
from ostinato.learning.strategy import population_std
from ostinato.utils.time import utc_now

_logger = get_logger("anomaly")


class AnomalyDetector:
    """Runs anomaly checks and keeps a bounded, time-windowed record."""

    def __init__(
        self,
        config: AnomalyConfig,
        mining: PatternMiningConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._mining = mining
        self._clock = clock
        self._lock = threading.RLock()
        self._anomalies: list[AnomalyRecord] = []

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self._config.window_hours)

    def check_outcome(
        self, action: Action, reward: float, prior: Strategy | None
    ) -> list[AnomalyRecord]:
        """Flag anomalies for an action whose metrics were just derived."""
        metrics = action.metrics
        if metrics is None:
            return []
        now = self._clock()
        cfg = self._config
        found: list[AnomalyRecord] = []

        def flag(
            kind: AnomalyKind, severity: Level, message: str, zscore: float | None = None
        ) -> None:
            found.append(AnomalyRecord(
                kind=kind,
                severity=severity,
                message=message,
                action_type=action.type,
                timestamp=now,
                zscore=zscore,
                action_id=action.id,
            ))

        if prior is not None and len(prior.recent_performance) >= cfg.min_samples:
            std = prior.variance
            if std > 0:
                zscore = abs(reward - prior.avg_reward) / std
                if zscore > cfg.zscore_threshold:
                    severity = Level.HIGH if zscore > cfg.high_zscore_threshold else Level.MEDIUM
                    flag(
                        AnomalyKind.STATISTICAL,
                        severity,
                        f"Performance deviation detected: Z-score {zscore:.2f}",
                        zscore,
                    )

        if metrics.error_rate > cfg.error_rate_threshold:
            flag(
                AnomalyKind.SECURITY,
                Level.HIGH,
                f"Unusual error rate: {metrics.error_rate:g} errors",
            )

        if metrics.execution_time > cfg.execution_time_threshold_ms:
            flag(
                AnomalyKind.PERFORMANCE,
                Level.MEDIUM,
                f"Slow execution: {metrics.execution_time:g}ms",
            )

        if (
            prior is not None
            and prior.avg_quality > cfg.quality_drop_prior
            and metrics.quality < cfg.quality_drop_current
        ):
            flag(
                AnomalyKind.QUALITY,
                Level.HIGH,
                f"Significant quality drop from {prior.avg_quality * 100:.0f}% "
                f"to {metrics.quality * 100:.0f}%",
            )

        self._store(found)
        return found

    def check_sequence(
        self,
        sequence: Sequence,
        history: list[Sequence],
        known_patterns: Collection[str],
    ) -> list[AnomalyRecord]:
        """Flag behavioural anomalies for a sequence against stored history."""
        now = self._clock()
        cfg = self._config
        first_type = sequence.steps[0].type if sequence.steps else ""
        found: list[AnomalyRecord] = []

        def flag(severity: Level, message: str, zscore: float | None = None) -> None:
            found.append(AnomalyRecord(
                kind=AnomalyKind.BEHAVIORAL,
                severity=severity,
                message=message,
                action_type=first_type,
                timestamp=now,
                zscore=zscore,
                sequence_id=sequence.id,
            ))

        lengths = [float(len(s)) for s in history]
        if len(lengths) >= cfg.min_samples:
            mean = sum(lengths) / len(lengths)
            std = population_std(lengths)
            if std > 0 and len(sequence) > mean + cfg.zscore_threshold * std:
                flag(
                    Level.MEDIUM,
                    f"Sequence length {len(sequence)} is unusually long (mean: {mean:.1f})",
                    (len(sequence) - mean) / std,
                )

        if known_patterns and len(sequence) >= self._mining.min_sequence_length:
            types = sequence.types
            if sequence_key(types) not in known_patterns:
                subkeys = (
                    sequence_key(sub)
                    for sub in generate_subsequences(
                        types,
                        self._mining.min_sequence_length,
                        self._mining.max_sequence_length,
                    )
                )
                if not any(key in known_patterns for key in subkeys):
                    flag(Level.HIGH, "This action sequence has never been observed before")

        if sequence.execution_time:
            times = [s.execution_time for s in history if s.execution_time]
            if len(times) >= cfg.min_samples:
                mean = sum(times) / len(times)
                std = population_std(times)
                if std > 0 and sequence.execution_time > mean + cfg.zscore_threshold * std:
                    flag(
                        Level.LOW,
                        f"Execution time {sequence.execution_time:g}ms is unusually slow "
                        f"(mean: {mean:.1f}ms)",
                        (sequence.execution_time - mean) / std,
                    )

        self._store(found)
        return found

    def _store(self, found: list[AnomalyRecord]) -> None:
        if not found:
            return
        with self._lock:
            self._anomalies.extend(found)
            self._trim_locked()
        for record in found:
            _logger.warning(
                "anomaly.detected",
                kind=record.kind.value,
                severity=record.severity.value,
                action_type=record.action_type,
                detail=record.message,
            )

    def _trim_locked(self) -> None:
        cutoff = self._clock() - self.window
        self._anomalies = [a for a in self._anomalies if a.timestamp > cutoff]
        if len(self._anomalies) > self._config.max_anomalies:
            self._anomalies = self._anomalies[-self._config.max_anomalies:]

    def recent(self, limit: int | None = None) -> list[AnomalyRecord]:
        """Anomalies inside the time window, oldest first."""
        cutoff = self._clock() - self.window
        with self._lock:
            recent = [a for a in self._anomalies if a.timestamp > cutoff]
        if limit is not None:
            recent = recent[-limit:] if limit > 0 else []
        return recent

    def prune(self) -> int:
        """Drop anomalies that aged out of the window; returns count removed."""
        with self._lock:
            before = len(self._anomalies)
            self._trim_locked()
            return before - len(self._anomalies)

    def __len__(self) -> int:
        with self._lock:
            return len(self._anomalies)

    def clear(self) -> None:
        with self._lock:
            self._anomalies.clear()
