"""Frequent subsequence mining over behaviour sequences.

The pattern table is rebuilt from scratch on every pass: each contiguous
subsequence within the configured length range is counted across all
sequences, and those reaching ``min_support`` become patterns.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ostinato.core.config import PatternMiningConfig
from ostinato.core.constants import MAX_SUGGESTIONS, PATTERN_KEY_SEPARATOR
from ostinato.core.logging import get_logger
from ostinato.learning.models import PatternRecord, Sequence
from ostinato.utils.time import utc_now

_logger = get_logger("mining")


def sequence_key(types: Iterable[str]) -> str:
    return PATTERN_KEY_SEPARATOR.join(types)


def generate_subsequences(types: list[str], min_length: int, max_length: int) -> list[list[str]]:
    """All contiguous runs of ``types`` with length in [min_length, max_length]."""
    subsequences: list[list[str]] = []
    for length in range(min_length, min(max_length, len(types)) + 1):
        for start in range(len(types) - length + 1):
            subsequences.append(types[start:start + length])
    return subsequences


def context_similarity(context: dict[str, Any] | None, contexts: list[dict[str, Any]]) -> float:
    """How well a query context matches the contexts a pattern was seen in.

    The query may carry ``language``, ``hour`` and ``action_type``; each
    present factor contributes equally. Returns 0.5 when either side is empty.
    """
    if not context or not contexts:
        return 0.5
    language = context.get("language")
    hour = context.get("hour", context.get("timeOfDay"))
    action_type = context.get("action_type", context.get("actionType"))

    total = 0.0
    for seen in contexts:
        similarity = 0.0
        factors = 0
        if language and "languages" in seen:
            similarity += 1.0 if language in seen["languages"] else 0.0
            factors += 1
        if isinstance(hour, int | float) and not isinstance(hour, bool) and "hour" in seen:
            similarity += 1 - abs(hour - seen["hour"]) / 24
            factors += 1
        if action_type and "action_types" in seen:
            similarity += 1.0 if action_type in seen["action_types"] else 0.0
            factors += 1
        total += similarity / factors if factors else 0.0
    return total / len(contexts)


@dataclass
class Suggestion:
    """A likely next action derived from a mined pattern."""

    action: str
    confidence: float
    frequency: int
    pattern: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "confidence": self.confidence,
            "frequency": self.frequency,
            "pattern": self.pattern,
            "reason": self.reason,
        }


class PatternMiner:
    """Owns the pattern table."""

    def __init__(
        self,
        config: PatternMiningConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._clock = clock
        self._lock = threading.RLock()
        self._patterns: dict[str, PatternRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)

    def mine(self, sequences: list[Sequence]) -> dict[str, PatternRecord]:
        """Re-mine the table from ``sequences`` and replace it."""
        cfg = self._config
        counts: dict[str, int] = {}
        contexts: dict[str, list[dict[str, Any]]] = {}
        for sequence in sequences:
            for sub in generate_subsequences(
                sequence.types, cfg.min_sequence_length, cfg.max_sequence_length
            ):
                key = sequence_key(sub)
                counts[key] = counts.get(key, 0) + 1
                samples = contexts.setdefault(key, [])
                if len(samples) < cfg.max_pattern_contexts:
                    samples.append(sequence.context)

        now = self._clock()
        total = len(sequences)
        patterns = {
            key: PatternRecord(
                key=key,
                pattern=key.split(PATTERN_KEY_SEPARATOR),
                frequency=count,
                confidence=min(1.0, count / total),
                contexts=contexts[key],
                discovered_at=now,
            )
            for key, count in counts.items()
            if count >= cfg.min_support
        }
        with self._lock:
            self._patterns = patterns
        _logger.debug("mining.completed", sequences=total, patterns=len(patterns))
        return dict(patterns)

    def keys(self) -> set[str]:
        with self._lock:
            return set(self._patterns)

    def patterns(self) -> list[PatternRecord]:
        """Patterns ordered by frequency, most frequent first."""
        with self._lock:
            records = list(self._patterns.values())
        return sorted(records, key=lambda p: (-p.frequency, p.key))

    def suggest_next(
        self,
        current_types: list[str],
        context: dict[str, Any] | None = None,
        limit: int = MAX_SUGGESTIONS,
    ) -> list[Suggestion]:
        """Patterns that extend ``current_types``, best match first."""
        if not current_types:
            return []
        prefix = sequence_key(current_types) + PATTERN_KEY_SEPARATOR
        with self._lock:
            candidates = [p for k, p in self._patterns.items() if k.startswith(prefix)]
        suggestions = [
            Suggestion(
                action=record.pattern[len(current_types)],
                confidence=record.confidence * context_similarity(context, record.contexts),
                frequency=record.frequency,
                pattern=record.key,
                reason=f"Observed {record.frequency} times in similar contexts",
            )
            for record in candidates
        ]
        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions[:limit]

    def clear(self) -> None:
        with self._lock:
            self._patterns.clear()
