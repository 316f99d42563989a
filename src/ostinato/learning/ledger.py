"""Bounded action ledger.

The ledger is the single source of truth for what happened: every other
structure (knowledge graph, sequences, patterns, clusters) can be rebuilt
from it. It owns ID generation, metric derivation when an outcome arrives,
FIFO eviction and the segmentation of actions into sessions.
"""

from __future__ import annotations

import secrets
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ostinato.core.config import LearningConfig
from ostinato.core.constants import DEFAULT_USER_SATISFACTION
from ostinato.core.logging import get_logger
from ostinato.learning.models import (
    Action,
    Metrics,
    Outcome,
    clamp,
    validate_action_type,
    validate_scalar_map,
)
from ostinato.utils.time import utc_now

_logger = get_logger("ledger")

SESSION_ID_KEY = "session_id"


@dataclass
class RecordResult:
    """What changed when an action was appended."""

    action: Action
    previous_type: str | None
    closed_session: list[Action] | None
    evicted: int = 0


class ActionIdGenerator:
    """Generates unique, generation-ordered action IDs.

    Format: ``action_<epoch ms:013d>_<counter:06d>_<6 hex>``. The millisecond
    part never decreases, so lexical order equals generation order even when
    the wall clock steps backwards.
    """

    def __init__(self, clock_ms: Callable[[], int] | None = None) -> None:
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)
        self._lock = threading.Lock()
        self._last_ms = 0
        self._counter = 0

    def next_id(self) -> str:
        with self._lock:
            now_ms = max(self._clock_ms(), self._last_ms)
            self._last_ms = now_ms
            self._counter = (self._counter + 1) % 1_000_000
            return f"action_{now_ms:013d}_{self._counter:06d}_{secrets.token_hex(3)}"


def assess_quality(outcome: Outcome) -> float:
    """Quality estimate used when the outcome does not report one."""
    quality = 0.5
    if outcome.success:
        quality += 0.3
    if outcome.errors is not None and len(outcome.errors) == 0:
        quality += 0.1
    if outcome.code_quality is not None:
        quality += clamp(outcome.code_quality, 0.0, 1.0) * 0.1
    return min(1.0, quality)


def assess_efficiency(outcome: Outcome, baseline_ms: float) -> float:
    """Efficiency as baseline time over actual time, capped at 1."""
    execution_time = clamp(outcome.execution_time, 0.0, float("inf"))
    if execution_time <= 0:
        return 0.5
    return min(1.0, baseline_ms / execution_time)


def derive_metrics(action_type: str, outcome: Outcome, config: LearningConfig) -> Metrics:
    """Normalize an outcome into Metrics; Metrics clamps every field."""
    if outcome.error_rate is not None:
        error_rate: float = outcome.error_rate
    elif outcome.errors is not None:
        error_rate = float(len(outcome.errors))
    else:
        error_rate = 0.0
    return Metrics(
        success=bool(outcome.success),
        quality=(
            outcome.quality
            if outcome.quality is not None
            else assess_quality(outcome)
        ),
        efficiency=(
            outcome.efficiency
            if outcome.efficiency is not None
            else assess_efficiency(outcome, config.baseline_time(action_type))
        ),
        error_rate=error_rate,
        execution_time=outcome.execution_time if outcome.execution_time is not None else 0.0,
        user_satisfaction=(
            outcome.user_satisfaction
            if outcome.user_satisfaction is not None
            else DEFAULT_USER_SATISFACTION
        ),
        resource_usage=dict(outcome.resource_usage),
    )


def starts_new_session(previous: Action, current: Action, gap_seconds: float) -> bool:
    """Whether ``current`` opens a new session after ``previous``."""
    gap = (current.timestamp - previous.timestamp).total_seconds()
    if gap > gap_seconds:
        return True
    return previous.metadata.get(SESSION_ID_KEY) != current.metadata.get(SESSION_ID_KEY)


def split_sessions(actions: Iterable[Action], gap_seconds: float) -> list[list[Action]]:
    """Segment time-ordered actions into sessions."""
    sessions: list[list[Action]] = []
    previous: Action | None = None
    for action in actions:
        if previous is None or starts_new_session(previous, action, gap_seconds):
            sessions.append([])
        sessions[-1].append(action)
        previous = action
    return sessions


class ActionLedger:
    """Append-only bounded log of actions, keyed by action ID."""

    def __init__(
        self,
        config: LearningConfig,
        session_gap_seconds: float,
        id_generator: ActionIdGenerator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._session_gap = session_gap_seconds
        self._ids = id_generator or ActionIdGenerator()
        self._clock = clock
        self._lock = threading.RLock()
        self._actions: OrderedDict[str, Action] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    @property
    def max_size(self) -> int:
        return self._config.max_history_size

    def record(
        self,
        action_type: str,
        context: dict[str, Any] | None = None,
        parameters: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RecordResult:
        """Validate and append an action.

        Raises:
            InvalidActionError: If the type or any map is invalid.
        """
        action = Action(
            id=self._ids.next_id(),
            timestamp=self._clock(),
            type=validate_action_type(action_type),
            context=validate_scalar_map("context", context),
            parameters=validate_scalar_map("parameters", parameters),
            metadata=validate_scalar_map("metadata", metadata),
        )
        with self._lock:
            previous = next(reversed(self._actions.values()), None)
            closed: list[Action] | None = None
            if previous is not None and starts_new_session(previous, action, self._session_gap):
                closed = [a.copy() for a in self._open_session_locked()]
            self._actions[action.id] = action
            evicted = self._trim_locked()

        if evicted:
            _logger.debug("ledger.evicted", count=evicted, size=self.max_size)
        return RecordResult(
            action=action.copy(),
            previous_type=previous.type if previous is not None else None,
            closed_session=closed,
            evicted=evicted,
        )

    def attach_outcome(self, action_id: str, outcome: Outcome) -> Action | None:
        """Attach an outcome and derived metrics to a stored action.

        Returns a copy of the updated action, or None if the ID is unknown
        (never recorded, or already evicted).
        """
        with self._lock:
            action = self._actions.get(action_id)
            if action is None:
                return None
            action.outcome = outcome
            action.metrics = derive_metrics(action.type, outcome, self._config)
            return action.copy()

    def get(self, action_id: str) -> Action | None:
        with self._lock:
            action = self._actions.get(action_id)
            return action.copy() if action is not None else None

    def actions(self) -> list[Action]:
        """Copies of all actions, oldest first."""
        with self._lock:
            return [a.copy() for a in self._actions.values()]

    def snapshot(self) -> list[dict[str, Any]]:
        """Serialized ledger for persistence."""
        with self._lock:
            return [a.to_dict() for a in self._actions.values()]

    def sessions(self) -> list[list[Action]]:
        """All sessions in the ledger; the last one is still open."""
        return split_sessions(self.actions(), self._session_gap)

    def open_session(self) -> list[Action]:
        with self._lock:
            return [a.copy() for a in self._open_session_locked()]

    def load(self, entries: Iterable[dict[str, Any]]) -> int:
        """Replace the ledger with persisted entries.

        Invalid entries are dropped; only the newest ``max_history_size``
        are kept. Returns the number of entries dropped as invalid.
        """
        valid: list[Action] = []
        dropped = 0
        for entry in entries:
            try:
                valid.append(Action.from_dict(entry))
            except (KeyError, TypeError, ValueError, OverflowError):
                dropped += 1
        valid.sort(key=lambda a: (a.timestamp, a.id))
        with self._lock:
            self._actions = OrderedDict((a.id, a) for a in valid[-self.max_size:])
        if dropped:
            _logger.debug("ledger.invalid_entries_dropped", count=dropped)
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._actions.clear()

    def _open_session_locked(self) -> list[Action]:
        session: list[Action] = []
        later: Action | None = None
        for action in reversed(self._actions.values()):
            if later is not None and starts_new_session(action, later, self._session_gap):
                break
            session.append(action)
            later = action
        session.reverse()
        return session

    def _trim_locked(self) -> int:
        evicted = 0
        while len(self._actions) > self.max_size:
            self._actions.popitem(last=False)
            evicted += 1
        return evicted
