"""Behaviour sequences and their bounded store."""

from __future__ import annotations

import posixpath
import secrets
import threading
from collections import deque
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ostinato.core.errors import InvalidActionError
from ostinato.learning.models import (
    Action,
    Sequence,
    SequenceStep,
    validate_action_type,
    validate_scalar_map,
)
from ostinato.utils.time import ensure_utc, utc_now


def new_sequence_id(started_at: datetime) -> str:
    return f"seq_{int(started_at.timestamp() * 1000):013d}_{secrets.token_hex(4)}"


def summarize_context(steps: list[SequenceStep], started_at: datetime) -> dict[str, Any]:
    """Languages, file extensions and action types seen, plus when it started."""
    languages: list[str] = []
    file_types: list[str] = []
    action_types: list[str] = []
    for step in steps:
        language = step.context.get("language")
        if isinstance(language, str) and language and language not in languages:
            languages.append(language)
        file_path = step.context.get("filePath")
        if isinstance(file_path, str) and file_path:
            ext = posixpath.splitext(file_path)[1]
            if ext not in file_types:
                file_types.append(ext)
        if step.type not in action_types:
            action_types.append(step.type)
    started = ensure_utc(started_at)
    return {
        "languages": languages,
        "file_types": file_types,
        "action_types": action_types,
        "hour": started.hour,
        "day_of_week": started.weekday(),
    }


def sequence_from_actions(actions: list[Action], sequence_id: str | None = None) -> Sequence:
    """Build a sequence from a ledger session."""
    steps = [SequenceStep(type=a.type, context=dict(a.context)) for a in actions]
    started_at = actions[0].timestamp if actions else utc_now()
    times = [a.metrics.execution_time for a in actions if a.metrics is not None]
    return Sequence(
        id=sequence_id or new_sequence_id(started_at),
        steps=steps,
        context=summarize_context(steps, started_at),
        started_at=started_at,
        execution_time=sum(times) if times else None,
    )


def sequence_from_steps(
    steps: Iterable[dict[str, Any]], started_at: datetime | None = None
) -> Sequence:
    """Build a sequence from caller-supplied step dicts.

    Each step needs a ``type`` and may carry ``context`` and
    ``execution_time`` (ms).

    Raises:
        InvalidActionError: If a step is malformed.
    """
    parsed: list[SequenceStep] = []
    total_time = 0.0
    timed = False
    for step in steps:
        if not isinstance(step, dict):
            raise InvalidActionError(f"Sequence step must be a mapping, got {type(step).__name__}")
        parsed.append(SequenceStep(
            type=validate_action_type(step.get("type")),
            context=validate_scalar_map("context", step.get("context")),
        ))
        execution_time = step.get("execution_time", step.get("executionTime"))
        if isinstance(execution_time, int | float) and not isinstance(execution_time, bool):
            total_time += max(0.0, float(execution_time))
            timed = True
    if not parsed:
        raise InvalidActionError("A sequence needs at least one step")
    started = started_at or utc_now()
    return Sequence(
        id=new_sequence_id(started),
        steps=parsed,
        context=summarize_context(parsed, started),
        started_at=started,
        execution_time=total_time if timed else None,
    )


class SequenceStore:
    """The most recent closed sequences, oldest evicted first."""

    def __init__(self, max_sequences: int) -> None:
        self._lock = threading.RLock()
        self._sequences: deque[Sequence] = deque(maxlen=max_sequences)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sequences)

    def add(self, sequence: Sequence) -> None:
        with self._lock:
            self._sequences.append(sequence)

    def all(self) -> list[Sequence]:
        with self._lock:
            return list(self._sequences)

    def get(self, sequence_id: str) -> Sequence | None:
        with self._lock:
            for sequence in self._sequences:
                if sequence.id == sequence_id:
                    return sequence
        return None

    def replace(self, sequences: Iterable[Sequence]) -> None:
        with self._lock:
            self._sequences.clear()
            self._sequences.extend(sequences)

    def clear(self) -> None:
        with self._lock:
            self._sequences.clear()
