"""Knowledge graph of action types.

Each node counts how often an action type occurs, which type immediately
preceded it, and how its outcomes turned out.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from ostinato.learning.models import Action, KnowledgeNode, Metrics


class KnowledgeGraph:
    """Per-type occurrence and predecessor counts."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[str, KnowledgeNode] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def observe(self, action_type: str, previous_type: str | None) -> None:
        """Count one occurrence of action_type following previous_type."""
        with self._lock:
            node = self._nodes.get(action_type)
            if node is None:
                node = self._nodes[action_type] = KnowledgeNode(action_type=action_type)
            node.occurrences += 1
            if previous_type is not None:
                node.related_actions[previous_type] = (
                    node.related_actions.get(previous_type, 0) + 1
                )

    def observe_outcome(self, action_type: str, metrics: Metrics) -> None:
        with self._lock:
            node = self._nodes.get(action_type)
            if node is None:
                node = self._nodes[action_type] = KnowledgeNode(action_type=action_type)
            node.outcomes += 1
            if metrics.success:
                node.successes += 1
            node.quality_sum += metrics.quality

    def rebuild(self, actions: Iterable[Action]) -> None:
        """Replay a ledger into a fresh graph."""
        with self._lock:
            self._nodes.clear()
            previous: str | None = None
            for action in actions:
                self.observe(action.type, previous)
                if action.metrics is not None:
                    self.observe_outcome(action.type, action.metrics)
                previous = action.type

    def get(self, action_type: str) -> KnowledgeNode | None:
        with self._lock:
            node = self._nodes.get(action_type)
            return node.copy() if node is not None else None

    def nodes(self) -> list[KnowledgeNode]:
        with self._lock:
            return [node.copy() for node in self._nodes.values()]
