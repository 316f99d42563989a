"""Persistence for learning state."""

from ostinato.state.snapshot_store import (
    KIND_ACTION_HISTORY,
    KIND_PREDICTOR_WEIGHTS,
    KIND_STRATEGIES,
    SnapshotStore,
)

__all__ = [
    "KIND_ACTION_HISTORY",
    "KIND_PREDICTOR_WEIGHTS",
    "KIND_STRATEGIES",
    "SnapshotStore",
]
