"""Ostinato - adaptive learning and behavioral-pattern engine.

Ingests action/outcome events, learns per-strategy reward statistics,
mines recurring action sequences and persists everything to versioned
snapshots.
"""

__version__ = "0.4.0"

from ostinato.learning.engine import LearningEngine

__all__ = ["LearningEngine", "__version__"]
