"""Exception hierarchy for Ostinato.

All engine-specific exceptions inherit from OstinatoError, enabling callers
to catch broad (OstinatoError) or narrow (e.g., SnapshotCorruptionError).
"""

from __future__ import annotations

from pathlib import Path


class OstinatoError(Exception):
    """Base exception for all Ostinato errors."""


class InvalidActionError(OstinatoError, ValueError):
    """Raised when an action cannot be recorded.

    Examples: empty or overlong action type, non-scalar context values.
    """


class ConfigError(OstinatoError):
    """Raised when an engine configuration file cannot be read."""


class SnapshotError(OstinatoError):
    """Base class for snapshot persistence failures."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class SnapshotCorruptionError(SnapshotError):
    """Raised when a snapshot document is unparsable or fails its checksum.

    The engine treats this as recoverable: only the affected structure is
    reset to empty.
    """


class SnapshotWriteError(SnapshotError):
    """Raised when a snapshot document cannot be written to disk."""
