"""Versioned JSON snapshot store.

Each learning structure is persisted as its own document so that a damaged
file only costs that one structure. A document is an envelope::

    {
      "schema_version": 1,
      "kind": "strategies",
      "written_at": "2026-01-01T00:00:00+00:00",
      "checksum": "<sha256 of the canonical payload JSON>",
      "payload": {...}
    }

Writes copy the previous file to ``backups/<name>.<timestamp>.bak`` (keeping
the newest ``backup_count``), then write a temp file with restricted
permissions and rename it over the target. Files without an envelope are
treated as schema 0, the bare arrays and maps written by older ledgers, and
are migrated on read.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import secrets
import shutil
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from ostinato.core.config import PersistenceConfig
from ostinato.core.constants import BACKUP_DIR_NAME, SNAPSHOT_SCHEMA_VERSION
from ostinato.core.errors import SnapshotCorruptionError, SnapshotWriteError
from ostinato.core.logging import get_logger
from ostinato.utils.time import utc_now

_logger = get_logger("store")

KIND_ACTION_HISTORY = "action_history"
KIND_STRATEGIES = "strategies"
KIND_PREDICTOR_WEIGHTS = "predictor_weights"

_PAYLOAD_TYPES: dict[str, type] = {
    KIND_ACTION_HISTORY: list,
    KIND_STRATEGIES: dict,
    KIND_PREDICTOR_WEIGHTS: dict,
}

_CAMEL_TO_SNAKE = {
    "actionType": "action_type",
    "successRate": "success_rate",
    "avgQuality": "avg_quality",
    "avgEfficiency": "avg_efficiency",
    "avgReward": "avg_reward",
    "recentPerformance": "recent_performance",
    "bestParameters": "best_parameters",
    "explorationCount": "exploration_count",
    "learningRate": "learning_rate",
    "lastUpdate": "last_update",
    "inputWeights": "input_weights",
    "outputWeight": "output_weight",
}


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def payload_checksum(payload: Any) -> str:
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def _rename_keys(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return entry
    return {_CAMEL_TO_SNAKE.get(k, k): v for k, v in entry.items() if k != "hiddenWeights"}


def _migrate_0_to_1(kind: str, payload: Any) -> Any:
    """Bare legacy documents: camelCase strategy and weight fields."""
    if kind == KIND_ACTION_HISTORY:
        return payload
    return {key: _rename_keys(entry) for key, entry in payload.items()}


# from_version -> migration producing from_version + 1
MIGRATIONS: dict[int, Callable[[str, Any], Any]] = {
    0: _migrate_0_to_1,
}


def migrate(kind: str, payload: Any, from_version: int) -> Any:
    """Apply every migration from ``from_version`` up to the current schema."""
    version = from_version
    while version < SNAPSHOT_SCHEMA_VERSION:
        payload = MIGRATIONS[version](kind, payload)
        version += 1
    return payload


class SnapshotStore:
    """Reads and writes snapshot documents under one data directory."""

    def __init__(
        self,
        config: PersistenceConfig,
        data_dir: Path | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._data_dir = data_dir.expanduser() if data_dir else config.resolved_data_dir()
        self._clock = clock
        # one writer at a time; backups and the rename are not atomic together
        self._write_lock = threading.Lock()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def backup_dir(self) -> Path:
        return self._data_dir / BACKUP_DIR_NAME

    def path_for(self, name: str) -> Path:
        return self._data_dir / name

    def read(self, name: str, kind: str) -> Any | None:
        """Read and validate one document.

        Returns the (migrated) payload, or None if the file does not exist.

        Raises:
            SnapshotCorruptionError: If the file is unparsable, fails its
                checksum, has an unknown schema, or has the wrong shape.
        """
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotCorruptionError(path, f"unreadable: {e}") from e

        expected = _PAYLOAD_TYPES[kind]
        if isinstance(document, dict) and "schema_version" in document and "payload" in document:
            version = document.get("schema_version")
            if not isinstance(version, int) or version < 1 or version > SNAPSHOT_SCHEMA_VERSION:
                raise SnapshotCorruptionError(path, f"unsupported schema_version {version!r}")
            if document.get("kind") != kind:
                raise SnapshotCorruptionError(
                    path, f"expected kind {kind!r}, found {document.get('kind')!r}"
                )
            payload = document["payload"]
            if self._config.verify_checksum and document.get("checksum") != payload_checksum(
                payload
            ):
                raise SnapshotCorruptionError(path, "checksum mismatch")
        else:
            version = 0
            payload = document
            _logger.info("store.legacy_document", path=str(path), kind=kind)

        if not isinstance(payload, expected):
            raise SnapshotCorruptionError(
                path, f"payload must be a {expected.__name__}, got {type(payload).__name__}"
            )
        return migrate(kind, payload, version)

    def write(self, name: str, kind: str, payload: Any) -> Path:
        """Back up the current document, then atomically replace it.

        Raises:
            SnapshotWriteError: If the directory or file cannot be written.
        """
        path = self.path_for(name)
        document = {
            "schema_version": SNAPSHOT_SCHEMA_VERSION,
            "kind": kind,
            "written_at": self._clock().isoformat(),
            "checksum": payload_checksum(payload),
            "payload": payload,
        }
        temp_path = path.with_name(f"{path.name}.{secrets.token_hex(4)}.tmp")
        with self._write_lock:
            try:
                self._data_dir.mkdir(parents=True, exist_ok=True)
                self.backup(name)
                fd = os.open(
                    temp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, self._config.file_mode
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, ensure_ascii=False)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(temp_path, self._config.file_mode)
                os.replace(temp_path, path)
            except OSError as e:
                with contextlib.suppress(OSError):
                    temp_path.unlink()
                raise SnapshotWriteError(path, str(e)) from e
        return path

    def backup(self, name: str) -> Path | None:
        """Copy the current document into the backup directory and rotate.

        A failed backup is logged and does not block the write.
        """
        if self._config.backup_count == 0:
            return None
        path = self.path_for(name)
        if not path.exists():
            return None
        stamp = self._clock().isoformat().replace(":", "-").replace(".", "-")
        target = self.backup_dir / f"{name}.{stamp}.bak"
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            os.chmod(target, self._config.file_mode)
            self._rotate(name)
        except OSError as e:
            _logger.warning("store.backup_failed", path=str(path), error=str(e))
            return None
        return target

    def backups(self, name: str) -> list[Path]:
        """Backups for ``name``, newest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{name}.*.bak"), reverse=True)

    def _rotate(self, name: str) -> None:
        for old in self.backups(name)[self._config.backup_count:]:
            old.unlink(missing_ok=True)
