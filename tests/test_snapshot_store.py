"""Tests for ostinato.state.snapshot_store.

Covers the envelope format, checksum verification, legacy migration,
backup rotation and file permissions.
"""

from __future__ import annotations

import json
import os
import stat
import sys
import threading
from pathlib import Path

import pytest

from ostinato.core.config import PersistenceConfig
from ostinato.core.errors import SnapshotCorruptionError, SnapshotWriteError
from ostinato.state.snapshot_store import (
    KIND_ACTION_HISTORY,
    KIND_PREDICTOR_WEIGHTS,
    KIND_STRATEGIES,
    SnapshotStore,
    migrate,
    payload_checksum,
)


@pytest.fixture
def store(tmp_path: Path, clock) -> SnapshotStore:
    return SnapshotStore(PersistenceConfig(data_dir=tmp_path / "data"), clock=clock)


class TestReadWrite:
    """Tests for the document envelope."""

    def test_missing_file_reads_none(self, store):
        assert store.read("strategies.json", KIND_STRATEGIES) is None

    def test_write_then_read(self, store):
        payload = {"code_edit": {"key": "code_edit", "attempts": 3}}
        path = store.write("strategies.json", KIND_STRATEGIES, payload)
        assert path.parent == store.data_dir
        assert store.read("strategies.json", KIND_STRATEGIES) == payload

    def test_envelope_fields(self, store, clock):
        path = store.write("action_history.json", KIND_ACTION_HISTORY, [])
        document = json.loads(path.read_text())
        assert document["schema_version"] == 1
        assert document["kind"] == KIND_ACTION_HISTORY
        assert document["written_at"] == clock.now.isoformat()
        assert document["checksum"] == payload_checksum([])

    def test_no_temp_file_left_behind(self, store):
        store.write("strategies.json", KIND_STRATEGIES, {})
        assert not list(store.data_dir.glob("*.tmp"))

    def test_concurrent_writers_do_not_collide(self, store):
        """Two threads saving the same document both succeed."""
        errors: list[BaseException] = []

        def writer(tag: str) -> None:
            for i in range(15):
                try:
                    store.write("strategies.json", KIND_STRATEGIES, {tag: {"attempts": i}})
                except SnapshotWriteError as e:
                    errors.append(e)

        threads = [threading.Thread(target=writer, args=(tag,)) for tag in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        payload = store.read("strategies.json", KIND_STRATEGIES)
        assert payload in ({"a": {"attempts": 14}}, {"b": {"attempts": 14}})
        assert not list(store.data_dir.glob("*.tmp"))

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_mode_is_owner_only(self, store):
        path = store.write("strategies.json", KIND_STRATEGIES, {})
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_write_failure_raises(self, tmp_path, clock):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = SnapshotStore(PersistenceConfig(data_dir=blocker / "data"), clock=clock)
        with pytest.raises(SnapshotWriteError):
            store.write("strategies.json", KIND_STRATEGIES, {})


class TestCorruption:
    """Tests for documents that must be rejected."""

    def test_unparsable_json(self, store):
        store.data_dir.mkdir(parents=True)
        store.path_for("strategies.json").write_text("{not json")
        with pytest.raises(SnapshotCorruptionError, match="unreadable"):
            store.read("strategies.json", KIND_STRATEGIES)

    def test_checksum_mismatch(self, store):
        path = store.write("strategies.json", KIND_STRATEGIES, {"a": {"attempts": 1}})
        document = json.loads(path.read_text())
        document["payload"]["a"]["attempts"] = 99
        path.write_text(json.dumps(document))
        with pytest.raises(SnapshotCorruptionError, match="checksum"):
            store.read("strategies.json", KIND_STRATEGIES)

    def test_checksum_check_can_be_disabled(self, tmp_path, clock):
        config = PersistenceConfig(data_dir=tmp_path / "data", verify_checksum=False)
        store = SnapshotStore(config, clock=clock)
        path = store.write("strategies.json", KIND_STRATEGIES, {})
        document = json.loads(path.read_text())
        document["checksum"] = "0" * 64
        path.write_text(json.dumps(document))
        assert store.read("strategies.json", KIND_STRATEGIES) == {}

    def test_wrong_kind(self, store):
        store.write("strategies.json", KIND_PREDICTOR_WEIGHTS, {})
        with pytest.raises(SnapshotCorruptionError, match="kind"):
            store.read("strategies.json", KIND_STRATEGIES)

    def test_future_schema(self, store):
        store.data_dir.mkdir(parents=True)
        store.path_for("strategies.json").write_text(
            json.dumps({"schema_version": 99, "kind": KIND_STRATEGIES, "payload": {}})
        )
        with pytest.raises(SnapshotCorruptionError, match="schema_version"):
            store.read("strategies.json", KIND_STRATEGIES)

    def test_wrong_payload_shape(self, store):
        store.write("action_history.json", KIND_ACTION_HISTORY, {"not": "a list"})
        with pytest.raises(SnapshotCorruptionError, match="list"):
            store.read("action_history.json", KIND_ACTION_HISTORY)


class TestLegacyMigration:
    """Bare legacy documents are accepted and migrated."""

    def test_legacy_strategies_renamed(self, store):
        store.data_dir.mkdir(parents=True)
        legacy = {
            "code_edit:python": {
                "actionType": "code_edit",
                "successRate": 0.8,
                "avgQuality": 0.7,
                "attempts": 4,
            }
        }
        store.path_for("strategies.json").write_text(json.dumps(legacy))
        migrated = store.read("strategies.json", KIND_STRATEGIES)
        assert migrated == {
            "code_edit:python": {
                "action_type": "code_edit",
                "success_rate": 0.8,
                "avg_quality": 0.7,
                "attempts": 4,
            }
        }

    def test_legacy_weights_drop_hidden_layer(self):
        legacy = {"k": {"inputWeights": {"x": 0.1}, "hiddenWeights": [[0.2]], "bias": 0.0}}
        migrated = migrate(KIND_PREDICTOR_WEIGHTS, legacy, 0)
        assert migrated == {"k": {"input_weights": {"x": 0.1}, "bias": 0.0}}

    def test_legacy_history_unchanged(self):
        history = [{"id": "a", "type": "t", "timestamp": "2026-01-01T00:00:00+00:00"}]
        assert migrate(KIND_ACTION_HISTORY, history, 0) == history


class TestBackups:
    """Tests for backup rotation."""

    def test_first_write_has_no_backup(self, store):
        store.write("strategies.json", KIND_STRATEGIES, {})
        assert store.backups("strategies.json") == []

    def test_rotation_keeps_five(self, store, clock):
        for i in range(8):
            store.write("strategies.json", KIND_STRATEGIES, {"n": {"attempts": i}})
            clock.advance(seconds=1)
        backups = store.backups("strategies.json")
        assert len(backups) == 5
        newest = json.loads(backups[0].read_text())
        assert newest["payload"] == {"n": {"attempts": 6}}

    def test_backups_are_per_document(self, store, clock):
        for _ in range(2):
            store.write("strategies.json", KIND_STRATEGIES, {})
            store.write("predictor_weights.json", KIND_PREDICTOR_WEIGHTS, {})
            clock.advance(seconds=1)
        assert len(store.backups("strategies.json")) == 1
        assert len(store.backups("predictor_weights.json")) == 1

    def test_backups_disabled(self, tmp_path, clock):
        config = PersistenceConfig(data_dir=tmp_path / "data", backup_count=0)
        store = SnapshotStore(config, clock=clock)
        store.write("strategies.json", KIND_STRATEGIES, {})
        store.write("strategies.json", KIND_STRATEGIES, {})
        assert store.backups("strategies.json") == []
