"""Tests for ostinato.core.logging module."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from ostinato.core.logging import (
    SENSITIVE_PATTERNS,
    EngineContext,
    OstinatoLogger,
    _add_context,
    _sanitize_event_dict,
    _sanitize_value,
    configure_logging,
    get_current_context,
    get_logger,
    with_context,
)


class TestSanitization:
    """Tests for sensitive field redaction."""

    def test_known_sensitive_patterns(self):
        assert "api_key" in SENSITIVE_PATTERNS
        assert "token" in SENSITIVE_PATTERNS
        assert "password" in SENSITIVE_PATTERNS

    def test_sanitize_value_is_case_insensitive(self):
        assert _sanitize_value("API_KEY", "sk-1") == "[REDACTED]"
        assert _sanitize_value("db_password", "hunter2") == "[REDACTED]"

    def test_safe_values_pass_through(self):
        assert _sanitize_value("action_type", "code_edit") == "code_edit"
        assert _sanitize_value("attempts", 5) == 5

    def test_event_dict_redacts_nested_context(self):
        """Context maps are logged nested, so one level is sanitized too."""
        event_dict = {
            "event": "ledger.recorded",
            "secret": "x",
            "context": {"bearer_token": "abc", "language": "python"},
        }

        result = _sanitize_event_dict(None, "info", event_dict)

        assert result["event"] == "ledger.recorded"
        assert result["secret"] == "[REDACTED]"
        assert result["context"] == {"bearer_token": "[REDACTED]", "language": "python"}


class TestEngineContext:
    """Tests for EngineContext and the context variable."""

    def test_to_dict_omits_missing_action(self):
        ctx = EngineContext(engine_id="e1", run_id="r1")

        assert ctx.to_dict() == {"engine_id": "e1", "run_id": "r1", "component": "engine"}

    def test_with_action_returns_copy(self):
        ctx = EngineContext(engine_id="e1", run_id="r1")
        bound = ctx.with_action("action_1")

        assert bound.to_dict()["action_id"] == "action_1"
        assert ctx.action_id is None

    def test_run_id_generated_when_omitted(self):
        assert EngineContext(engine_id="e1").run_id != EngineContext(engine_id="e1").run_id

    def test_with_context_sets_and_resets(self):
        ctx = EngineContext(engine_id="e1")
        assert get_current_context() is None

        with with_context(ctx) as active:
            assert active is ctx
            assert get_current_context() is ctx

        assert get_current_context() is None

    def test_add_context_keeps_explicit_fields(self):
        """Explicitly bound fields win over context fields."""
        ctx = EngineContext(engine_id="e1", run_id="r1", component="engine")
        with with_context(ctx):
            result = _add_context(None, "info", {"event": "x", "component": "store"})

        assert result["component"] == "store"
        assert result["engine_id"] == "e1"
        assert result["run_id"] == "r1"

    def test_add_context_without_context_is_noop(self):
        assert _add_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestOstinatoLogger:
    """Tests for the component logger wrapper."""

    def test_get_logger_binds_component(self):
        logger = get_logger("ledger", engine_id="e1")

        assert isinstance(logger, OstinatoLogger)
        assert logger._context == {"component": "ledger", "engine_id": "e1"}

    def test_bind_returns_new_logger(self):
        logger = get_logger("ledger")
        bound = logger.bind(action_id="a1")

        assert bound is not logger
        assert bound._context["action_id"] == "a1"
        assert "action_id" not in logger._context

    def test_unbind_removes_keys(self):
        logger = get_logger("ledger", engine_id="e1", run_id="r1")
        unbound = logger.unbind("run_id")

        assert "run_id" not in unbound._context
        assert logger._context["run_id"] == "r1"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_both_requires_file_path(self):
        with pytest.raises(ValueError, match="file_path"):
            configure_logging(format="both")

    def test_console_logs_to_stderr(self, capsys: pytest.CaptureFixture[str]):
        configure_logging(level="INFO", format="console")

        get_logger("engine").info("engine.loaded", strategies=3)

        captured = capsys.readouterr()
        assert "engine.loaded" in captured.err
        assert "engine.loaded" not in captured.out

    def test_level_filters_lower_events(self, capsys: pytest.CaptureFixture[str]):
        configure_logging(level="WARNING", format="console")

        get_logger("engine").info("engine.quiet")
        get_logger("engine").warning("engine.loud")

        err = capsys.readouterr().err
        assert "engine.quiet" not in err
        assert "engine.loud" in err

    def test_json_file_output(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "ostinato.jsonl"
        configure_logging(level="INFO", format="json", file_path=log_file)

        ctx = EngineContext(engine_id="e1", run_id="r1")
        with with_context(ctx):
            get_logger("store").info("store.saved", api_key="sk-1", documents=4)
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text().strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry["event"] == "store.saved"
        assert entry["component"] == "store"
        assert entry["engine_id"] == "e1"
        assert entry["api_key"] == "[REDACTED]"
        assert entry["documents"] == 4
        assert entry["level"] == "info"
        assert "timestamp" in entry

        for handler in logging.getLogger().handlers:
            handler.close()

    def test_timestamps_can_be_disabled(self, tmp_path: Path):
        log_file = tmp_path / "ostinato.jsonl"
        configure_logging(
            level="INFO", format="json", file_path=log_file, include_timestamps=False,
        )

        get_logger("store").info("store.saved")
        for handler in logging.getLogger().handlers:
            handler.flush()
            handler.close()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert "timestamp" not in entry
