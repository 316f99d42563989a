"""Shared utilities for Ostinato CLI commands.

Global options are stored in module-level state by the app callback and read
back by the commands. ``open_engine`` is the one place a command gets an
engine from, so every command sees the same config and data directory.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from ostinato.core.config import EngineConfig
from ostinato.core.errors import ConfigError
from ostinato.core.logging import configure_logging, get_logger
from ostinato.learning.engine import LearningEngine
from ostinato.learning.models import ScalarValue

_logger = get_logger("cli")


# =============================================================================
# Error message constants
# =============================================================================


class ErrorMessages:
    """Constants for CLI error messages."""

    CONFIG_LOAD_ERROR = "Error loading config"
    INVALID_PAIR = "Expected KEY=VALUE"
    INVALID_ACTION = "Invalid action"


# =============================================================================
# Global CLI state
# =============================================================================


@dataclass
class CliState:
    """Options collected by the app callback."""

    config_path: Path | None = None
    data_dir: Path | None = None
    log_level: str = "WARNING"
    configured: bool = False


_state = CliState()


def set_config_path(path: Path | None) -> None:
    _state.config_path = path


def set_data_dir(path: Path | None) -> None:
    _state.data_dir = path


def set_log_level(level: str) -> None:
    _state.log_level = level.upper()


def reset_state() -> None:
    """Reset global CLI state (primarily for testing)."""
    global _state
    _state = CliState()


# =============================================================================
# Logging configuration
# =============================================================================


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options.

    Only configures once per session. Logs go to stderr at WARNING by
    default so they stay out of ``--json`` and export output.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _state.configured:
        return

    try:
        configure_logging(level=_state.log_level, format="console")  # type: ignore[arg-type]
        _state.configured = True
    except (ValueError, AttributeError) as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


# =============================================================================
# Engine access
# =============================================================================


def load_engine_config(console: Console) -> EngineConfig:
    """Load the engine config from ``--config``, or defaults.

    Raises:
        typer.Exit: If the file is unreadable or invalid.
    """
    if _state.config_path is None:
        return EngineConfig()
    try:
        return EngineConfig.from_yaml(_state.config_path)
    except (ConfigError, ValidationError) as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {e}")
        raise typer.Exit(1) from None


@contextmanager
def open_engine(console: Console, save: bool = False) -> Iterator[LearningEngine]:
    """Open the engine on the selected data directory.

    Commands are read-only unless ``save`` is set; the engine never
    autosaves from the CLI.
    """
    config = load_engine_config(console)
    config = config.model_copy(
        update={"persistence": config.persistence.model_copy(update={"autosave": False})}
    )
    engine = LearningEngine(config, data_dir=_state.data_dir)
    _logger.debug("cli.engine_opened", data_dir=str(engine.data_dir))
    try:
        yield engine
    finally:
        engine.close(save=save)


# =============================================================================
# Option parsing
# =============================================================================


def coerce_scalar(raw: str) -> ScalarValue:
    """Turn a command-line string into bool, int, float or str."""
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def parse_pairs(pairs: list[str] | None) -> dict[str, ScalarValue]:
    """Parse repeated ``KEY=VALUE`` options into a scalar map.

    Raises:
        typer.BadParameter: If an item has no ``=`` or an empty key.
    """
    result: dict[str, ScalarValue] = {}
    for item in pairs or []:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise typer.BadParameter(f"{ErrorMessages.INVALID_PAIR}, got {item!r}")
        result[key] = coerce_scalar(value.strip())
    return result
