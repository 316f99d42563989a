"""Ostinato CLI.

A thin typer application over an engine data directory, for inspecting what
the engine has learned.

Package structure:
    cli/
    ├── __init__.py           # This file - app assembly
    ├── helpers.py            # Global state, logging setup, engine access
    ├── output.py             # Rich formatting
    └── commands/
        ├── stats.py          # stats command
        ├── insights.py       # insights command
        ├── patterns.py       # patterns command
        ├── predict.py        # predict command
        ├── improvements.py   # improvements command
        └── export.py         # export command
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ostinato import __version__

from . import helpers as helpers
from .commands import export, improvements, insights, patterns, predict, stats
from .helpers import configure_global_logging, set_config_path, set_data_dir, set_log_level
from .output import console

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="ostinato",
    help="Adaptive learning and behavioural-pattern engine",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    if not value:
        return
    console.print(f"Ostinato v{__version__}")
    raise typer.Exit()


def config_callback(value: Path | None) -> Path | None:
    set_config_path(value)
    return value


def data_dir_callback(value: Path | None) -> Path | None:
    set_data_dir(value)
    return value


def log_level_callback(value: str | None) -> str | None:
    """Record ``--log-level``; an unset option keeps the WARNING default."""
    if value is not None:
        set_log_level(value)
    return value


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Print the Ostinato version and exit",
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            callback=config_callback,
            help="Engine config YAML file",
            envvar="OSTINATO_CONFIG",
        ),
    ] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            "-d",
            callback=data_dir_callback,
            help="Engine data directory (overrides the config)",
            envvar="OSTINATO_DATA_DIR",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Minimum level logged to stderr: DEBUG, INFO, WARNING or ERROR",
            envvar="OSTINATO_LOG_LEVEL",
        ),
    ] = None,
) -> None:
    """Ostinato - learn from recorded actions and their outcomes."""
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

app.command()(stats)
app.command()(insights)
app.command()(patterns)
app.command()(predict)
app.command()(improvements)
app.command()(export)


__all__ = [
    "app",
    "main",
    "console",
]
