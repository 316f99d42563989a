"""Persistence, maintenance and logging configuration models."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from ostinato.core.constants import BACKUP_KEEP_COUNT, SNAPSHOT_FILE_MODE


class PersistenceConfig(BaseModel):
    """Configuration for the snapshot store."""

    data_dir: Path = Field(
        default=Path("~/.ostinato/learning"),
        description="Directory holding the three snapshot documents and backups/",
    )
    autosave: bool = Field(
        default=True,
        description="Schedule a background save after every recorded outcome",
    )
    backup_count: int = Field(
        default=BACKUP_KEEP_COUNT,
        ge=0,
        le=100,
        description="Rotated backups kept per snapshot document",
    )
    file_mode: int = Field(
        default=SNAPSHOT_FILE_MODE,
        ge=0,
        le=0o777,
        description="Permission bits for snapshot files",
    )
    verify_checksum: bool = Field(default=True)

    def resolved_data_dir(self) -> Path:
        return self.data_dir.expanduser()


class MaintenanceConfig(BaseModel):
    """Intervals of the background maintenance loop (seconds)."""

    gc_interval_seconds: float = Field(default=300.0, gt=0.0)
    memory_interval_seconds: float = Field(default=60.0, gt=0.0)
    mining_interval_seconds: float = Field(default=600.0, gt=0.0)
    save_interval_seconds: float = Field(default=300.0, gt=0.0)
    memory_warning_mb: float = Field(
        default=1024.0,
        gt=0.0,
        description="RSS above which the loop logs a warning and collects garbage early",
    )


class LogConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    format: Literal["json", "console", "both"] = Field(
        default="console",
        description="json for structured, console for human-readable, "
        "both for console to stderr and JSON to file",
    )
    file_path: Path | None = Field(default=None)
    max_file_size_mb: int = Field(default=50, gt=0, le=1000)
    backup_count: int = Field(default=5, ge=0, le=100)
    include_timestamps: bool = Field(default=True)
    include_context: bool = Field(default=True)

    @model_validator(mode="after")
    def _check_file_path_required(self) -> LogConfig:
        if self.format == "both" and self.file_path is None:
            raise ValueError(
                f"file_path is required when format='{self.format}'"
            )
        return self
