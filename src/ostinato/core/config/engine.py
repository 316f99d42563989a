"""Top-level engine configuration.

Example YAML:
    engine_id: assistant
    learning:
      max_history_size: 2000
      exploration_rate: 0.1
    mining:
      min_support: 4
    persistence:
      data_dir: ~/.ostinato/assistant
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from ostinato.core.config.learning import (
    AnomalyConfig,
    LearningConfig,
    PatternMiningConfig,
    PredictorConfig,
)
from ostinato.core.config.storage import LogConfig, MaintenanceConfig, PersistenceConfig
from ostinato.core.errors import ConfigError
from ostinato.core.logging import configure_logging


class EngineConfig(BaseModel):
    """Complete configuration of a LearningEngine instance."""

    engine_id: str = Field(default="default", min_length=1)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    predictor: PredictorConfig = Field(default_factory=PredictorConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    mining: PatternMiningConfig = Field(default_factory=PatternMiningConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> EngineConfig:
        """Load engine configuration from a YAML file.

        Raises:
            ConfigError: If the file cannot be read or is not valid YAML.
            pydantic.ValidationError: If values fail validation.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot load engine config {path}: {e}") from e
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> EngineConfig:
        """Load engine configuration from a YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid engine config: {e}") from e
        return cls.model_validate(data or {})

    def apply_logging(self) -> None:
        """Configure structlog from the ``logging`` section."""
        configure_logging(
            level=self.logging.level,
            format=self.logging.format,
            file_path=self.logging.file_path,
            max_file_size_mb=self.logging.max_file_size_mb,
            backup_count=self.logging.backup_count,
            include_timestamps=self.logging.include_timestamps,
            include_context=self.logging.include_context,
        )
