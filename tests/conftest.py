"""Pytest fixtures for Ostinato tests."""

from __future__ import annotations

import logging
import random
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import structlog

from ostinato.core.config import EngineConfig, LearningConfig, PersistenceConfig
from ostinato.learning.engine import LearningEngine


class FakeClock:
    """Deterministic UTC clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 10, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging and CLI state before and after each test."""
    import ostinato.cli.helpers as cli_helpers

    cli_helpers.reset_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_state()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "learning"


@pytest.fixture
def engine_config(data_dir: Path) -> EngineConfig:
    """Engine config writing into tmp_path, with autosave off."""
    return EngineConfig(
        engine_id="test",
        learning=LearningConfig(random_seed=7),
        persistence=PersistenceConfig(data_dir=data_dir, autosave=False),
    )


@pytest.fixture
def engine(engine_config: EngineConfig, clock: FakeClock) -> Generator[LearningEngine, None, None]:
    engine = LearningEngine(engine_config, rng=random.Random(7), clock=clock)
    yield engine
    engine.close(save=False)
