"""Failure reporting for background asyncio tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from ostinato.core.logging import OstinatoLogger


def task_failure(task: asyncio.Task[Any]) -> BaseException | None:
    """The exception a finished task died with; None if it ended cleanly or was cancelled."""
    if task.cancelled():
        return None
    return task.exception()


def log_failure_callback(
    logger: OstinatoLogger, event: str
) -> Callable[[asyncio.Task[Any]], None]:
    """Build an ``add_done_callback`` handler that logs a task's crash.

    Without it an exception in a fire-and-forget task is only reported when
    the task object is garbage collected.
    """

    def _callback(task: asyncio.Task[Any]) -> None:
        exc = task_failure(task)
        if exc is not None:
            logger.error(
                event,
                task_name=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    return _callback
