"""Time utilities for Ostinato.

All timestamps handled by the engine are timezone-aware UTC datetimes.
"""

import math
from datetime import UTC, datetime
from typing import Any


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Parse a persisted timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (including a trailing ``Z``), epoch
    milliseconds as written by older ledgers, or datetimes.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp,
            including non-finite or out-of-range epoch values.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, int | float) and not isinstance(value, bool):
        try:
            seconds = value / 1000.0
            if not math.isfinite(seconds):
                raise ValueError(f"Not a timestamp: {value!r}")
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e
    if not isinstance(value, str):
        raise ValueError(f"Not a timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))
