"""Shared utilities for Ostinato.

Contains cross-cutting utilities used by multiple modules.
"""

from ostinato.utils.time import ensure_utc, parse_timestamp, utc_now

__all__ = ["ensure_utc", "parse_timestamp", "utc_now"]
