"""Export of learning data as JSON or CSV text."""

from __future__ import annotations

import csv
import io
import json
from typing import Any

from ostinato.learning.models import Action

CSV_HEADER = [
    "timestamp",
    "type",
    "success",
    "quality",
    "efficiency",
    "execution_time",
    "error_rate",
]

EXPORT_FORMATS = ("json", "csv")


def export_json(document: dict[str, Any]) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False, default=str)


def export_csv(actions: list[Action]) -> str:
    """One row per action that has metrics, oldest first."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for action in actions:
        metrics = action.metrics
        if metrics is None:
            continue
        writer.writerow([
            action.timestamp.isoformat(),
            action.type,
            "true" if metrics.success else "false",
            f"{metrics.quality:.3f}",
            f"{metrics.efficiency:.3f}",
            f"{metrics.execution_time:g}",
            f"{metrics.error_rate:g}",
        ])
    return buffer.getvalue()
