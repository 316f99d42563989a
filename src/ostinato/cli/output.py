"""Rich output formatting for the Ostinato CLI.

Centralizes color schemes, table builders and small formatters so every
command renders learning data the same way.
"""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from ostinato.learning.models import Level

# =============================================================================
# Shared console instance
# =============================================================================

# Machine-readable output (--json, export) bypasses this console and goes
# through typer.echo so Rich never wraps or styles it.
console = Console()


# =============================================================================
# Color schemes
# =============================================================================


class LevelColors:
    """Color mappings for priority, severity and confidence levels."""

    LEVEL: dict[Level, str] = {
        Level.HIGH: "red",
        Level.MEDIUM: "yellow",
        Level.LOW: "dim",
    }

    # Confidence reads the other way round: high confidence is good news
    CONFIDENCE: dict[Level, str] = {
        Level.HIGH: "green",
        Level.MEDIUM: "yellow",
        Level.LOW: "red",
    }

    @classmethod
    def get_level_color(cls, level: Level) -> str:
        return cls.LEVEL.get(level, "white")

    @classmethod
    def get_confidence_color(cls, level: Level) -> str:
        return cls.CONFIDENCE.get(level, "white")


def format_level(level: Level) -> str:
    color = LevelColors.get_level_color(level)
    return f"[{color}]{level.value}[/{color}]"


def format_percent(value: float | None, good: float = 0.7) -> str:
    """Format a 0..1 ratio as a colored percentage.

    Values at or above ``good`` are green, the rest yellow.
    """
    if value is None:
        return "-"
    color = "green" if value >= good else "yellow"
    return f"[{color}]{value * 100:.1f}%[/{color}]"


# =============================================================================
# Table builders
# =============================================================================


def create_strategies_table(title: str = "Top Strategies") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Strategy", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Success", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Variance", justify="right", style="dim")
    return table


def create_insights_table() -> Table:
    """Create a styled table for ranked insights.

    Returns:
        Rich Table configured for insight display.
    """
    table = Table(title="Learning Insights", show_header=True, header_style="bold")
    table.add_column("Priority", width=8)
    table.add_column("Kind", style="cyan", width=22)
    table.add_column("Confidence", justify="right", width=10)
    table.add_column("Insight", no_wrap=False)
    return table


def create_patterns_table() -> Table:
    table = Table(title="Mined Patterns", show_header=True, header_style="bold")
    table.add_column("Pattern", style="cyan", no_wrap=False)
    table.add_column("Frequency", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Discovered", style="dim")
    return table


def create_clusters_table() -> Table:
    table = Table(title="Workflow Clusters", show_header=True, header_style="bold")
    table.add_column("Cluster", style="cyan", no_wrap=True)
    table.add_column("Size", justify="right")
    table.add_column("Representative Workflow", no_wrap=False)
    return table


def create_improvements_table() -> Table:
    """Create a styled table for improvement recommendations.

    Returns:
        Rich Table configured for improvement display.
    """
    table = Table(title="Improvements", show_header=True, header_style="bold")
    table.add_column("Priority", width=8)
    table.add_column("Area", style="cyan")
    table.add_column("Recommendation", no_wrap=False)
    return table
