"""Pattern insights command.

Commands:
- insights: Ranked insights from the knowledge graph, trends and strategies
"""

from __future__ import annotations

import json as json_lib
from typing import Annotated

import typer

from ..helpers import open_engine
from ..output import console, create_insights_table, format_level, format_percent


def insights(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max insights to show")] = 20,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Show ranked insights from the learning data.

    Examples:
        ostinato insights
        ostinato insights --limit 5
        ostinato insights --json
    """
    with open_engine(console) as engine:
        ranked = engine.analyze_patterns()[:limit]

    if json_output:
        typer.echo(json_lib.dumps([i.to_dict() for i in ranked], indent=2))
        return

    if not ranked:
        console.print("[dim]No insights yet. Record some actions and outcomes first.[/dim]")
        return

    table = create_insights_table()
    for insight in ranked:
        table.add_row(
            format_level(insight.priority),
            insight.kind,
            format_percent(insight.confidence),
            insight.message,
        )
    console.print(table)
