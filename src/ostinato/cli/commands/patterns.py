"""Mined pattern and workflow cluster commands.

Commands:
- patterns: Frequent action sequences, workflow clusters and next-action hints
"""

from __future__ import annotations

import json as json_lib
from typing import Annotated

import typer

from ostinato.core.constants import PATTERN_KEY_SEPARATOR

from ..helpers import open_engine
from ..output import (
    console,
    create_clusters_table,
    create_patterns_table,
    format_percent,
)

_ARROW = f" {PATTERN_KEY_SEPARATOR} "


def patterns(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max patterns to show")] = 20,
    clusters: Annotated[
        bool, typer.Option("--clusters", "-c", help="Also show workflow clusters")
    ] = False,
    after: Annotated[
        list[str] | None,
        typer.Option(
            "--after",
            "-a",
            help="Suggest what usually follows these action types (repeatable, in order)",
        ),
    ] = None,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Show mined action patterns.

    Examples:
        ostinato patterns
        ostinato patterns --clusters
        ostinato patterns --after file_read --after code_edit
        ostinato patterns --json
    """
    with open_engine(console) as engine:
        mined = engine.patterns()[:limit]
        workflow_clusters = engine.clusters() if clusters else []
        suggestions = engine.suggest_next(after) if after else []

    if json_output:
        output: dict[str, object] = {"patterns": [p.to_dict() for p in mined]}
        if clusters:
            output["clusters"] = [c.to_dict() for c in workflow_clusters]
        if after:
            output["suggestions"] = [
                {
                    "action": s.action,
                    "confidence": round(s.confidence, 4),
                    "frequency": s.frequency,
                    "pattern": s.pattern,
                    "reason": s.reason,
                }
                for s in suggestions
            ]
        typer.echo(json_lib.dumps(output, indent=2))
        return

    if not mined:
        console.print("[dim]No patterns mined yet.[/dim]")
    else:
        table = create_patterns_table()
        for record in mined:
            table.add_row(
                _ARROW.join(record.pattern),
                str(record.frequency),
                format_percent(record.confidence),
                record.discovered_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    if clusters:
        console.print()
        if not workflow_clusters:
            console.print("[dim]No workflow clusters yet.[/dim]")
        else:
            cluster_table = create_clusters_table()
            for cluster in workflow_clusters:
                cluster_table.add_row(
                    cluster.id,
                    str(len(cluster.members)),
                    _ARROW.join(cluster.representative) or "-",
                )
            console.print(cluster_table)

    if after:
        console.print(f"\n[bold]After[/bold] {_ARROW.join(after)}")
        if not suggestions:
            console.print("  [dim]No suggestions.[/dim]")
        for suggestion in suggestions:
            console.print(
                f"  [cyan]{suggestion.action}[/cyan] "
                f"{format_percent(suggestion.confidence)} [dim]({suggestion.reason})[/dim]"
            )
