"""Improvement and self-optimisation command.

Commands:
- improvements: List suggested improvements, or apply them with --apply
"""

from __future__ import annotations

import json as json_lib

import typer

from ..helpers import open_engine
from ..output import console, create_improvements_table, format_level


def improvements(
    apply: bool = typer.Option(
        False,
        "--apply",
        help="Apply the improvements (re-opens learning for weak strategies) and save",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Show improvement recommendations.

    Examples:
        ostinato improvements
        ostinato improvements --apply
    """
    with open_engine(console, save=apply) as engine:
        if apply:
            result = engine.self_optimize()
            suggested = result.improvements
        else:
            result = None
            suggested = engine.generate_improvements()

    if json_output:
        payload = result.to_dict() if result else [i.to_dict() for i in suggested]
        typer.echo(json_lib.dumps(payload, indent=2))
        return

    if not suggested:
        console.print("[green]No improvements suggested.[/green]")
        return

    table = create_improvements_table()
    for improvement in suggested:
        table.add_row(
            format_level(improvement.priority), improvement.area, improvement.recommendation
        )
    console.print(table)

    if result is not None:
        console.print(
            f"\n[bold]Applied {result.applied_count} of {len(suggested)} improvements.[/bold]"
        )
        for optimization in result.optimizations:
            console.print(f"  [cyan]{optimization.area}[/cyan]: {optimization.action}")
