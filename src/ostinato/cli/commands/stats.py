"""Learning statistics command.

Commands:
- stats: Summary of the engine's recorded actions, strategies and patterns
"""

from __future__ import annotations

import json as json_lib

import typer

from ..helpers import open_engine
from ..output import console, create_strategies_table, format_percent


def stats(
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """View learning statistics.

    Examples:
        ostinato stats         # Human-readable summary
        ostinato stats --json  # JSON output for scripting
    """
    with open_engine(console) as engine:
        snapshot = engine.get_stats()

    if json_output:
        typer.echo(json_lib.dumps(snapshot.to_dict(), indent=2))
        return

    console.print("[bold]Learning Statistics[/bold]\n")

    console.print("[bold cyan]Actions[/bold cyan]")
    console.print(f"  Total recorded: [green]{snapshot.total_actions}[/green]")
    console.print(f"  Success rate: {format_percent(snapshot.success_rate)}")
    console.print(f"  Avg quality: {format_percent(snapshot.avg_quality)}")
    console.print(f"  Avg efficiency: {format_percent(snapshot.avg_efficiency)}")
    rate = snapshot.improvement_rate
    rate_color = "green" if rate >= 0 else "red"
    console.print(f"  Improvement vs baseline: [{rate_color}]{rate:+.1f}%[/{rate_color}]")

    console.print("\n[bold cyan]Learned State[/bold cyan]")
    console.print(f"  Strategies: [yellow]{snapshot.strategies_learned}[/yellow]")
    console.print(f"  Knowledge nodes: {snapshot.knowledge_nodes}")
    console.print(f"  Predictor weight sets: {snapshot.predictor_weight_sets}")
    console.print(f"  Patterns: {snapshot.patterns}")
    console.print(f"  Sequences: {snapshot.sequences} in {snapshot.clusters} clusters")

    if snapshot.action_type_distribution:
        console.print("\n[bold cyan]Action Types[/bold cyan]")
        distribution = sorted(
            snapshot.action_type_distribution.items(), key=lambda item: item[1], reverse=True
        )
        for action_type, count in distribution:
            console.print(f"  {action_type}: {count}")

    if not snapshot.top_strategies:
        console.print("\n[dim]No strategies learned yet.[/dim]")
        return

    console.print()
    table = create_strategies_table()
    for summary in snapshot.top_strategies:
        table.add_row(
            summary.key,
            summary.action_type,
            format_percent(summary.success_rate),
            format_percent(summary.quality),
            str(summary.attempts),
            f"{summary.variance:.3f}",
        )
    console.print(table)
