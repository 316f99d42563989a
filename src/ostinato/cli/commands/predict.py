"""Outcome prediction command.

Commands:
- predict: Predict the outcome of an action before taking it
"""

from __future__ import annotations

import json as json_lib
from typing import Annotated

import typer

from ostinato.core.errors import InvalidActionError

from ..helpers import ErrorMessages, open_engine, parse_pairs
from ..output import LevelColors, console, format_percent


def predict(
    action_type: Annotated[str, typer.Argument(help="Action type, e.g. code_edit")],
    context: Annotated[
        list[str] | None,
        typer.Option("--context", "-c", help="Context KEY=VALUE (repeatable)"),
    ] = None,
    param: Annotated[
        list[str] | None,
        typer.Option("--param", "-p", help="Parameter KEY=VALUE (repeatable)"),
    ] = None,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Predict the outcome of an action and show its tuned parameters.

    Examples:
        ostinato predict code_edit -c language=python
        ostinato predict ai_query -p temperature=0.2 --json
    """
    context_map = parse_pairs(context)
    parameters = parse_pairs(param)

    with open_engine(console) as engine:
        try:
            prediction = engine.predict_outcome(action_type, context_map, parameters)
        except InvalidActionError as e:
            console.print(f"[red]{ErrorMessages.INVALID_ACTION}:[/red] {e}")
            raise typer.Exit(1) from None
        optimized = engine.optimized_parameters(action_type, context_map)

    if json_output:
        output = prediction.to_dict()
        output["optimized_parameters"] = optimized
        typer.echo(json_lib.dumps(output, indent=2))
        return

    color = LevelColors.get_confidence_color(prediction.confidence)
    console.print(f"[bold]Prediction for[/bold] [cyan]{action_type}[/cyan]\n")
    console.print(f"  Confidence: [{color}]{prediction.confidence.value}[/{color}]")
    console.print(f"  Success: {format_percent(prediction.predicted_success)}")
    console.print(f"  Quality: {format_percent(prediction.predicted_quality)}")
    console.print(f"  Efficiency: {format_percent(prediction.predicted_efficiency)}")
    console.print(f"  Based on: {prediction.based_on_attempts} attempts")
    console.print(f"\n[bold]Recommendation:[/bold] {prediction.recommendation}")

    if optimized:
        console.print("\n[bold cyan]Optimized Parameters[/bold cyan]")
        for key, value in sorted(optimized.items()):
            console.print(f"  {key} = {value!r}")
