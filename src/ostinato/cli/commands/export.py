"""Learning data export command.

Commands:
- export: Write the learning data as JSON or CSV to stdout or a file
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ostinato.learning.export import EXPORT_FORMATS

from ..helpers import open_engine
from ..output import console


def export(
    format: Annotated[  # noqa: A002
        str,
        typer.Option("--format", "-f", help="Export format: json or csv"),
    ] = "json",
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write to this file instead of stdout"),
    ] = None,
) -> None:
    """Export learning data.

    Examples:
        ostinato export                       # JSON to stdout
        ostinato export --format csv -o actions.csv
    """
    if format not in EXPORT_FORMATS:
        console.print(
            f"[red]Unsupported format {format!r}.[/red] Use one of: {', '.join(EXPORT_FORMATS)}"
        )
        raise typer.Exit(1)

    with open_engine(console) as engine:
        text = engine.export_learning_data(format)

    if output is None:
        typer.echo(text, nl=not text.endswith("\n"))
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]Exported[/green] {format} data to {output}")
