"""``labcache signature FILE...`` — per-file and cumulative signatures."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from labcache.core.accumulator import SignatureAccumulator

console = Console()


def signature_cmd(
    ctx: typer.Context,
    files: list[Path] = typer.Argument(
        ...,
        help="Files to sign, in order. Order changes the cumulative signature.",
    ),
) -> None:
    """Print each file's signature and the cumulative signature of all of them.

    The per-file values are what an experiment definition lists as archive
    signatures; the cumulative value is what a corpus record stores.
    """
    fs = ctx.obj["filesystem"]
    accumulator = SignatureAccumulator()

    table = Table(title="Signatures")
    table.add_column("File", style="cyan")
    table.add_column("SHA-512")

    for path in files:
        try:
            data = fs.read_bytes(path)
        except OSError as exc:
            console.print(f"[bold red]Cannot read[/bold red] {path}: {exc}")
            raise typer.Exit(code=1)
        table.add_row(str(path), accumulator.add(data))

    console.print(table)
    console.print(f"[bold]Cumulative:[/bold] {accumulator.finalize()}")
