"""``labcache verify EXPERIMENT_ROOT`` — validate a lock record chain.

Reads the published corpus, sample, config and experiment records and
checks every recorded dependency signature against its upstream record.
Read-only: no lock is taken and nothing is rewritten.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from labcache.core.stage_cache import StageCache
from labcache.core.stage_lock import LockError
from labcache.models.config import CacheLayout
from labcache.models.lock import LockRecordFormatError
from labcache.models.stages import Stage

console = Console()


def verify_cmd(
    ctx: typer.Context,
    experiment_root: Path = typer.Argument(
        ...,
        help="Experiment cache directory (holds the corpus LOCKFILE).",
    ),
    sample: str = typer.Option(
        ...,
        "--sample",
        "-s",
        help="Sample whose chain to verify.",
    ),
    corpus_root: Path = typer.Option(
        None,
        "--corpus-root",
        help="Corpus directory. Defaults to LABCACHE_CORPUS_ROOT.",
    ),
) -> None:
    """Validate corpus -> sample -> config -> experiment; exit 1 on any failure."""
    settings = ctx.obj["settings"]
    layout = CacheLayout(
        experiment_root=experiment_root,
        corpus_root=corpus_root or settings.corpus_root,
    )
    cache = StageCache(layout, [sample], filesystem=ctx.obj["filesystem"])

    try:
        records = cache.published_records(sample)
    except (LockError, LockRecordFormatError) as exc:
        console.print(f"[bold red]Cannot read lock records:[/bold red] {exc}")
        raise typer.Exit(code=1)

    table = Table(title=f"Cache chain for sample '{sample}'")
    table.add_column("Stage", style="cyan")
    table.add_column("Directory")
    table.add_column("Signature")
    for stage in Stage:
        record = records.get(stage)
        shown = "[dim]not published[/dim]"
        if record is not None:
            shown = record.signature[:16] or "[dim](empty)[/dim]"
        table.add_row(stage.value, str(cache.stage_directory(stage, sample)), shown)
    console.print(table)

    failures = cache.verify_chain(sample)
    if failures:
        for failure in failures:
            console.print(f"[bold red]FAIL[/bold red] {failure}")
        raise typer.Exit(code=1)

    console.print("[bold green]Chain is consistent.[/bold green]")
