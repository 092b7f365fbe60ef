"""``labcache status DIR...`` — show the lock state of cache directories."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from labcache.core.stage_lock import HardLinkStageLock, LockError, LockState
from labcache.models.lock import LockRecordFormatError

console = Console()

_STATE_STYLE = {
    LockState.PUBLISHED: "green",
    LockState.UNINITIALIZED: "dim",
    LockState.IN_TRANSIT: "yellow",
    LockState.AMBIGUOUS: "bold red",
}


def status_cmd(
    ctx: typer.Context,
    directories: list[Path] = typer.Argument(
        ...,
        help="Cache directories to inspect.",
    ),
) -> None:
    """Show whether each directory is published, in transit, or uninitialized.

    Never takes a lock.  In-transit and ambiguous directories need manual
    recovery before their stage can run again.
    """
    lock = HardLinkStageLock(ctx.obj["filesystem"])

    table = Table(title="Stage Locks")
    table.add_column("Directory", style="cyan")
    table.add_column("State")
    table.add_column("Signature")
    table.add_column("Dependencies")

    needs_attention = False
    for directory in directories:
        state = lock.state(directory)
        signature = ""
        dependencies = ""
        if state == LockState.PUBLISHED:
            try:
                record = lock.peek(directory)
                signature = record.signature[:16] or "[dim](empty)[/dim]"
                dependencies = ", ".join(sorted(record.dependency_signatures))
            except (LockError, LockRecordFormatError) as exc:
                signature = f"[red]{exc}[/red]"
        elif state in (LockState.IN_TRANSIT, LockState.AMBIGUOUS):
            needs_attention = True

        style = _STATE_STYLE[state]
        table.add_row(str(directory), f"[{style}]{state.value}[/{style}]", signature, dependencies)

    console.print(table)
    if needs_attention:
        console.print(
            "[yellow]Some directories hold a .LOCKFILE. If no other process is "
            "running, inspect it and move .LOCKFILE -> LOCKFILE to recover.[/yellow]"
        )
