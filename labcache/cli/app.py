"""Main Typer application — registers all CLI commands.

Entry point: ``labcache`` (pyproject.toml ``[project.scripts]``).
"""

from __future__ import annotations

import typer

from labcache.cli.commands.signature_cmd import signature_cmd
from labcache.cli.commands.status import status_cmd
from labcache.cli.commands.verify import verify_cmd
from labcache.config import LabCacheSettings
from labcache.core.filesystem import filesystem_for_mode
from labcache.logging_setup import configure_logging
from labcache.models.config import ExecutionMode

app = typer.Typer(
    name="labcache",
    help="Inspect and verify a staged, content-addressed experiment cache.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    mode: ExecutionMode = typer.Option(
        None,
        "--mode",
        "-m",
        help="Execution mode: real, simulate or test. Defaults to LABCACHE_MODE.",
        case_sensitive=False,
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level. Defaults to LABCACHE_LOG_LEVEL.",
    ),
) -> None:
    """Resolve settings and build the filesystem backend for subcommands."""
    settings = LabCacheSettings()
    if mode is not None:
        settings = settings.model_copy(update={"mode": mode})
    configure_logging(log_level or settings.log_level)
    ctx.obj = {
        "settings": settings,
        "filesystem": filesystem_for_mode(settings.mode),
    }


app.command(name="status", help="Show the lock state of cache directories.")(status_cmd)
app.command(name="signature", help="Compute per-file and cumulative signatures.")(signature_cmd)
app.command(name="verify", help="Validate the lock record chain of an experiment.")(verify_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
