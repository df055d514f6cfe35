"""Command Line Interface for diffmig.

This module provides the ``diffmig`` command: compare two registry migration
archives and print the differences.

Usage:
    diffmig [FLAGS] <old_zip> <new_zip>

Standard output carries only the diff report. Progress and diagnostics go
to standard error.

Exit codes:
    0: No differences found
    1: Differences found
    2: Execution error (bad arguments, load failure, malformed archive)
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from diffmig.domain.ports import DiffMigError, Snapshot
from diffmig.domain.services import Scope, render_report_text
from diffmig.infrastructure.config_manager import ConfigManager
from diffmig.infrastructure.logging_config import setup_logging
from diffmig.infrastructure.report_writer import save_report
from diffmig.infrastructure.settings import (
    APP_DESCRIPTION,
    APP_NAME,
    EXIT_DIFFERENCES_FOUND,
    EXIT_ERROR,
    EXIT_NO_DIFFERENCES,
    Settings,
)
from diffmig.main import run_diff

# Initialize Typer app and Rich consoles
app = typer.Typer(
    name=APP_NAME,
    help=APP_DESCRIPTION,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()
err_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        console.print(Settings().version_string(), markup=False, highlight=False)
        raise typer.Exit()


@app.command(context_settings={"help_option_names": ["-h", "--help"]})
def diff(
    old_zip: Path = typer.Argument(..., help="Archive of the snapshot before migration"),
    new_zip: Path = typer.Argument(..., help="Archive of the snapshot after migration"),
    cdes: bool = typer.Option(False, "--cdes", help="Restrict comparison to clinical_datum/variant records only"),
    debug: bool = typer.Option(False, "--debug", help="Emit verbose diagnostic trace to standard error"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also save the report as JSON or CSV (by extension)"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Threads for the structural differ"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="JSON configuration file used instead of DIFFMIG_* variables"
    ),
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version information"
    ),
) -> None:
    """Find differences between two registry migrations of the same data.

    Examples:
        diffmig old.zip new.zip
        diffmig --cdes --debug old.zip new.zip
        diffmig old.zip new.zip --output report.csv
        diffmig --config diffmig.json old.zip new.zip
    """
    settings = Settings()
    try:
        if config_file is not None:
            manager = ConfigManager.from_file(str(config_file))
        else:
            manager = ConfigManager.from_environment()
        config = manager.get_diff_config(
            scope=Scope.CLINICAL_DATUM_VARIANTS_ONLY if cdes else None,
            debug=True if debug else None,
            workers=workers,
        )
    except (DiffMigError, ValueError, OSError) as e:
        err_console.print(f"[red]✗[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(code=EXIT_ERROR)

    setup_logging(debug=config.debug, use_json=config.log_json, log_level=settings.log_level)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=err_console,
            transient=True,
        ) as progress:
            task = progress.add_task("Loading snapshots...", total=None)

            def on_loaded(snapshot: Snapshot) -> None:
                progress.update(task, description=f"Loaded {escape(snapshot.source)}")

            report = run_diff(str(old_zip), str(new_zip), config, on_loaded=on_loaded)
    except DiffMigError as e:
        err_console.print(f"[red]✗[/red] {escape(str(e))}", highlight=False)
        if config.debug:
            err_console.print_exception()
        raise typer.Exit(code=EXIT_ERROR)

    console.print(
        render_report_text(report).rstrip("\n"),
        markup=False,
        highlight=False,
        emoji=False,
        soft_wrap=True,
    )

    if output is not None:
        save_result = save_report(report, str(output))
        if save_result.is_failure():
            err_console.print(f"[red]✗[/red] {escape(save_result.error)}", highlight=False)
            raise typer.Exit(code=EXIT_ERROR)
        err_console.print(f"[green]✓[/green] Report saved: {escape(save_result.value)}", highlight=False)

    if report.is_empty:
        raise typer.Exit(code=EXIT_NO_DIFFERENCES)
    raise typer.Exit(code=EXIT_DIFFERENCES_FOUND)


if __name__ == "__main__":
    app()
