"""Command-line interface for the page tracker."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Optional

import typer

from .config import TrackerSettings
from .paths import get_db_path

app = typer.Typer(help="Per-file, per-page editor time tracker.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the server."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the server."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the ledger SQLite database."
    ),
    inactivity_seconds: float = typer.Option(
        5.0,
        "--inactivity",
        min=1.0,
        help="Seconds without activity before tracking stops.",
    ),
    save_seconds: Optional[float] = typer.Option(
        None,
        "--save-interval",
        min=5.0,
        help="Local save interval in seconds (defaults to 60).",
    ),
    remote_url: Optional[str] = typer.Option(
        None,
        "--remote-url",
        envvar="PAGE_TRACKER_REMOTE_URL",
        help="Base URL of the remote ledger store.",
    ),
    remote_token: Optional[str] = typer.Option(
        None,
        "--remote-token",
        envvar="PAGE_TRACKER_REMOTE_TOKEN",
        help="Auth token for the remote ledger store.",
    ),
    daily_reset_hour: Optional[int] = typer.Option(
        None,
        "--daily-reset-hour",
        min=0,
        max=23,
        help="Archive and zero the ledger once a day after this hour.",
    ),
    open_docs: bool = typer.Option(
        False,
        "--open-docs/--no-open-docs",
        help="Open the interactive API docs once the server is up.",
    ),
) -> None:
    """Serve the host/UI API with the tracker running in the background."""
    from .server_runner import run_server

    settings = TrackerSettings.from_intervals(
        inactivity_seconds=inactivity_seconds,
        save_seconds=save_seconds,
        daily_reset_hour=daily_reset_hour,
    )
    run_server(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=settings,
        remote_url=remote_url,
        remote_token=remote_token,
        open_docs=open_docs,
    )


@app.command()
def summary(
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the ledger SQLite database.",
    ),
    limit: int = typer.Option(5, "--limit", min=1, help="Rows per section."),
) -> None:
    """Print tracked totals per file and page."""
    from .reporting import SummaryPrinter

    summary_printer = SummaryPrinter(db_path=db_path or get_db_path())
    summary_printer.print_summary(limit=limit)


@app.command()
def reset(
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the ledger SQLite database.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Archive the current ledger under today's date and clear it."""
    from .db import LocalCache
    from .ledger import TimeLedger
    from .models import now_ms
    from .sync import PersistenceSynchronizer

    if not yes:
        typer.confirm("Archive and clear all tracked time?", abort=True)

    cache = LocalCache(db_path or get_db_path())
    try:
        synchronizer = PersistenceSynchronizer(cache, TrackerSettings())
        ledger = TimeLedger()
        synchronizer.load(ledger, now_ms())
        if not synchronizer.archive(date.today(), ledger.snapshot()):
            raise typer.Exit(code=1)
        ledger.clear()
        if not synchronizer.save(ledger, now_ms()):
            raise typer.Exit(code=1)
    finally:
        cache.close()
    typer.echo("Ledger archived and cleared.")
