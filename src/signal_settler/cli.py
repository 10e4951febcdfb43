"""Typer CLI: signal-settler run, once, pending, stats."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from signal_settler.config import Settings
from signal_settler.errors import ConfigError, StoreError

app = typer.Typer(
    name="signal-settler",
    help="Settle pending trading signals against live quotes",
    no_args_is_help=True,
)
console = Console()


def _load_settings(worker: bool = True) -> Settings:
    """Load and validate settings, exiting with code 2 on bad config."""
    from signal_settler.config import get_settings

    try:
        settings = get_settings()
        if worker:
            settings.validate_for_worker()
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration:[/red]\n{exc}")
        raise typer.Exit(code=2)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(code=2)

    logging.basicConfig(
        level=settings.log_level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    return settings


def _run_store_command(coro) -> None:
    try:
        asyncio.run(coro)
    except StoreError as exc:
        console.print(f"[red]Store error:[/red] {exc}")
        raise typer.Exit(code=1)


@app.command()
def run(
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i",
        help="Override seconds between cycles (default from SETTLE_INTERVAL_SECONDS)",
    ),
) -> None:
    """Run one cycle now, then keep settling on a fixed interval."""
    settings = _load_settings()
    if interval is not None and interval <= 0:
        console.print("[red]--interval must be > 0[/red]")
        raise typer.Exit(code=2)
    period = interval or settings.settle_interval_seconds

    async def _run() -> None:
        from signal_settler.settlement import build_cycle, run_forever

        cycle = build_cycle(settings)
        console.print(f"[bold]Settlement worker started, every {period:.0f}s[/bold]")
        try:
            await run_forever(cycle.run, period)
        finally:
            await cycle.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")


@app.command()
def once() -> None:
    """Run a single settlement cycle and print its result."""
    settings = _load_settings()

    async def _run() -> bool:
        from signal_settler.settlement import build_cycle

        cycle = build_cycle(settings)
        try:
            report = await cycle.run()
        finally:
            await cycle.close()

        if report.aborted:
            console.print("[red]Cycle aborted (store unavailable)[/red]")
            return False
        console.print("[bold]Settlement Cycle[/bold]")
        console.print(f"  Pending:         {report.pending}")
        console.print(f"  [green]Won:             {report.won}[/green]")
        console.print(f"  [red]Lost:            {report.lost}[/red]")
        console.print(f"  Still pending:   {report.still_pending}")
        console.print(f"  Skipped:         {report.skipped}")
        console.print(f"  Failed:          {report.failed}")
        console.print(f"  Notified:        {report.notified}")
        return True

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)


@app.command()
def pending() -> None:
    """List pending signals from the store (no quotes fetched)."""
    settings = _load_settings(worker=False)

    async def _run() -> None:
        from signal_settler.signals.formatters import format_pending_table
        from signal_settler.signals.store import SignalStore

        store = SignalStore(database_url=settings.database_url, db_path=settings.db_path)
        try:
            signals = await store.list_pending()
        finally:
            await store.close()
        format_pending_table(signals, console)

    _run_store_command(_run())


@app.command()
def stats() -> None:
    """Show won/lost counts and win rate."""
    settings = _load_settings(worker=False)

    async def _run() -> None:
        from signal_settler.signals.store import SignalStore

        store = SignalStore(database_url=settings.database_url, db_path=settings.db_path)
        try:
            summary = await store.performance_summary()
        finally:
            await store.close()

        console.print("[bold]Signal Performance Summary[/bold]")
        console.print(f"  Total signals:   {summary['total_signals']}")
        console.print(f"  Pending:         {summary['pending']}")
        console.print(f"  Won:             {summary['won']}")
        console.print(f"  Lost:            {summary['lost']}")
        if summary["win_rate"] is not None:
            console.print(f"  Win rate:        {summary['win_rate']:.1%}")
        else:
            console.print("  Win rate:        N/A (nothing settled yet)")

    _run_store_command(_run())


if __name__ == "__main__":
    app()
