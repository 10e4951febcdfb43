"""Notification text and console output for signals."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from rich.console import Console
from rich.table import Table

from signal_settler.common.types import utc_now
from signal_settler.signals.models import Direction, Outcome, Signal

_TITLES = {
    Outcome.WON: "Target hit!",
    Outcome.LOST: "Stopped out",
}


def format_duration(delta: timedelta) -> str:
    """Compact human duration: "45s", "12m", "3h 20m", "2d 4h"."""
    seconds = max(0, int(delta.total_seconds()))
    if seconds < 60:
        return f"{seconds}s"
    minutes, _ = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h" if hours else f"{days}d"


def format_price(price: Decimal | None) -> str:
    if price is None:
        return "-"
    return format(price.normalize(), "f")


def notification_title(outcome: Outcome) -> str:
    if not outcome.is_decisive:
        raise ValueError("no notification for a PENDING outcome")
    return _TITLES[outcome]


def notification_body(
    signal: Signal, outcome: Outcome, price: Decimal, ended_at: datetime,
) -> str:
    """One-line body, e.g. "XAUUSD BUY closed as WON at 2055 after 3h 20m"."""
    live_for = format_duration(ended_at - signal.started_at)
    return (
        f"{signal.instrument} {signal.direction.value} closed as {outcome.value} "
        f"at {format_price(price)} after {live_for}"
    )


def notification_data(signal: Signal, outcome: Outcome, price: Decimal) -> dict[str, str]:
    """Structured payload for the app; all values are strings."""
    return {
        "signal_id": signal.id,
        "outcome": outcome.value,
        "instrument": signal.instrument,
        "price": format_price(price),
    }


def format_pending_table(signals: list[Signal], console: Console | None = None) -> None:
    """Print pending signals as a Rich table, oldest first."""
    if console is None:
        console = Console()

    if not signals:
        console.print("[green]No pending signals.[/green]")
        return

    now = utc_now()
    table = Table(title="Pending Signals", show_lines=False)
    table.add_column("ID", width=15)
    table.add_column("Pair", width=14)
    table.add_column("Dir", style="bold", width=4)
    table.add_column("Entry", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Stop", justify="right")
    table.add_column("Live", justify="right")
    table.add_column("Push", width=4)

    for s in signals:
        dir_color = "green" if s.direction is Direction.BUY else "red"
        table.add_row(
            s.id[:15],
            s.instrument,
            f"[{dir_color}]{s.direction.value}[/{dir_color}]",
            format_price(s.entry_price),
            format_price(s.target_price),
            format_price(s.stop_price),
            format_duration(now - s.started_at),
            "yes" if s.owner.push_token else "no",
        )

    console.print(table)
    console.print(f"\n[dim]{len(signals)} pending signal(s)[/dim]")
