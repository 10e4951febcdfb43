"""Decide whether a signal has hit its target or stop.

Pure functions, no I/O. The target check always runs before the stop check,
so a quote that gaps through both levels settles the signal as WON.
"""

from __future__ import annotations

from decimal import Decimal

from signal_settler.signals.models import Direction, Outcome, Signal


def _is_set(price: Decimal | None) -> bool:
    return price is not None and price > 0


def is_evaluable(signal: Signal) -> bool:
    """True if the signal has a positive target and stop price."""
    return _is_set(signal.target_price) and _is_set(signal.stop_price)


def evaluate(
    direction: Direction,
    entry_price: Decimal | None,
    target_price: Decimal | None,
    stop_price: Decimal | None,
    current_price: Decimal,
) -> Outcome:
    """Evaluate one quote against a signal's levels.

    BUY wins at or above target and loses at or below stop.
    SELL wins at or below target and loses at or above stop.
    A zero, negative or missing target/stop is not evaluable and yields PENDING.
    """
    if not (_is_set(target_price) and _is_set(stop_price)):
        return Outcome.PENDING

    if direction is Direction.BUY:
        if current_price >= target_price:
            return Outcome.WON
        if current_price <= stop_price:
            return Outcome.LOST
    elif direction is Direction.SELL:
        if current_price <= target_price:
            return Outcome.WON
        if current_price >= stop_price:
            return Outcome.LOST

    return Outcome.PENDING


def evaluate_signal(signal: Signal, current_price: Decimal) -> Outcome:
    return evaluate(
        signal.direction,
        signal.entry_price,
        signal.target_price,
        signal.stop_price,
        current_price,
    )
