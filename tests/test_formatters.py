"""Tests for notification text and console formatters."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from rich.console import Console

from signal_settler.signals.formatters import (
    format_duration,
    format_pending_table,
    format_price,
    notification_body,
    notification_data,
    notification_title,
)
from signal_settler.signals.models import Direction, Outcome

from conftest import make_signal


class TestFormatDuration:
    def test_seconds(self):
        assert format_duration(timedelta(seconds=45)) == "45s"

    def test_minutes(self):
        assert format_duration(timedelta(minutes=12, seconds=30)) == "12m"

    def test_hours_and_minutes(self):
        assert format_duration(timedelta(hours=3, minutes=20)) == "3h 20m"

    def test_whole_hours(self):
        assert format_duration(timedelta(hours=5)) == "5h"

    def test_days(self):
        assert format_duration(timedelta(days=2, hours=4)) == "2d 4h"
        assert format_duration(timedelta(days=1)) == "1d"

    def test_negative_clamped(self):
        assert format_duration(timedelta(seconds=-5)) == "0s"


def test_format_price_strips_exponent():
    assert format_price(Decimal("2055")) == "2055"
    assert format_price(Decimal("1.0800")) == "1.08"
    assert format_price(None) == "-"


def test_titles():
    assert notification_title(Outcome.WON) == "Target hit!"
    assert notification_title(Outcome.LOST) == "Stopped out"
    with pytest.raises(ValueError):
        notification_title(Outcome.PENDING)


def test_body(now):
    signal = make_signal(instrument="XAUUSD", direction=Direction.BUY, started_at=now - timedelta(hours=3, minutes=20))
    body = notification_body(signal, Outcome.WON, Decimal("2055.00"), now)
    assert body == "XAUUSD BUY closed as WON at 2055 after 3h 20m"


def test_data_values_are_strings():
    data = notification_data(make_signal(signal_id="sig-9"), Outcome.LOST, Decimal("1.25"))
    assert data == {"signal_id": "sig-9", "outcome": "LOST", "instrument": "XAUUSD", "price": "1.25"}


def test_pending_table_lists_signals():
    console = Console(record=True, width=140)
    format_pending_table(
        [make_signal("sig-1", "XAUUSD"), make_signal("sig-2", "EURUSD", push_token=None)],
        console,
    )
    text = console.export_text()
    assert "XAUUSD" in text
    assert "EURUSD" in text
    assert "2 pending signal(s)" in text


def test_pending_table_empty():
    console = Console(record=True)
    format_pending_table([], console)
    assert "No pending signals" in console.export_text()
