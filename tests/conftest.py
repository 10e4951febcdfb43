"""Shared test fixtures."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from signal_settler.errors import QuoteError
from signal_settler.signals.models import Direction, Owner, Quote, Signal, SignalStatus
from signal_settler.signals.store import SignalStore


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def tmp_db():
    """Create a temporary database path for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_signals.db"


@pytest.fixture
def store(tmp_db):
    """A SQLite-backed store on a temporary database."""
    return SignalStore(database_url="", db_path=tmp_db)


def make_signal(
    signal_id: str = "sig-1",
    instrument: str = "XAUUSD",
    direction: Direction = Direction.BUY,
    entry: str | None = "2000",
    target: str | None = "2050",
    stop: str | None = "1980",
    push_token: str | None = "ExponentPushToken[abc]",
    started_at: datetime | None = None,
) -> Signal:
    started = started_at or datetime.now(timezone.utc) - timedelta(hours=3)
    return Signal(
        id=signal_id,
        owner=Owner(id="user-1", push_token=push_token),
        instrument=instrument,
        direction=direction,
        entry_price=Decimal(entry) if entry is not None else None,
        target_price=Decimal(target) if target is not None else None,
        stop_price=Decimal(stop) if stop is not None else None,
        status=SignalStatus.PENDING,
        created_at=started,
        started_at=started,
    )


class FakeQuoteSource:
    """Quote source returning canned prices; an Exception value is raised."""

    def __init__(self, prices: dict[str, object]) -> None:
        self.prices = prices
        self.calls: list[str] = []
        self.closed = False

    async def get_price(self, instrument: str) -> Quote:
        self.calls.append(instrument)
        value = self.prices.get(instrument)
        if value is None:
            raise QuoteError(instrument, "no price")
        if isinstance(value, Exception):
            raise value
        return Quote(
            instrument=instrument,
            price=Decimal(str(value)),
            fetched_at=datetime.now(timezone.utc),
        )

    async def close(self) -> None:
        self.closed = True


class FakeNotifier:
    """Records every send; returns ``result`` or raises it if it is an Exception."""

    def __init__(self, result: object = True) -> None:
        self.result = result
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, token, title, body, data=None) -> bool:
        self.sent.append({"token": token, "title": title, "body": body, "data": data})
        if isinstance(self.result, Exception):
            raise self.result
        return bool(self.result)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def notifier():
    return FakeNotifier()
