"""Signal data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class Direction(Enum):
    """Trade direction of a signal."""

    BUY = "BUY"
    SELL = "SELL"


class SignalStatus(Enum):
    """Persisted signal status. PENDING moves once to WON or LOST."""

    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"

    @property
    def is_terminal(self) -> bool:
        return self is not SignalStatus.PENDING


class Outcome(Enum):
    """Result of evaluating a signal against one quote."""

    PENDING = "PENDING"  # no decision yet
    WON = "WON"
    LOST = "LOST"

    @property
    def is_decisive(self) -> bool:
        return self is not Outcome.PENDING

    def to_status(self) -> SignalStatus:
        return SignalStatus(self.value)


class SettleResult(Enum):
    """What a conditional settle write did."""

    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"  # record exists but was no longer PENDING
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Owner:
    """The user a signal belongs to, with the push token needed to notify them."""

    id: str
    push_token: str | None = None


@dataclass(frozen=True)
class Signal:
    """A directional trade idea tracked until its target or stop is hit.

    Attributes:
        id: Opaque record ID
        owner: Owning user (expanded with push token)
        instrument: Symbol of the tradable pair, e.g. "OANDA:XAU_USD"
        direction: BUY or SELL
        entry_price: Entry price
        target_price: Take-profit price (stored as tp_price)
        stop_price: Stop-loss price (stored as sl_price)
        status: PENDING, WON or LOST
        created_at: When the record was created
        started_at: When tracking began
        ended_at: When the signal was settled; None while PENDING
    """

    id: str
    owner: Owner
    instrument: str
    direction: Direction
    entry_price: Decimal | None
    target_price: Decimal | None
    stop_price: Decimal | None
    status: SignalStatus
    created_at: datetime
    started_at: datetime
    ended_at: datetime | None = None


@dataclass(frozen=True)
class Quote:
    """Current market price for one instrument, valid at fetch time only."""

    instrument: str
    price: Decimal
    fetched_at: datetime
