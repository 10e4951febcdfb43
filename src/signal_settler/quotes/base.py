"""Quote source protocol."""

from __future__ import annotations

from typing import Protocol

from signal_settler.signals.models import Quote


class QuoteSource(Protocol):
    """Protocol for current-price providers."""

    async def get_price(self, instrument: str) -> Quote:
        """Fetch the current price for one instrument.

        Args:
            instrument: Provider symbol, non-empty

        Returns:
            Quote with a positive price

        Raises:
            QuoteError: the price could not be fetched for this instrument
        """
        ...

    async def close(self) -> None:
        ...
