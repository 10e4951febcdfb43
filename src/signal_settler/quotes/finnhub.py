"""Finnhub quote API client."""

from __future__ import annotations

import logging

import httpx

from signal_settler.common.http import HttpClient
from signal_settler.common.types import to_decimal, utc_now
from signal_settler.config import get_settings
from signal_settler.errors import QuoteError
from signal_settler.signals.models import Quote

logger = logging.getLogger(__name__)


class FinnhubQuoteSource:
    """Fetch current prices from Finnhub's /quote endpoint.

    One request per call; nothing is cached between signals.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: HttpClient | None = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key or settings.finnhub_api_key
        self._base_url = base_url or settings.finnhub_api_url
        self._client = client

    async def _get_client(self) -> HttpClient:
        if self._client is None:
            self._client = HttpClient(base_url=self._base_url)
        return self._client

    async def get_price(self, instrument: str) -> Quote:
        if not instrument:
            raise ValueError("instrument must be non-empty")

        client = await self._get_client()
        try:
            resp = await client.get(
                "/quote", params={"symbol": instrument, "token": self._api_key},
            )
        except httpx.HTTPStatusError as exc:
            raise QuoteError(instrument, f"HTTP {exc.response.status_code}") from exc
        except httpx.TimeoutException as exc:
            raise QuoteError(instrument, "timeout") from exc
        except httpx.HTTPError as exc:
            raise QuoteError(instrument, f"network error: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise QuoteError(instrument, "malformed JSON response") from exc

        if not isinstance(data, dict) or "c" not in data:
            raise QuoteError(instrument, "response has no current price")

        price = to_decimal(data["c"])
        # Finnhub answers unknown symbols with c=0
        if price is None or price <= 0:
            raise QuoteError(instrument, f"invalid price {data['c']!r}")

        logger.debug("Quote %s = %s", instrument, price)
        return Quote(instrument=instrument, price=price, fetched_at=utc_now())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
