"""Tests for the Finnhub quote source."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from signal_settler.errors import QuoteError
from signal_settler.quotes.finnhub import FinnhubQuoteSource


def _client_returning(payload=None, exc: Exception | None = None):
    client = AsyncMock()
    if exc is not None:
        client.get = AsyncMock(side_effect=exc)
    else:
        resp = MagicMock()
        if isinstance(payload, Exception):
            resp.json.side_effect = payload
        else:
            resp.json.return_value = payload
        client.get = AsyncMock(return_value=resp)
    return client


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://finnhub.io/api/v1/quote")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


@pytest.mark.asyncio
async def test_get_price():
    client = _client_returning({"c": 2055.3, "h": 2060, "l": 2001, "o": 2010, "pc": 2003})
    source = FinnhubQuoteSource(api_key="key", client=client)

    quote = await source.get_price("OANDA:XAU_USD")

    assert quote.instrument == "OANDA:XAU_USD"
    assert quote.price == Decimal("2055.3")
    client.get.assert_awaited_once_with(
        "/quote", params={"symbol": "OANDA:XAU_USD", "token": "key"},
    )


@pytest.mark.asyncio
async def test_each_call_fetches():
    client = _client_returning({"c": 1.09})
    source = FinnhubQuoteSource(api_key="key", client=client)

    await source.get_price("EURUSD")
    await source.get_price("EURUSD")

    assert client.get.await_count == 2


@pytest.mark.asyncio
async def test_missing_price_field():
    source = FinnhubQuoteSource(api_key="key", client=_client_returning({"error": "nope"}))
    with pytest.raises(QuoteError) as exc_info:
        await source.get_price("EURUSD")
    assert exc_info.value.instrument == "EURUSD"


@pytest.mark.asyncio
async def test_zero_price_for_unknown_symbol():
    source = FinnhubQuoteSource(api_key="key", client=_client_returning({"c": 0, "d": None}))
    with pytest.raises(QuoteError):
        await source.get_price("NOPE")


@pytest.mark.asyncio
async def test_malformed_json():
    source = FinnhubQuoteSource(api_key="key", client=_client_returning(ValueError("bad json")))
    with pytest.raises(QuoteError, match="malformed"):
        await source.get_price("EURUSD")


@pytest.mark.asyncio
async def test_non_dict_response():
    source = FinnhubQuoteSource(api_key="key", client=_client_returning(["c", 1]))
    with pytest.raises(QuoteError):
        await source.get_price("EURUSD")


@pytest.mark.asyncio
async def test_rate_limited():
    source = FinnhubQuoteSource(api_key="key", client=_client_returning(exc=_status_error(429)))
    with pytest.raises(QuoteError, match="HTTP 429"):
        await source.get_price("EURUSD")


@pytest.mark.asyncio
async def test_network_error():
    source = FinnhubQuoteSource(
        api_key="key", client=_client_returning(exc=httpx.ConnectError("refused")),
    )
    with pytest.raises(QuoteError, match="network error"):
        await source.get_price("EURUSD")


@pytest.mark.asyncio
async def test_timeout():
    source = FinnhubQuoteSource(
        api_key="key", client=_client_returning(exc=httpx.ReadTimeout("slow")),
    )
    with pytest.raises(QuoteError, match="timeout"):
        await source.get_price("EURUSD")


@pytest.mark.asyncio
async def test_empty_symbol_rejected():
    source = FinnhubQuoteSource(api_key="key", client=_client_returning({"c": 1}))
    with pytest.raises(ValueError):
        await source.get_price("")


@pytest.mark.asyncio
async def test_close_closes_client():
    client = _client_returning({"c": 1})
    source = FinnhubQuoteSource(api_key="key", client=client)
    await source.close()
    client.close.assert_awaited_once()
