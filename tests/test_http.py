"""Tests for the shared HTTP client retry policy."""

from __future__ import annotations

import httpx
import pytest

from signal_settler.common.http import _is_retryable


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.com")
    return httpx.HTTPStatusError("err", request=request, response=httpx.Response(code, request=request))


@pytest.mark.parametrize("code", [429, 500, 502, 503, 504])
def test_transient_status_retried(code):
    assert _is_retryable(_status_error(code))


@pytest.mark.parametrize("code", [400, 401, 403, 404])
def test_client_errors_not_retried(code):
    assert not _is_retryable(_status_error(code))


def test_timeouts_and_network_errors_retried():
    assert _is_retryable(httpx.ReadTimeout("slow"))
    assert _is_retryable(httpx.ConnectError("refused"))


def test_other_errors_not_retried():
    assert not _is_retryable(ValueError("bad"))
