"""Tests for shared conversions."""

from __future__ import annotations

from datetime import timezone
from decimal import Decimal

from signal_settler.common.types import parse_iso, to_decimal


def test_to_decimal_from_float_keeps_short_form():
    assert to_decimal(1.1) == Decimal("1.1")


def test_to_decimal_passthrough_and_strings():
    assert to_decimal(Decimal("2050")) == Decimal("2050")
    assert to_decimal("1.08") == Decimal("1.08")
    assert to_decimal(0) == Decimal("0")


def test_to_decimal_rejects_junk():
    assert to_decimal(None) is None
    assert to_decimal("") is None
    assert to_decimal("abc") is None
    assert to_decimal(True) is None
    assert to_decimal(float("nan")) is None


def test_parse_iso_variants():
    assert parse_iso(None) is None
    assert parse_iso("") is None
    z = parse_iso("2025-07-05T10:00:00Z")
    assert z.tzinfo is not None
    naive = parse_iso("2025-07-05 10:00:00")
    assert naive.tzinfo is timezone.utc
