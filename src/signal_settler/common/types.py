"""Shared type aliases and conversions."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TypeAlias

# JSON-like dict
JsonDict: TypeAlias = dict[str, object]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(s: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing Z and space separator."""
    if not s:
        return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_decimal(value: object) -> Decimal | None:
    """Convert a stored or wire price to Decimal.

    Floats go through str() so 1.1 stays 1.1 rather than its binary expansion.
    Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result
