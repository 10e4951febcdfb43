"""Exception hierarchy for the settlement worker."""

from __future__ import annotations


class SettlerError(Exception):
    """Base class for all signal-settler errors."""


class ConfigError(SettlerError):
    """Configuration is missing or malformed."""


class StoreError(SettlerError):
    """The signal store could not complete a read or write."""


class StoreAuthError(StoreError):
    """The signal store rejected our credentials or is unreachable.

    Fatal for a whole settlement cycle.
    """


class QuoteError(SettlerError):
    """A quote could not be fetched for one instrument."""

    def __init__(self, instrument: str, reason: str) -> None:
        super().__init__(f"{instrument}: {reason}")
        self.instrument = instrument
        self.reason = reason
