"""Settlement cycle orchestrator.

One cycle: authenticate → list pending → per signal (quote → evaluate →
settle → notify). Signals are processed concurrently and independently; a
failure on one signal is logged and never stops the others. Nothing is kept
between cycles except what the store persists.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from signal_settler.common.types import utc_now
from signal_settler.config import Settings, get_settings
from signal_settler.errors import QuoteError, StoreAuthError, StoreError
from signal_settler.notifications.base import Notifier
from signal_settler.notifications.push import PushNotifier
from signal_settler.quotes.base import QuoteSource
from signal_settler.quotes.finnhub import FinnhubQuoteSource
from signal_settler.signals.evaluator import evaluate_signal, is_evaluable
from signal_settler.signals.formatters import (
    notification_body,
    notification_data,
    notification_title,
)
from signal_settler.signals.models import Outcome, SettleResult, Signal
from signal_settler.signals.store import SignalStore

logger = logging.getLogger(__name__)


class SignalResult(Enum):
    """What happened to one signal during a cycle."""

    WON = "won"
    LOST = "lost"
    STILL_PENDING = "still_pending"
    SKIPPED = "skipped"  # non-evaluable price data
    FAILED = "failed"  # quote or store error, retried next cycle
    ALREADY_SETTLED = "already_settled"


@dataclass
class CycleReport:
    """Counters for one settlement cycle."""

    pending: int = 0
    won: int = 0
    lost: int = 0
    still_pending: int = 0
    skipped: int = 0
    failed: int = 0
    already_settled: int = 0
    notified: int = 0
    aborted: bool = False

    @property
    def settled(self) -> int:
        return self.won + self.lost

    def record(self, result: SignalResult, notified: bool) -> None:
        field_name = result.value
        setattr(self, field_name, getattr(self, field_name) + 1)
        if notified:
            self.notified += 1


class SettlementCycle:
    """Reconcile pending signals against current quotes.

    Args:
        store: Signal store, the only writer of status and ended_at
        quotes: Current-price provider
        notifier: Push backend, best-effort
        max_concurrency: Signals processed at once
    """

    def __init__(
        self,
        store: SignalStore,
        quotes: QuoteSource,
        notifier: Notifier,
        max_concurrency: int = 5,
    ) -> None:
        self._store = store
        self._quotes = quotes
        self._notifier = notifier
        self._sem = asyncio.Semaphore(max_concurrency)

    async def run(self) -> CycleReport:
        """Run one full cycle and return its counters."""
        report = CycleReport()

        try:
            await self._store.authenticate()
        except StoreAuthError as exc:
            logger.error("Store authentication failed, aborting cycle: %s", exc)
            report.aborted = True
            return report

        try:
            signals = await self._store.list_pending()
        except StoreError as exc:
            logger.error("Could not list pending signals, aborting cycle: %s", exc)
            report.aborted = True
            return report

        report.pending = len(signals)
        if not signals:
            logger.info("No pending signals")
            return report

        logger.info("Checking %d pending signal(s)", len(signals))
        results = await asyncio.gather(
            *(self._process_throttled(s) for s in signals),
            return_exceptions=True,
        )

        for signal, result in zip(signals, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unhandled error settling signal %s (%s): %r",
                    signal.id, signal.instrument, result,
                )
                report.record(SignalResult.FAILED, False)
            else:
                report.record(*result)

        logger.info(
            "Cycle done: %d won, %d lost, %d pending, %d skipped, %d failed, "
            "%d already settled, %d notified",
            report.won, report.lost, report.still_pending, report.skipped,
            report.failed, report.already_settled, report.notified,
        )
        return report

    async def _process_throttled(self, signal: Signal) -> tuple[SignalResult, bool]:
        async with self._sem:
            try:
                return await self.process_signal(signal)
            except Exception:
                logger.warning(
                    "Unexpected error on signal %s (%s)",
                    signal.id, signal.instrument, exc_info=True,
                )
                return SignalResult.FAILED, False

    async def process_signal(self, signal: Signal) -> tuple[SignalResult, bool]:
        """Quote, evaluate and (when decisive) settle and notify one signal.

        Returns:
            (result, notified)
        """
        if not is_evaluable(signal):
            logger.warning(
                "Signal %s (%s) has no usable target/stop (tp=%s, sl=%s), skipping",
                signal.id, signal.instrument, signal.target_price, signal.stop_price,
            )
            return SignalResult.SKIPPED, False

        try:
            quote = await self._quotes.get_price(signal.instrument)
        except (QuoteError, ValueError) as exc:
            logger.warning("No quote for signal %s (%s): %s", signal.id, signal.instrument, exc)
            return SignalResult.FAILED, False

        outcome = evaluate_signal(signal, quote.price)
        if not outcome.is_decisive:
            logger.debug("Signal %s (%s) still pending at %s", signal.id, signal.instrument, quote.price)
            return SignalResult.STILL_PENDING, False

        logger.info("Signal %s (%s) -> %s at %s", signal.id, signal.instrument, outcome.value, quote.price)

        # Settle and notify run to completion even if this task is cancelled
        try:
            settle_result, notified = await asyncio.shield(
                self._settle_and_notify(signal, outcome, quote.price)
            )
        except StoreError as exc:
            logger.warning("Could not settle signal %s (%s): %s", signal.id, signal.instrument, exc)
            return SignalResult.FAILED, False

        if settle_result is SettleResult.SETTLED:
            result = SignalResult.WON if outcome is Outcome.WON else SignalResult.LOST
            return result, notified
        if settle_result is SettleResult.NOT_FOUND:
            logger.info("Signal %s disappeared before settlement", signal.id)
        else:
            logger.info("Signal %s was already settled by another run", signal.id)
        return SignalResult.ALREADY_SETTLED, False

    async def _settle_and_notify(
        self, signal: Signal, outcome: Outcome, price: Decimal,
    ) -> tuple[SettleResult, bool]:
        ended_at = max(utc_now(), signal.started_at)
        result = await self._store.settle(signal.id, outcome, ended_at)
        if result is not SettleResult.SETTLED:
            return result, False

        token = signal.owner.push_token
        if not token:
            logger.info("No push token for owner %s of signal %s", signal.owner.id, signal.id)
            return result, False

        try:
            sent = await self._notifier.send(
                token,
                notification_title(outcome),
                notification_body(signal, outcome, price, ended_at),
                notification_data(signal, outcome, price),
            )
        except Exception:
            logger.warning("Notifier raised for signal %s", signal.id, exc_info=True)
            sent = False
        if sent:
            logger.info("Notified owner %s of signal %s", signal.owner.id, signal.id)
        return result, sent

    async def close(self) -> None:
        """Close all adapters."""
        await self._quotes.close()
        await self._notifier.close()
        await self._store.close()


def build_cycle(settings: Settings | None = None) -> SettlementCycle:
    """Construct a cycle wired to the configured store, Finnhub and Expo."""
    settings = settings or get_settings()
    settings.validate_for_worker()
    return SettlementCycle(
        store=SignalStore(database_url=settings.database_url, db_path=settings.db_path),
        quotes=FinnhubQuoteSource(
            api_key=settings.finnhub_api_key, base_url=settings.finnhub_api_url,
        ),
        notifier=PushNotifier(
            access_token=settings.push_access_token,
            base_url=settings.push_api_url,
            enabled=settings.push_enabled,
        ),
        max_concurrency=settings.max_concurrency,
    )


async def run_forever(
    run_cycle: Callable[[], Awaitable[CycleReport]],
    interval: float,
    max_cycles: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Run one cycle immediately, then one every ``interval`` seconds.

    Cycles never overlap here; the conditional settle keeps overlapping runs
    from other processes safe. Returns the number of cycles run.
    """
    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        started = time.monotonic()
        try:
            await run_cycle()
        except Exception:
            logger.error("Settlement cycle crashed", exc_info=True)
        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break
        elapsed = time.monotonic() - started
        await sleep(max(0.0, interval - elapsed))
    return cycles
