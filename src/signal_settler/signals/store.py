"""Signal store with PostgreSQL and SQLite backends.

The store is the sole writer of a signal's status and ended_at. Settlement is a
single conditional UPDATE guarded by ``status = 'PENDING'``, so two workers
racing on the same signal produce exactly one write.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import aiosqlite
import asyncpg

from signal_settler.common.types import parse_iso, to_decimal, utc_now
from signal_settler.config import get_settings
from signal_settler.errors import StoreAuthError, StoreError
from signal_settler.signals.models import (
    Direction,
    Outcome,
    Owner,
    SettleResult,
    Signal,
    SignalStatus,
)

logger = logging.getLogger(__name__)

_SQLITE_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    push_token TEXT
);
"""

_SQLITE_CREATE_SIGNALS = """
CREATE TABLE IF NOT EXISTS signals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    pair TEXT NOT NULL,
    direction TEXT NOT NULL,
    entry_price TEXT,
    tp_price TEXT,
    sl_price TEXT,
    status TEXT NOT NULL DEFAULT 'PENDING',
    created_at TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT  -- NULL until settled
);
"""

_PG_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    push_token TEXT
);
"""

_PG_CREATE_SIGNALS = """
CREATE TABLE IF NOT EXISTS signals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    pair TEXT NOT NULL,
    direction TEXT NOT NULL,
    entry_price NUMERIC,
    tp_price NUMERIC,
    sl_price NUMERIC,
    status TEXT NOT NULL DEFAULT 'PENDING',
    created_at TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT  -- NULL until settled
);
"""

_CREATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_signals_status ON signals(status);
"""

_SELECT_SIGNALS = """
SELECT s.id, s.user_id, s.pair, s.direction,
       s.entry_price, s.tp_price, s.sl_price,
       s.status, s.created_at, s.started_at, s.ended_at,
       u.push_token
FROM signals s
LEFT JOIN users u ON u.id = s.user_id
"""


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Translate backend exceptions into StoreError."""
    try:
        yield
    except StoreError:
        raise
    except (aiosqlite.Error, asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        raise StoreError(f"{action} failed: {exc}") from exc


def _price_param(value: Decimal | None, use_pg: bool) -> Decimal | str | None:
    if value is None:
        return None
    return value if use_pg else str(value)


def _row_to_signal(row) -> Signal:
    """Build a Signal from a joined row (aiosqlite.Row or asyncpg.Record)."""
    started_at = parse_iso(row["started_at"]) or parse_iso(row["created_at"])
    return Signal(
        id=str(row["id"]),
        owner=Owner(id=str(row["user_id"]), push_token=row["push_token"] or None),
        instrument=row["pair"],
        direction=Direction(row["direction"]),
        entry_price=to_decimal(row["entry_price"]),
        target_price=to_decimal(row["tp_price"]),
        stop_price=to_decimal(row["sl_price"]),
        status=SignalStatus(row["status"]),
        created_at=parse_iso(row["created_at"]),
        started_at=started_at,
        ended_at=parse_iso(row["ended_at"]),
    )


class SignalStore:
    """Signal store with PostgreSQL (via asyncpg) or SQLite (via aiosqlite) backend."""

    def __init__(self, database_url: str | None = None, db_path: Path | None = None) -> None:
        settings = get_settings()
        self._database_url = settings.database_url if database_url is None else database_url
        self._use_pg = bool(self._database_url)
        self._db_path = db_path or settings.db_path
        self._pool = None  # asyncpg pool, created lazily
        self._pool_lock = asyncio.Lock()
        self._ready = False

    @property
    def backend(self) -> str:
        return "postgresql" if self._use_pg else "sqlite"

    async def _get_pool(self):
        """Get or create the asyncpg connection pool."""
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    self._pool = await asyncpg.create_pool(
                        self._database_url, min_size=1, max_size=5,
                    )
        return self._pool

    async def close(self) -> None:
        """Close the connection pool, if open."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        if self._ready:
            return
        if self._use_pg:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                await conn.execute(_PG_CREATE_USERS)
                await conn.execute(_PG_CREATE_SIGNALS)
                await conn.execute(_CREATE_INDEX)
        else:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_SQLITE_CREATE_USERS)
                await db.execute(_SQLITE_CREATE_SIGNALS)
                await db.execute(_CREATE_INDEX)
                await db.commit()
        self._ready = True

    async def authenticate(self) -> None:
        """Open the backend with the configured credentials and verify it answers.

        Raises:
            StoreAuthError: credentials rejected or backend unreachable.
        """
        try:
            await self._ensure_db()
            if self._use_pg:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")
            else:
                async with aiosqlite.connect(str(self._db_path)) as db:
                    await db.execute("SELECT 1")
        except (
            asyncpg.InvalidPasswordError,
            asyncpg.InvalidAuthorizationSpecificationError,
        ) as exc:
            raise StoreAuthError(f"{self.backend} rejected credentials: {exc}") from exc
        except (aiosqlite.Error, asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise StoreAuthError(f"{self.backend} unavailable: {exc}") from exc

    async def upsert_user(self, user_id: str, push_token: str | None = None) -> None:
        """Create a user or replace its push token."""
        with _store_errors(f"upsert user {user_id}"):
            await self._ensure_db()
            if self._use_pg:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    await conn.execute(
                        """INSERT INTO users (id, push_token) VALUES ($1, $2)
                           ON CONFLICT (id) DO UPDATE SET push_token = EXCLUDED.push_token""",
                        user_id, push_token,
                    )
            else:
                async with aiosqlite.connect(str(self._db_path)) as db:
                    await db.execute(
                        """INSERT INTO users (id, push_token) VALUES (?, ?)
                           ON CONFLICT (id) DO UPDATE SET push_token = excluded.push_token""",
                        (user_id, push_token),
                    )
                    await db.commit()

    async def create_signal(
        self,
        user_id: str,
        instrument: str,
        direction: Direction,
        entry_price: Decimal,
        target_price: Decimal,
        stop_price: Decimal,
        started_at: datetime | None = None,
        signal_id: str | None = None,
    ) -> Signal:
        """Insert a new PENDING signal and return it."""
        if not instrument:
            raise ValueError("instrument must be non-empty")
        now = utc_now()
        started_at = started_at or now
        signal_id = signal_id or uuid.uuid4().hex[:15]
        params = (
            signal_id,
            user_id,
            instrument,
            direction.value,
            _price_param(entry_price, self._use_pg),
            _price_param(target_price, self._use_pg),
            _price_param(stop_price, self._use_pg),
            SignalStatus.PENDING.value,
            now.isoformat(),
            started_at.isoformat(),
        )
        with _store_errors(f"create signal {signal_id}"):
            await self._ensure_db()
            if self._use_pg:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    await conn.execute(
                        """INSERT INTO signals
                           (id, user_id, pair, direction, entry_price, tp_price,
                            sl_price, status, created_at, started_at)
                           VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)""",
                        *params,
                    )
            else:
                async with aiosqlite.connect(str(self._db_path)) as db:
                    await db.execute(
                        """INSERT INTO signals
                           (id, user_id, pair, direction, entry_price, tp_price,
                            sl_price, status, created_at, started_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        params,
                    )
                    await db.commit()

        return Signal(
            id=signal_id,
            owner=Owner(id=user_id),
            instrument=instrument,
            direction=direction,
            entry_price=entry_price,
            target_price=target_price,
            stop_price=stop_price,
            status=SignalStatus.PENDING,
            created_at=now,
            started_at=started_at,
        )

    async def get_signal(self, signal_id: str) -> Signal | None:
        """Get one signal with its owner expanded. Returns None if not found."""
        with _store_errors(f"get signal {signal_id}"):
            await self._ensure_db()
            if self._use_pg:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    row = await conn.fetchrow(_SELECT_SIGNALS + " WHERE s.id = $1", signal_id)
            else:
                async with aiosqlite.connect(str(self._db_path)) as db:
                    db.row_factory = aiosqlite.Row
                    cursor = await db.execute(_SELECT_SIGNALS + " WHERE s.id = ?", (signal_id,))
                    row = await cursor.fetchone()
        return _row_to_signal(row) if row else None

    async def list_pending(self) -> list[Signal]:
        """Get all PENDING signals with owner push tokens, oldest first.

        Rows that cannot be parsed (unknown direction, bad timestamps) are
        logged and left out.
        """
        query = _SELECT_SIGNALS + " WHERE s.status = 'PENDING' ORDER BY s.started_at, s.id"
        with _store_errors("list pending signals"):
            await self._ensure_db()
            if self._use_pg:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    rows = await conn.fetch(query)
            else:
                async with aiosqlite.connect(str(self._db_path)) as db:
                    db.row_factory = aiosqlite.Row
                    cursor = await db.execute(query)
                    rows = await cursor.fetchall()

        signals: list[Signal] = []
        for row in rows:
            try:
                signals.append(_row_to_signal(row))
            except (ValueError, TypeError):
                logger.warning("Skipping malformed signal record %s", row["id"], exc_info=True)
        return signals

    async def settle(self, signal_id: str, outcome: Outcome, ended_at: datetime) -> SettleResult:
        """Move a PENDING signal to WON or LOST in one conditional update.

        Returns:
            SETTLED if this call made the transition, ALREADY_SETTLED if the
            signal exists but is no longer PENDING, NOT_FOUND otherwise.
        """
        if not outcome.is_decisive:
            raise ValueError("cannot settle a signal with a PENDING outcome")
        status = outcome.to_status().value
        ended = ended_at.isoformat()

        with _store_errors(f"settle signal {signal_id}"):
            await self._ensure_db()
            if self._use_pg:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    result = await conn.execute(
                        """UPDATE signals
                           SET status = $1, ended_at = $2
                           WHERE id = $3 AND status = 'PENDING'""",
                        status, ended, signal_id,
                    )
                    # asyncpg returns e.g. "UPDATE 1"
                    updated = int(result.split()[-1])
                    exists = updated or await conn.fetchval(
                        "SELECT 1 FROM signals WHERE id = $1", signal_id,
                    )
            else:
                async with aiosqlite.connect(str(self._db_path)) as db:
                    cursor = await db.execute(
                        """UPDATE signals
                           SET status = ?, ended_at = ?
                           WHERE id = ? AND status = 'PENDING'""",
                        (status, ended, signal_id),
                    )
                    await db.commit()
                    updated = cursor.rowcount
                    exists = updated
                    if not updated:
                        cursor = await db.execute(
                            "SELECT 1 FROM signals WHERE id = ?", (signal_id,),
                        )
                        exists = await cursor.fetchone()

        if updated:
            return SettleResult.SETTLED
        if exists:
            return SettleResult.ALREADY_SETTLED
        return SettleResult.NOT_FOUND

    async def performance_summary(self) -> dict:
        """Count signals by status and compute the win rate of settled ones."""
        query = "SELECT status, COUNT(*) AS n FROM signals GROUP BY status"
        with _store_errors("performance summary"):
            await self._ensure_db()
            if self._use_pg:
                pool = await self._get_pool()
                async with pool.acquire() as conn:
                    rows = await conn.fetch(query)
            else:
                async with aiosqlite.connect(str(self._db_path)) as db:
                    db.row_factory = aiosqlite.Row
                    cursor = await db.execute(query)
                    rows = await cursor.fetchall()

        counts = {row["status"]: row["n"] for row in rows}
        won = counts.get(SignalStatus.WON.value, 0)
        lost = counts.get(SignalStatus.LOST.value, 0)
        settled = won + lost
        return {
            "total_signals": sum(counts.values()),
            "pending": counts.get(SignalStatus.PENDING.value, 0),
            "won": won,
            "lost": lost,
            "win_rate": won / settled if settled > 0 else None,
        }
