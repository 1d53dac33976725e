"""Storage backend: Protocol definition, SQLite implementation, factory.

Two tables back the system:

- ``coins`` holds the current snapshot per coin (one row per id, upserted).
- ``price_history`` is an append-only log of (coin_id, price, timestamp).

Every numeric column has TEXT affinity. Values go in as positional decimal text
(``0.00000001``, never ``1E-8``) and come back out as ``Decimal(text)``, so
nothing is ever rounded through REAL.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from coinwatch.core.config import StorageConfig
from coinwatch.core.exceptions import StorageError
from coinwatch.core.models import (
    CoinId,
    CoinSnapshot,
    HistoryPoint,
    Slug,
    plain_decimal,
)

logger = logging.getLogger(__name__)

_COIN_COLUMNS: tuple[str, ...] = (
    "id",
    "name",
    "symbol",
    "slug",
    "date_added",
    "max_supply",
    "circulating_supply",
    "cmc_rank",
    "current_price",
    "volume_24h",
    "volume_change_24h",
    "market_cap",
    "percent_change_1h",
    "percent_change_24h",
    "percent_change_7d",
    "percent_change_30d",
    "percent_change_60d",
    "percent_change_90d",
    "last_updated",
)

_DECIMAL_COLUMNS = frozenset(
    {
        "max_supply",
        "circulating_supply",
        "current_price",
        "volume_24h",
        "volume_change_24h",
        "market_cap",
        "percent_change_1h",
        "percent_change_24h",
        "percent_change_7d",
        "percent_change_30d",
        "percent_change_60d",
        "percent_change_90d",
    }
)

_UPSERT_COIN_SQL = (
    f"INSERT INTO coins ({', '.join(_COIN_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COIN_COLUMNS)}) "
    "ON CONFLICT(id) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _COIN_COLUMNS if c != "id")
)


@runtime_checkable
class StorageProtocol(Protocol):
    """Abstract storage interface for coinwatch data."""

    async def upsert_snapshot(self, snapshot: CoinSnapshot) -> None: ...
    async def append_history(
        self, coin_id: CoinId, price: Decimal, timestamp: datetime
    ) -> None: ...
    async def get_snapshot(self, coin_id: CoinId) -> CoinSnapshot | None: ...
    async def get_snapshot_by_slug(self, slug: Slug) -> CoinSnapshot | None: ...
    async def top_by_market_cap(self, limit: int) -> list[CoinSnapshot]: ...
    async def recent_history(
        self, coin_ids: list[CoinId], window: int
    ) -> dict[CoinId, list[HistoryPoint]]: ...
    async def get_history(self, coin_id: CoinId) -> list[HistoryPoint]: ...
    async def get_statistics(self) -> dict: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the storage protocol.

    Uses aiosqlite for async access, WAL mode so the API can read while the
    poller writes, and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS coins (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    slug TEXT NOT NULL UNIQUE,
                    date_added TEXT NOT NULL,
                    max_supply TEXT,
                    circulating_supply TEXT,
                    cmc_rank INTEGER NOT NULL,
                    current_price TEXT NOT NULL,
                    volume_24h TEXT NOT NULL,
                    volume_change_24h TEXT,
                    market_cap TEXT NOT NULL,
                    percent_change_1h TEXT,
                    percent_change_24h TEXT,
                    percent_change_7d TEXT,
                    percent_change_30d TEXT,
                    percent_change_60d TEXT,
                    percent_change_90d TEXT,
                    last_updated TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS price_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    coin_id TEXT NOT NULL REFERENCES coins(id),
                    price TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )""",
                # Indexes
                "CREATE INDEX IF NOT EXISTS idx_price_history_coin_time "
                "ON price_history(coin_id, timestamp)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL + FK, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    async def _rollback(self) -> None:
        if self._db is None:
            return
        try:
            await self._db.rollback()
        except Exception:
            logger.warning("Rollback failed", exc_info=True)

    # --- Snapshot Operations ---

    async def upsert_snapshot(self, snapshot: CoinSnapshot) -> None:
        """Insert the coin or overwrite every mutable field in one statement."""
        try:
            await self._db.execute(_UPSERT_COIN_SQL, self._snapshot_to_row(snapshot))
            await self._db.commit()
        except Exception as e:
            await self._rollback()
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to upsert coin: {e}",
                context={"operation": "upsert", "table": "coins", "coin_id": snapshot.id},
            ) from e

    async def get_snapshot(self, coin_id: CoinId) -> CoinSnapshot | None:
        try:
            async with self._db.execute(
                "SELECT * FROM coins WHERE id = ?", (coin_id,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_snapshot(row) if row is not None else None
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get coin: {e}",
                context={"operation": "query", "table": "coins", "coin_id": coin_id},
            ) from e

    async def get_snapshot_by_slug(self, slug: Slug) -> CoinSnapshot | None:
        try:
            async with self._db.execute(
                "SELECT * FROM coins WHERE slug = ? LIMIT 1", (slug,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_snapshot(row) if row is not None else None
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get coin by slug: {e}",
                context={"operation": "query", "table": "coins", "slug": slug},
            ) from e

    async def top_by_market_cap(self, limit: int) -> list[CoinSnapshot]:
        """Return up to ``limit`` coins, largest market cap first.

        market_cap is decimal text, so it is cast for ordering only. Ties fall
        back to id so repeated calls over unchanged data agree.
        """
        try:
            async with self._db.execute(
                """SELECT * FROM coins
                   ORDER BY CAST(market_cap AS REAL) DESC, id ASC
                   LIMIT ?""",
                (limit,),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_snapshot(r) for r in rows]
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to list coins: {e}",
                context={"operation": "query", "table": "coins"},
            ) from e

    # --- History Operations ---

    async def append_history(
        self, coin_id: CoinId, price: Decimal, timestamp: datetime
    ) -> None:
        try:
            await self._db.execute(
                """INSERT INTO price_history (coin_id, price, timestamp)
                   VALUES (?, ?, ?)""",
                (coin_id, plain_decimal(price), _ts(timestamp)),
            )
            await self._db.commit()
        except Exception as e:
            await self._rollback()
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to append price history: {e}",
                context={"operation": "insert", "table": "price_history", "coin_id": coin_id},
            ) from e

    async def recent_history(
        self, coin_ids: list[CoinId], window: int
    ) -> dict[CoinId, list[HistoryPoint]]:
        """Return the latest ``window`` entries per coin, oldest first.

        One query for all coins: rows are numbered per coin newest-first and
        everything past ``window`` is dropped, so a coin with a long history
        never crowds out the others.

        Coins without history are absent from the result.
        """
        if not coin_ids:
            return {}
        placeholders = ", ".join("?" for _ in coin_ids)
        query = f"""
            WITH ranked AS (
                SELECT id, coin_id, price, timestamp,
                       ROW_NUMBER() OVER (
                           PARTITION BY coin_id
                           ORDER BY timestamp DESC, id DESC
                       ) AS rn
                FROM price_history
                WHERE coin_id IN ({placeholders})
            )
            SELECT coin_id, price, timestamp
            FROM ranked
            WHERE rn <= ?
            ORDER BY coin_id, timestamp ASC, id ASC
        """
        try:
            async with self._db.execute(query, [*coin_ids, window]) as cursor:
                rows = await cursor.fetchall()
            result: dict[CoinId, list[HistoryPoint]] = {}
            for row in rows:
                result.setdefault(row["coin_id"], []).append(self._row_to_point(row))
            return result
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to query recent history: {e}",
                context={"operation": "query", "table": "price_history"},
            ) from e

    async def get_history(self, coin_id: CoinId) -> list[HistoryPoint]:
        """Return every recorded entry for a coin, oldest first."""
        try:
            async with self._db.execute(
                """SELECT price, timestamp FROM price_history
                   WHERE coin_id = ?
                   ORDER BY timestamp ASC, id ASC""",
                (coin_id,),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_point(r) for r in rows]
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to get price history: {e}",
                context={"operation": "query", "table": "price_history", "coin_id": coin_id},
            ) from e

    # --- Statistics ---

    async def get_statistics(self) -> dict:
        """Row counts and the most recent observation time."""
        try:
            async with self._db.execute("SELECT COUNT(*) FROM coins") as cursor:
                coins = (await cursor.fetchone())[0]
            async with self._db.execute(
                "SELECT COUNT(*), MAX(timestamp) FROM price_history"
            ) as cursor:
                history_entries, latest = await cursor.fetchone()
            return {
                "coins": coins,
                "history_entries": history_entries,
                "latest_observation": (
                    datetime.fromisoformat(latest) if latest is not None else None
                ),
            }
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to gather statistics: {e}",
                context={"operation": "query", "table": "coins"},
            ) from e

    # --- Row Mapping Helpers ---

    @staticmethod
    def _snapshot_to_row(snapshot: CoinSnapshot) -> tuple:
        values = []
        for column in _COIN_COLUMNS:
            value = getattr(snapshot, column)
            if column in _DECIMAL_COLUMNS:
                values.append(plain_decimal(value) if value is not None else None)
            elif isinstance(value, datetime):
                values.append(_ts(value))
            else:
                values.append(value)
        return tuple(values)

    @staticmethod
    def _row_to_snapshot(row: aiosqlite.Row) -> CoinSnapshot:
        data = {}
        for column in _COIN_COLUMNS:
            value = row[column]
            if column in _DECIMAL_COLUMNS and value is not None:
                value = Decimal(value)
            data[column] = value
        data["date_added"] = datetime.fromisoformat(row["date_added"])
        data["last_updated"] = datetime.fromisoformat(row["last_updated"])
        return CoinSnapshot(**data)

    @staticmethod
    def _row_to_point(row: aiosqlite.Row) -> HistoryPoint:
        return HistoryPoint(
            price=Decimal(row["price"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )


def _ts(value: datetime) -> str:
    """Fixed-width UTC ISO-8601 so text order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize the storage backend."""
    store = SqliteStore(config)
    await store.initialize()
    return store
