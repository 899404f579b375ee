"""Async SQLite database manager for fund observation history.

Uses aiosqlite for non-blocking database operations with WAL mode.
One FundDatabase is created by the entry point and shared by every
pipeline run; nothing in the package holds a global connection.
"""

import os
from typing import Self

import aiosqlite

from fundmon.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS fund_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL,
    name TEXT NOT NULL,
    category INTEGER NOT NULL DEFAULT 0,
    valuation TEXT NOT NULL,
    discount_rate TEXT NOT NULL,
    estimate_limit TEXT NOT NULL DEFAULT '0',
    market_price TEXT NOT NULL DEFAULT '0',
    price_change_pct TEXT NOT NULL DEFAULT '0',
    source_updated_at TEXT NOT NULL,
    remind_enabled INTEGER NOT NULL DEFAULT 0,
    watcher_id TEXT NOT NULL DEFAULT '',
    watch_started_at TEXT,
    pause_state INTEGER NOT NULL DEFAULT 0,
    note TEXT,
    net_asset_flag INTEGER NOT NULL DEFAULT 0,
    decline_count TEXT,
    trade_amount TEXT NOT NULL DEFAULT '0',
    total_shares TEXT NOT NULL DEFAULT '0',
    share_delta TEXT NOT NULL DEFAULT '0',
    ingested_at TEXT NOT NULL,
    UNIQUE (code, source_updated_at)
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_fund_records_code
    ON fund_records(code);

CREATE INDEX IF NOT EXISTS idx_fund_records_discount
    ON fund_records(discount_rate);

CREATE INDEX IF NOT EXISTS idx_fund_records_source_updated
    ON fund_records(source_updated_at);

CREATE INDEX IF NOT EXISTS idx_fund_records_ingested
    ON fund_records(ingested_at);
"""


class FundDatabase:
    """Async SQLite connection manager for the fund history table.

    Usage:
        async with FundDatabase("data/funds.db") as database:
            store = FundRecordStore(database)

    Pass ``":memory:"`` for a throwaway database.
    """

    def __init__(self, db_path: str = "data/funds.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Open the connection, configure pragmas, and create the schema."""
        if self._db_path != ":memory:":
            db_dir = os.path.dirname(self._db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("fund_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("fund_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
