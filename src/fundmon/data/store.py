"""Typed SQLite read/write abstraction for fund observations.

FundRecordStore owns every SQL statement touching ``fund_records``.
Writes are idempotent on the natural key ``(code, source_updated_at)``:
the UNIQUE constraint is the only thing preventing duplicate observations,
so retried or overlapping runs are safe without row locks.

CRITICAL: Decimal values are stored as TEXT and restored as Decimal on read.
Numeric filters and ordering CAST them to REAL inside SQL.
"""

import sqlite3
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from fundmon.data.database import FundDatabase
from fundmon.exceptions import PersistenceError
from fundmon.logging import get_logger
from fundmon.models import FundCategory, FundRecord, LatestFilters, StoreResult

logger = get_logger(__name__)

_COLUMNS = (
    "code",
    "name",
    "category",
    "valuation",
    "discount_rate",
    "estimate_limit",
    "market_price",
    "price_change_pct",
    "source_updated_at",
    "remind_enabled",
    "watcher_id",
    "watch_started_at",
    "pause_state",
    "note",
    "net_asset_flag",
    "decline_count",
    "trade_amount",
    "total_shares",
    "share_delta",
    "ingested_at",
)

_INSERT_SQL = (
    f"INSERT INTO fund_records ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)

_LATEST_JOIN = (
    "FROM fund_records f1 "
    "INNER JOIN ("
    "  SELECT code, MAX(source_updated_at) AS max_ts FROM fund_records GROUP BY code"
    ") f2 ON f1.code = f2.code AND f1.source_updated_at = f2.max_ts"
)

_DECIMAL_FIELDS = {
    "valuation",
    "discount_rate",
    "estimate_limit",
    "market_price",
    "price_change_pct",
    "trade_amount",
    "total_shares",
    "share_delta",
}


def to_db_timestamp(value: datetime) -> str:
    """Fixed-width UTC text so lexical order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def from_db_timestamp(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)


def _select_columns(alias: str = "") -> str:
    prefix = f"{alias}." if alias else ""
    return ", ".join(f"{prefix}{col}" for col in _COLUMNS)


def _record_params(record: FundRecord, ingested_at: datetime) -> tuple:
    return (
        record.code,
        record.name,
        int(record.category),
        str(record.valuation),
        str(record.discount_rate),
        str(record.estimate_limit),
        str(record.market_price),
        str(record.price_change_pct),
        to_db_timestamp(record.source_updated_at),
        1 if record.remind_enabled else 0,
        record.watcher_id,
        record.watch_started_at,
        record.pause_state,
        record.note,
        1 if record.net_asset_flag else 0,
        record.decline_count,
        str(record.trade_amount),
        str(record.total_shares),
        str(record.share_delta),
        to_db_timestamp(ingested_at),
    )


def _row_to_record(row: tuple) -> FundRecord:
    values: dict[str, Any] = dict(zip(_COLUMNS, row))
    for name in _DECIMAL_FIELDS:
        values[name] = Decimal(values[name])
    try:
        values["category"] = FundCategory(values["category"])
    except ValueError:
        values["category"] = FundCategory.LOF
    values["remind_enabled"] = bool(values["remind_enabled"])
    values["net_asset_flag"] = bool(values["net_asset_flag"])
    values["source_updated_at"] = from_db_timestamp(values["source_updated_at"])
    values["ingested_at"] = from_db_timestamp(values["ingested_at"])
    return FundRecord(**values)


def _is_duplicate(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(exc).upper()


class FundRecordStore:
    """Async store for fund observations.

    Usage:
        async with FundDatabase("data/funds.db") as database:
            store = FundRecordStore(database)
            result = await store.store(records)
    """

    def __init__(
        self,
        database: FundDatabase,
        batch_size: int = 50,
        progress_every: int = 10,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._database = database
        self._batch_size = batch_size
        self._progress_every = max(progress_every, 1)

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def store(
        self,
        records: list[FundRecord],
        check_existing: bool = False,
    ) -> StoreResult:
        """Persist records in batches, skipping natural-key duplicates.

        Each batch is inserted in one transaction. When that fails for any
        reason the batch is retried row by row, so one bad record only costs
        itself. With ``check_existing`` each record is looked up before the
        batches are built and existing keys are skipped up front.

        Never raises for row-level problems; they end up in the counts.
        """
        result = StoreResult()
        if not records:
            logger.warning("store_no_records")
            return result

        pending = list(records)
        if check_existing:
            fresh: list[FundRecord] = []
            for record in pending:
                if await self.exists(record.code, record.source_updated_at):
                    result.skipped += 1
                    logger.debug(
                        "duplicate_skipped",
                        code=record.code,
                        source_updated_at=record.source_updated_at.isoformat(),
                    )
                else:
                    fresh.append(record)
            pending = fresh

        processed = result.skipped
        total = len(records)

        for start in range(0, len(pending), self._batch_size):
            batch = pending[start : start + self._batch_size]
            ingested_at = datetime.now(timezone.utc)
            try:
                await self._insert_batch(batch, ingested_at)
            except PersistenceError as exc:
                logger.warning(
                    "batch_insert_failed_falling_back",
                    batch_start=start,
                    batch_size=len(batch),
                    error=str(exc),
                )
                batch_result = await self._insert_individually(batch, ingested_at)
            else:
                batch_result = StoreResult(
                    inserted=len(batch),
                    inserted_records=[replace(r, ingested_at=ingested_at) for r in batch],
                )
            result.merge(batch_result)

            before = processed
            processed += len(batch)
            if processed // self._progress_every > before // self._progress_every:
                logger.debug(
                    "store_progress",
                    processed=processed,
                    total=total,
                    inserted=result.inserted,
                    skipped=result.skipped,
                )

        logger.info(
            "records_stored",
            total=total,
            inserted=result.inserted,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    async def _insert_batch(self, batch: list[FundRecord], ingested_at: datetime) -> None:
        """Insert a whole batch in one transaction or raise PersistenceError."""
        db = self._database.db
        try:
            await db.executemany(
                _INSERT_SQL, [_record_params(r, ingested_at) for r in batch]
            )
            await db.commit()
        except Exception as exc:
            await self._rollback()
            raise PersistenceError(str(exc)) from exc

    async def _insert_individually(
        self, batch: list[FundRecord], ingested_at: datetime
    ) -> StoreResult:
        """Fallback path: one transaction per record."""
        db = self._database.db
        result = StoreResult()

        for record in batch:
            try:
                await db.execute(_INSERT_SQL, _record_params(record, ingested_at))
                await db.commit()
            except sqlite3.IntegrityError as exc:
                await self._rollback()
                if _is_duplicate(exc):
                    result.skipped += 1
                    logger.debug(
                        "duplicate_skipped",
                        code=record.code,
                        source_updated_at=record.source_updated_at.isoformat(),
                    )
                else:
                    result.failed += 1
                    logger.error("record_insert_failed", code=record.code, error=str(exc))
            except Exception as exc:
                await self._rollback()
                result.failed += 1
                logger.error("record_insert_failed", code=record.code, error=str(exc))
            else:
                result.inserted += 1
                result.inserted_records.append(replace(record, ingested_at=ingested_at))

        return result

    async def _rollback(self) -> None:
        try:
            await self._database.db.rollback()
        except Exception:
            logger.warning("rollback_failed", exc_info=True)

    async def exists(self, code: str, source_updated_at: datetime) -> bool:
        """Check whether an observation with this natural key is stored."""
        cursor = await self._database.db.execute(
            "SELECT COUNT(*) FROM fund_records WHERE code = ? AND source_updated_at = ?",
            (code, to_db_timestamp(source_updated_at)),
        )
        row = await cursor.fetchone()
        return bool(row and row[0] > 0)

    async def purge_older_than(
        self, retention_days: int = 90, now: datetime | None = None
    ) -> int:
        """Delete rows ingested more than ``retention_days`` ago. Returns the count."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
        cursor = await self._database.db.execute(
            "DELETE FROM fund_records WHERE ingested_at < ?",
            (to_db_timestamp(cutoff),),
        )
        await self._database.db.commit()
        deleted = cursor.rowcount
        logger.info("old_records_purged", deleted=deleted, retention_days=retention_days)
        return deleted

    async def clear_all(self) -> int:
        """Delete every stored observation. Used before a full re-ingestion."""
        cursor = await self._database.db.execute("DELETE FROM fund_records")
        await self._database.db.commit()
        deleted = cursor.rowcount
        logger.warning("all_records_cleared", deleted=deleted)
        return deleted

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def latest_per_instrument(
        self, filters: LatestFilters | None = None
    ) -> list[FundRecord]:
        """Most recent observation per fund code, highest premium first."""
        filters = filters or LatestFilters()
        conditions: list[str] = []
        params: list = []

        if filters.code:
            conditions.append("f1.code = ?")
            params.append(filters.code)
        if filters.discount_min is not None:
            conditions.append("CAST(f1.discount_rate AS REAL) >= ?")
            params.append(float(filters.discount_min))
        if filters.discount_max is not None:
            conditions.append("CAST(f1.discount_rate AS REAL) <= ?")
            params.append(float(filters.discount_max))
        if filters.category is not None:
            conditions.append("f1.category = ?")
            params.append(int(filters.category))

        query = f"SELECT {_select_columns('f1')} {_LATEST_JOIN}"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY CAST(f1.discount_rate AS REAL) DESC, f1.code ASC"
        if filters.limit:
            query += " LIMIT ?"
            params.append(int(filters.limit))

        cursor = await self._database.db.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def history(
        self, code: str, window_days: int = 30, now: datetime | None = None
    ) -> list[FundRecord]:
        """All observations of ``code`` within the trailing window, newest first."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=window_days)
        cursor = await self._database.db.execute(
            f"SELECT {_select_columns()} FROM fund_records "
            "WHERE code = ? AND source_updated_at >= ? "
            "ORDER BY source_updated_at DESC",
            (code, to_db_timestamp(cutoff)),
        )
        rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def abnormal(self, threshold: Decimal = Decimal("3.0")) -> list[FundRecord]:
        """Latest observations whose absolute discount rate reaches ``threshold``."""
        cursor = await self._database.db.execute(
            f"SELECT {_select_columns('f1')} {_LATEST_JOIN} "
            "WHERE ABS(CAST(f1.discount_rate AS REAL)) >= ? "
            "ORDER BY ABS(CAST(f1.discount_rate AS REAL)) DESC, f1.code ASC",
            (float(threshold),),
        )
        rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def get_data_status(self) -> dict:
        """Aggregate counts and time range for the status endpoint."""
        cursor = await self._database.db.execute(
            "SELECT COUNT(*), COUNT(DISTINCT code), MIN(source_updated_at), "
            "MAX(source_updated_at), MAX(ingested_at) FROM fund_records"
        )
        row = await cursor.fetchone()
        total, funds, earliest, latest, last_ingested = row if row else (0, 0, None, None, None)
        return {
            "total_records": total,
            "total_funds": funds,
            "earliest_observation": earliest,
            "latest_observation": latest,
            "last_ingested_at": last_ingested,
        }
