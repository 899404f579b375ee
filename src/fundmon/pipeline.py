"""Fetch -> normalize -> store -> evaluate -> dispatch pipeline.

FundPipeline is what the scheduled tasks and the manual refresh endpoint
call. Each stage runs sequentially on the calling task; only the alert
fan-out inside AlertDispatcher runs concurrently.

Alert policy:
  - An ingestion run alerts only on records it actually inserted, so
    re-observing an already stored ``(code, source_updated_at)`` never
    alerts twice from ingestion.
  - The hourly sweep re-reads the latest stored observation per fund and
    alerts on every breach it finds, every time it runs. Funds that stay
    outside the band are reported again each hour as a reminder.
"""

import time
from collections.abc import Iterable

from fundmon.alerts.dispatcher import AlertDispatcher
from fundmon.alerts.evaluator import evaluate
from fundmon.config import AlertSettings, StorageSettings, resolve_timezone
from fundmon.crawler.fetcher import FundFetcher
from fundmon.crawler.normalizer import normalize_record, validate_record
from fundmon.data.store import FundRecordStore
from fundmon.logging import get_logger
from fundmon.models import AlertEvent, FundRecord, IngestionReport

logger = get_logger(__name__)


class FundPipeline:
    """Runs the ingestion, cleanup and alert-sweep stages end to end.

    Args:
        fetcher: Upstream listing fetcher.
        store: Persistence layer.
        dispatcher: Alert fan-out.
        alert_settings: Positive/negative thresholds.
        storage_settings: Retention window.
        naive_timezone: Zone applied to upstream timestamps without offset.
    """

    def __init__(
        self,
        fetcher: FundFetcher,
        store: FundRecordStore,
        dispatcher: AlertDispatcher,
        alert_settings: AlertSettings,
        storage_settings: StorageSettings,
        naive_timezone: str = "UTC",
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._dispatcher = dispatcher
        self._alerts = alert_settings
        self._storage = storage_settings
        self._naive_tz = resolve_timezone(naive_timezone)

    @property
    def store(self) -> FundRecordStore:
        return self._store

    @property
    def fetcher(self) -> FundFetcher:
        return self._fetcher

    @property
    def dispatcher(self) -> AlertDispatcher:
        return self._dispatcher

    def evaluate(self, records: Iterable[FundRecord]) -> list[AlertEvent]:
        return evaluate(
            records,
            self._alerts.threshold_positive,
            self._alerts.threshold_negative,
        )

    async def run_ingestion(self, label: str = "ingestion") -> IngestionReport:
        """Fetch every category, store new observations and alert on them.

        Raises:
            UpstreamError: the first category could not be fetched.
        """
        started = time.monotonic()
        report = IngestionReport(label=label)
        logger.info("ingestion_started", label=label)

        raw_items = await self._fetcher.fetch_all_categories()
        report.fetched = len(raw_items)
        if not raw_items:
            logger.warning("ingestion_no_data", label=label)
            report.duration_seconds = time.monotonic() - started
            return report

        records = [normalize_record(item, naive_tz=self._naive_tz) for item in raw_items]
        valid = []
        for record in records:
            if validate_record(record):
                valid.append(record)
            else:
                logger.warning(
                    "invalid_record_dropped",
                    code=record.code or None,
                    name=record.name or None,
                )
        report.valid = len(valid)
        logger.info("records_validated", valid=len(valid), fetched=len(records))

        result = await self._store.store(valid)
        report.inserted = result.inserted
        report.skipped = result.skipped
        report.failed = result.failed

        events = self.evaluate(result.inserted_records)
        report.alerts = len(events)
        if events:
            await self._dispatcher.dispatch(events)

        report.duration_seconds = time.monotonic() - started
        logger.info(
            "ingestion_complete",
            label=label,
            fetched=report.fetched,
            valid=report.valid,
            inserted=report.inserted,
            skipped=report.skipped,
            failed=report.failed,
            alerts=report.alerts,
            duration_seconds=round(report.duration_seconds, 2),
        )
        return report

    async def run_cleanup(self) -> int:
        """Delete observations older than the retention window."""
        deleted = await self._store.purge_older_than(self._storage.retention_days)
        logger.info(
            "cleanup_complete",
            deleted=deleted,
            retention_days=self._storage.retention_days,
        )
        return deleted

    async def run_alert_sweep(self) -> list[AlertEvent]:
        """Re-check the latest stored observation of every fund.

        ``abnormal`` is queried with the narrower of the two bounds, then the
        evaluator applies each bound to its own side.
        """
        floor = min(self._alerts.threshold_positive, abs(self._alerts.threshold_negative))
        candidates = await self._store.abnormal(floor)
        events = self.evaluate(candidates)
        if events:
            logger.info("alert_sweep_breaches", count=len(events))
            await self._dispatcher.dispatch(events)
        else:
            logger.info("alert_sweep_clean")
        return events

    async def refresh_all(self) -> IngestionReport:
        """Wipe stored history and run a full ingestion."""
        deleted = await self._store.clear_all()
        logger.info("refresh_cleared_history", deleted=deleted)
        return await self.run_ingestion("manual-refresh")
