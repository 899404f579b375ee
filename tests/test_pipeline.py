"""End-to-end tests for FundPipeline with a real store and mocked upstream."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from factories import RecordingChannel, make_raw_item, make_record

from fundmon.alerts.dispatcher import AlertDispatcher
from fundmon.exceptions import UpstreamError, UpstreamErrorKind
from fundmon.models import AlertType
from fundmon.pipeline import FundPipeline


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def fetcher() -> MagicMock:
    fetcher = MagicMock()
    fetcher.fetch_all_categories = AsyncMock(return_value=[])
    return fetcher


@pytest.fixture
def pipeline(fetcher, store, channel, alert_settings, storage_settings) -> FundPipeline:
    return FundPipeline(
        fetcher,
        store,
        AlertDispatcher([channel]),
        alert_settings,
        storage_settings,
        naive_timezone="Asia/Shanghai",
    )


class TestRunIngestion:
    @pytest.mark.asyncio
    async def test_first_observation_alerts_once(self, pipeline, fetcher, channel, store) -> None:
        raw = make_raw_item(code="501096", discount="3.50", updateTime="2024-01-01T10:00:00Z", type=0)
        fetcher.fetch_all_categories.return_value = [raw]

        report = await pipeline.run_ingestion("test")

        assert (report.fetched, report.valid, report.inserted, report.alerts) == (1, 1, 1, 1)
        [stored] = await store.latest_per_instrument()
        assert stored.discount_rate == Decimal("3.50")
        assert len(channel.sent) == 1
        assert channel.sent[0][2][0].code == "501096"

    @pytest.mark.asyncio
    async def test_repeat_ingestion_does_not_realert(self, pipeline, fetcher, channel) -> None:
        raw = make_raw_item(code="501096", discount="3.50", updateTime="2024-01-01T10:00:00Z")
        fetcher.fetch_all_categories.return_value = [raw]

        await pipeline.run_ingestion("first")
        report = await pipeline.run_ingestion("second")

        assert report.inserted == 0
        assert report.skipped == 1
        assert report.alerts == 0
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_invalid_items_are_dropped(self, pipeline, fetcher, store) -> None:
        fetcher.fetch_all_categories.return_value = [
            make_raw_item(code="501096", discount="0.5"),
            make_raw_item(code="", discount="9"),
        ]

        report = await pipeline.run_ingestion()

        assert report.fetched == 2
        assert report.valid == 1
        assert report.inserted == 1
        assert report.alerts == 0

    @pytest.mark.asyncio
    async def test_no_data_is_a_quiet_run(self, pipeline, channel) -> None:
        report = await pipeline.run_ingestion()

        assert report.fetched == 0
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_first_category_failure_propagates(self, pipeline, fetcher) -> None:
        fetcher.fetch_all_categories.side_effect = UpstreamError(
            UpstreamErrorKind.RATE_LIMITED, "too many requests"
        )

        with pytest.raises(UpstreamError):
            await pipeline.run_ingestion()

    @pytest.mark.asyncio
    async def test_only_new_breaches_alert(self, pipeline, fetcher, channel) -> None:
        fetcher.fetch_all_categories.return_value = [
            make_raw_item(code="501096", discount="3.5", updateTime="2024-01-01T10:00:00Z"),
        ]
        await pipeline.run_ingestion()

        fetcher.fetch_all_categories.return_value = [
            make_raw_item(code="501096", discount="3.5", updateTime="2024-01-01T10:00:00Z"),
            make_raw_item(code="161725", discount="-4.2", updateTime="2024-01-01T10:00:00Z"),
        ]
        report = await pipeline.run_ingestion()

        assert report.alerts == 1
        assert [r.code for r in channel.sent[-1][2]] == ["161725"]


class TestAlertSweep:
    @pytest.mark.asyncio
    async def test_sweep_realerts_every_run(self, pipeline, store, channel) -> None:
        await store.store([
            make_record(code="501096", discount_rate="3.5"),
            make_record(code="161725", discount_rate="-3.0"),
            make_record(code="160216", discount_rate="1.0"),
        ])

        first = await pipeline.run_alert_sweep()
        second = await pipeline.run_alert_sweep()

        assert [(e.record.code, e.alert_type) for e in first] == [
            ("501096", AlertType.POSITIVE),
            ("161725", AlertType.NEGATIVE),
        ]
        assert len(second) == 2
        assert len(channel.sent) == 2

    @pytest.mark.asyncio
    async def test_clean_sweep_sends_nothing(self, pipeline, store, channel) -> None:
        await store.store([make_record(code="160216", discount_rate="1.0")])

        assert await pipeline.run_alert_sweep() == []
        assert channel.sent == []


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_cleanup_uses_retention(self, pipeline, store) -> None:
        await store.store([make_record()])
        assert await pipeline.run_cleanup() == 0

    @pytest.mark.asyncio
    async def test_refresh_clears_then_reingests(self, pipeline, fetcher, store, channel) -> None:
        await store.store([make_record(code="old1")])
        fetcher.fetch_all_categories.return_value = [make_raw_item(code="501096", discount="5")]

        report = await pipeline.refresh_all()

        assert report.label == "manual-refresh"
        assert [r.code for r in await store.latest_per_instrument()] == ["501096"]
        assert len(channel.sent) == 1
