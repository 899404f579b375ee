"""Shared test fixtures for the fund premium monitor."""

from decimal import Decimal

import pytest
import pytest_asyncio

from fundmon.config import (
    AlertSettings,
    AppSettings,
    ScheduleSettings,
    StorageSettings,
    UpstreamSettings,
)
from fundmon.data.database import FundDatabase
from fundmon.data.store import FundRecordStore


@pytest.fixture
def upstream_settings() -> UpstreamSettings:
    return UpstreamSettings(
        base_url="http://upstream.test/api/arbitrage/list",
        token="test-token",  # type: ignore[arg-type]
        pacing_delay_seconds=60,
        categories=[0, 1, 2, 3],
        naive_timezone="Asia/Shanghai",
    )


@pytest.fixture
def alert_settings() -> AlertSettings:
    return AlertSettings(
        threshold_positive=Decimal("3.0"),
        threshold_negative=Decimal("-3.0"),
    )


@pytest.fixture
def storage_settings(tmp_path) -> StorageSettings:
    return StorageSettings(db_path=str(tmp_path / "funds.db"), retention_days=90)


@pytest.fixture
def mock_settings(upstream_settings, alert_settings, storage_settings) -> AppSettings:
    """Return AppSettings with test defaults (no optional channels)."""
    return AppSettings(
        log_level="DEBUG",
        upstream=upstream_settings,
        alerts=alert_settings,
        storage=storage_settings,
        schedule=ScheduleSettings(enabled=False),
    )


@pytest_asyncio.fixture
async def database(storage_settings):
    db = FundDatabase(storage_settings.db_path)
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def store(database) -> FundRecordStore:
    return FundRecordStore(database, batch_size=50, progress_every=10)
