"""Tests for settings defaults and environment loading."""

from datetime import timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from fundmon.config import (
    AlertSettings,
    AppSettings,
    EmailSettings,
    ScheduleSettings,
    UpstreamSettings,
    resolve_timezone,
)


def test_defaults() -> None:
    settings = AppSettings()

    assert settings.alerts.threshold_positive == Decimal("3.0")
    assert settings.alerts.threshold_negative == Decimal("-3.0")
    assert settings.upstream.categories == [0, 1, 2, 3]
    assert settings.upstream.pacing_delay_seconds == 60
    assert settings.storage.retention_days == 90
    assert settings.storage.batch_size == 50
    assert settings.schedule.ingest_morning == "0 10 * * *"
    assert settings.schedule.alert_sweep == "0 * * * *"
    assert settings.api.port == 3000


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("ALERT_THRESHOLD_POSITIVE", "2.5")
    monkeypatch.setenv("UPSTREAM_CATEGORIES", "[0, 1]")
    monkeypatch.setenv("SCHEDULE_CLEANUP", "30 22 * * *")

    assert AlertSettings().threshold_positive == Decimal("2.5")
    assert UpstreamSettings().categories == [0, 1]
    assert ScheduleSettings().cleanup == "30 22 * * *"


def test_secret_is_not_rendered(monkeypatch) -> None:
    monkeypatch.setenv("UPSTREAM_TOKEN", "abc123")

    settings = UpstreamSettings()

    assert settings.token.get_secret_value() == "abc123"
    assert "abc123" not in repr(settings)


def test_email_requires_host_and_user() -> None:
    assert EmailSettings(host="smtp.test", user="").is_configured is False
    assert EmailSettings(host="smtp.test", user="me@test").is_configured is True


def test_resolve_timezone() -> None:
    assert resolve_timezone("Asia/Shanghai") == ZoneInfo("Asia/Shanghai")
    assert resolve_timezone("Mars/Olympus") is timezone.utc
