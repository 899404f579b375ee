"""Configuration system using pydantic-settings with environment variable loading.

Every setting is optional. Defaults reproduce the production deployment:
ingestion at 10:00 and 15:00 Shanghai time, +/-3% alert thresholds and a
90 day retention window.
"""

from datetime import timezone, tzinfo
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class UpstreamSettings(BaseSettings):
    """Arbitrage listing source connection settings."""

    model_config = SettingsConfigDict(env_prefix="UPSTREAM_")

    base_url: str = "http://xiaoyudecqg.cn/htl/mp/api/arbitrage/list"
    token: SecretStr = SecretStr("")
    timeout_seconds: float = 30.0
    pacing_delay_seconds: float = 60.0  # upstream bans clients that poll faster
    categories: list[int] = [0, 1, 2, 3]
    category_param: str = "type"
    rate_limit_phrases: list[str] = [
        "访问太过频繁",
        "请稍后再试",
        "too many requests",
        "rate limit",
    ]
    naive_timezone: str = "Asia/Shanghai"  # zone for timestamps sent without offset


class AlertSettings(BaseSettings):
    """Premium/discount thresholds in percent. Both bounds are inclusive."""

    model_config = SettingsConfigDict(env_prefix="ALERT_")

    threshold_positive: Decimal = Decimal("3.0")
    threshold_negative: Decimal = Decimal("-3.0")
    max_concurrent_channels: int = 4


class ScheduleSettings(BaseSettings):
    """Crontab timetables for the recurring pipeline tasks."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULE_")

    enabled: bool = True
    timezone: str = "Asia/Shanghai"
    ingest_morning: str = "0 10 * * *"
    ingest_afternoon: str = "0 15 * * *"
    cleanup: str = "0 23 * * *"
    alert_sweep: str = "0 * * * *"


class StorageSettings(BaseSettings):
    """SQLite history store configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/funds.db"
    retention_days: int = 90
    batch_size: int = 50
    progress_every: int = 10


class EmailSettings(BaseSettings):
    """SMTP channel settings. The channel is registered only when configured."""

    model_config = SettingsConfigDict(env_prefix="SMTP_")

    host: str = ""
    port: int = 587
    user: str = ""
    password: SecretStr = SecretStr("")
    to: str = ""
    use_tls: bool = True
    sender_name: str = "Fund Premium Monitor"

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user)


class TelegramSettings(BaseSettings):
    """Telegram bot channel settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: SecretStr = SecretStr("")
    chat_id: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token.get_secret_value() and self.chat_id)


class ApiSettings(BaseSettings):
    """Read-only HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3000


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    upstream: UpstreamSettings = UpstreamSettings()
    alerts: AlertSettings = AlertSettings()
    schedule: ScheduleSettings = ScheduleSettings()
    storage: StorageSettings = StorageSettings()
    email: EmailSettings = EmailSettings()
    telegram: TelegramSettings = TelegramSettings()
    api: ApiSettings = ApiSettings()


def resolve_timezone(name: str) -> tzinfo:
    """ZoneInfo for ``name``, or UTC when the zone is unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc
