"""Tests for channel registration from settings."""

from fundmon.config import AppSettings, EmailSettings, TelegramSettings
from fundmon.notifiers.factory import build_channels


def test_console_only_by_default() -> None:
    settings = AppSettings(email=EmailSettings(host=""), telegram=TelegramSettings(chat_id=""))
    assert [c.name for c in build_channels(settings)] == ["console"]


def test_configured_channels_are_added() -> None:
    settings = AppSettings(
        email=EmailSettings(host="smtp.test", user="me@test"),
        telegram=TelegramSettings(bot_token="t", chat_id="1"),  # type: ignore[arg-type]
    )
    assert [c.name for c in build_channels(settings)] == ["console", "email", "telegram"]


def test_partial_telegram_config_is_ignored() -> None:
    settings = AppSettings(
        email=EmailSettings(host=""),
        telegram=TelegramSettings(bot_token="t", chat_id=""),  # type: ignore[arg-type]
    )
    assert [c.name for c in build_channels(settings)] == ["console"]
