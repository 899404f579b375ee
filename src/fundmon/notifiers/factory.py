"""Build the channel list from configuration.

The console channel is always present. Email and Telegram are added only
when their connection settings are filled in.
"""

from fundmon.config import AppSettings
from fundmon.logging import get_logger
from fundmon.notifiers.base import NotificationChannel
from fundmon.notifiers.console import ConsoleChannel
from fundmon.notifiers.email import EmailChannel
from fundmon.notifiers.telegram import TelegramChannel

logger = get_logger(__name__)


def build_channels(settings: AppSettings) -> list[NotificationChannel]:
    channels: list[NotificationChannel] = [ConsoleChannel()]

    if settings.email.is_configured:
        channels.append(EmailChannel(settings.email))

    if settings.telegram.is_configured:
        channels.append(TelegramChannel(settings.telegram))

    logger.info("channels_built", channels=[c.name for c in channels])
    return channels
