"""Notification channels and the configuration-driven channel builder."""

from fundmon.notifiers.base import NotificationChannel
from fundmon.notifiers.console import ConsoleChannel
from fundmon.notifiers.email import EmailChannel
from fundmon.notifiers.factory import build_channels
from fundmon.notifiers.telegram import TelegramChannel

__all__ = [
    "ConsoleChannel",
    "EmailChannel",
    "NotificationChannel",
    "TelegramChannel",
    "build_channels",
]
