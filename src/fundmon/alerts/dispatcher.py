"""Alert fan-out to every registered notification channel.

Every channel is attempted exactly once per dispatch, concurrently, with a
semaphore bounding how many sends are in flight. A failing channel is
logged and reported in its DeliveryOutcome; it never stops the others and
never raises to the caller.
"""

import asyncio

from fundmon.alerts.formatting import (
    format_abnormal_message,
    format_abnormal_title,
    format_single_message,
    format_single_title,
)
from fundmon.logging import get_logger
from fundmon.models import AlertEvent, AlertType, DeliveryOutcome, FundRecord
from fundmon.notifiers.base import NotificationChannel

logger = get_logger(__name__)


class AlertDispatcher:
    """Broadcasts alert events to a fixed list of channels.

    Args:
        channels: Channels built at startup (see ``build_channels``).
        max_concurrency: Upper bound on simultaneous channel sends.
    """

    def __init__(
        self,
        channels: list[NotificationChannel],
        max_concurrency: int = 4,
    ) -> None:
        self._channels = list(channels)
        self._semaphore = asyncio.Semaphore(max(max_concurrency, 1))

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def dispatch(self, events: list[AlertEvent]) -> list[DeliveryOutcome]:
        """Send one summary notification covering all events."""
        if not events:
            return []

        records = [event.record for event in events]
        title = format_abnormal_title(len(records))
        message = format_abnormal_message(records)

        logger.info(
            "dispatching_alerts",
            events=len(events),
            positive=sum(1 for e in events if e.alert_type is AlertType.POSITIVE),
            negative=sum(1 for e in events if e.alert_type is AlertType.NEGATIVE),
            codes=[r.code for r in records],
        )
        return await self.broadcast(title, message, records)

    async def send_single_alert(self, event: AlertEvent) -> list[DeliveryOutcome]:
        """Send a notification about one fund."""
        title = format_single_title(event.alert_type)
        message = format_single_message(event.record, event.alert_type)
        return await self.broadcast(title, message, [event.record])

    async def send_system_alert(self, status: str, message: str) -> list[DeliveryOutcome]:
        """Send an operational notice (startup, shutdown, test)."""
        return await self.broadcast(f"System {status}", message)

    async def broadcast(
        self,
        title: str,
        message: str,
        records: list[FundRecord] | None = None,
    ) -> list[DeliveryOutcome]:
        """Send to all channels concurrently and collect every outcome."""
        outcomes = await asyncio.gather(
            *(self._deliver(channel, title, message, records) for channel in self._channels)
        )
        delivered = sum(1 for o in outcomes if o.success)
        logger.info(
            "broadcast_complete",
            title=title,
            delivered=delivered,
            failed=len(outcomes) - delivered,
        )
        return list(outcomes)

    async def _deliver(
        self,
        channel: NotificationChannel,
        title: str,
        message: str,
        records: list[FundRecord] | None,
    ) -> DeliveryOutcome:
        async with self._semaphore:
            try:
                await channel.send(title, message, records)
            except Exception as exc:
                logger.error(
                    "channel_send_failed",
                    channel=channel.name,
                    error=str(exc),
                    exc_info=True,
                )
                return DeliveryOutcome(channel=channel.name, success=False, error=str(exc))
        logger.debug("channel_send_succeeded", channel=channel.name)
        return DeliveryOutcome(channel=channel.name, success=True)

    async def test_channels(self) -> dict[str, dict]:
        """Send a test message through each channel, one at a time."""
        results: dict[str, dict] = {}
        for channel in self._channels:
            try:
                await channel.send(
                    "Test notification",
                    "This is a test message to verify notification delivery.",
                )
            except Exception as exc:
                results[channel.name] = {"success": False, "error": str(exc)}
                logger.error("channel_test_failed", channel=channel.name, error=str(exc))
            else:
                results[channel.name] = {"success": True}
                logger.info("channel_test_succeeded", channel=channel.name)
        return results

    async def close(self) -> None:
        for channel in self._channels:
            try:
                await channel.close()
            except Exception:
                logger.warning("channel_close_failed", channel=channel.name, exc_info=True)
