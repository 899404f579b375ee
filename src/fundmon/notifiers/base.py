"""Abstract notification channel interface.

The dispatcher only knows this contract. Each channel decides how to render
the optional records (plain text, HTML, chat markup).
"""

from abc import ABC, abstractmethod

from fundmon.models import FundRecord


class NotificationChannel(ABC):
    """Abstract base class for alert delivery channels."""

    name: str = "channel"

    @abstractmethod
    async def send(
        self,
        title: str,
        message: str,
        records: list[FundRecord] | None = None,
    ) -> None:
        """Deliver one notification.

        Raises:
            ChannelError: delivery failed.
        """
        ...

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None
