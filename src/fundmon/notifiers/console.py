"""Console channel: always registered, writes alerts to stdout."""

import sys
from typing import TextIO

from fundmon.alerts.formatting import record_lines
from fundmon.exceptions import ChannelError
from fundmon.logging import get_logger
from fundmon.models import FundRecord
from fundmon.notifiers.base import NotificationChannel

logger = get_logger(__name__)

_RULE = "=" * 60


class ConsoleChannel(NotificationChannel):
    """Prints a framed alert block to a text stream."""

    name = "console"

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    async def send(
        self,
        title: str,
        message: str,
        records: list[FundRecord] | None = None,
    ) -> None:
        stream = self._stream or sys.stdout
        lines = ["", _RULE, title, _RULE, message]
        if records:
            lines.append("")
            lines.append("Fund details:")
            for index, record in enumerate(records, 1):
                first, *rest = record_lines(record)
                lines.append(f"{index}. {first}")
                lines.extend(rest)
        lines.append(_RULE)
        try:
            stream.write("\n".join(lines) + "\n")
            stream.flush()
        except (OSError, ValueError) as exc:
            raise ChannelError(self.name, str(exc)) from exc
        logger.info("console_notification_sent", title=title)
