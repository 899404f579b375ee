"""SMTP email channel.

Sends a multipart message (plain text plus an HTML table of the breaching
funds). smtplib is blocking, so delivery runs in a worker thread.
"""

import asyncio
import html
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr

from fundmon.alerts.formatting import premium_text, signed_pct
from fundmon.config import EmailSettings
from fundmon.exceptions import ChannelError
from fundmon.logging import get_logger
from fundmon.models import FundRecord
from fundmon.notifiers.base import NotificationChannel

logger = get_logger(__name__)


def render_html(title: str, message: str, records: list[FundRecord] | None) -> str:
    """HTML body: the text message followed by one row per fund."""
    parts = [
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">",
        f"<title>{html.escape(title)}</title></head>",
        "<body style=\"font-family: Arial, sans-serif; color: #333;\">",
        f"<h2>{html.escape(title)}</h2>",
        f"<pre style=\"white-space: pre-wrap;\">{html.escape(message)}</pre>",
    ]
    if records:
        parts.append("<table border=\"1\" cellpadding=\"4\" cellspacing=\"0\">")
        parts.append(
            "<tr><th>#</th><th>Fund</th><th>Code</th><th>Premium/discount</th>"
            "<th>Price</th><th>Valuation</th><th>Change</th></tr>"
        )
        for index, record in enumerate(records, 1):
            color = "#dc3545" if record.discount_rate > 0 else "#28a745"
            parts.append(
                "<tr>"
                f"<td>{index}</td>"
                f"<td>{html.escape(record.name)}</td>"
                f"<td>{html.escape(record.code)}</td>"
                f"<td style=\"color: {color};\">{premium_text(record.discount_rate)}</td>"
                f"<td>{record.market_price}</td>"
                f"<td>{record.valuation}</td>"
                f"<td>{signed_pct(record.price_change_pct)}</td>"
                "</tr>"
            )
        parts.append("</table>")
    sent_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    parts.append(f"<p style=\"color: #666;\">Sent by the fund premium monitor at {sent_at}</p>")
    parts.append("</body></html>")
    return "".join(parts)


class EmailChannel(NotificationChannel):
    """Delivers alerts to ``settings.to`` (comma separated) over SMTP."""

    name = "email"

    def __init__(self, settings: EmailSettings) -> None:
        self._settings = settings

    def build_message(
        self, title: str, message: str, records: list[FundRecord] | None = None
    ) -> EmailMessage:
        mail = EmailMessage()
        mail["Subject"] = title
        mail["From"] = formataddr((self._settings.sender_name, self._settings.user))
        mail["To"] = self._settings.to or self._settings.user
        mail.set_content(message)
        mail.add_alternative(render_html(title, message, records), subtype="html")
        return mail

    def _deliver(self, mail: EmailMessage) -> None:
        with smtplib.SMTP(self._settings.host, self._settings.port, timeout=30) as smtp:
            if self._settings.use_tls:
                smtp.starttls()
            password = self._settings.password.get_secret_value()
            if password:
                smtp.login(self._settings.user, password)
            smtp.send_message(mail)

    async def send(
        self,
        title: str,
        message: str,
        records: list[FundRecord] | None = None,
    ) -> None:
        mail = self.build_message(title, message, records)
        try:
            await asyncio.to_thread(self._deliver, mail)
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelError(self.name, str(exc)) from exc
        logger.info("email_sent", to=mail["To"], title=title)
