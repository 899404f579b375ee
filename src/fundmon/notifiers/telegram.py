"""Telegram bot channel using the Bot API ``sendMessage`` endpoint."""

import asyncio
import html

import aiohttp

from fundmon.alerts.formatting import premium_text, signed_pct
from fundmon.config import TelegramSettings
from fundmon.exceptions import ChannelError
from fundmon.logging import get_logger
from fundmon.models import FundRecord
from fundmon.notifiers.base import NotificationChannel

logger = get_logger(__name__)

# Telegram rejects messages longer than this
MAX_MESSAGE_LENGTH = 4096
MAX_TITLE_LENGTH = 256
ELLIPSIS = "…"


def escape_within(text: str, limit: int) -> str:
    """HTML-escape ``text`` so the result is at most ``limit`` characters.

    Truncation happens on the plain text, never inside an entity.
    """
    escaped = html.escape(text)
    if len(escaped) <= limit:
        return escaped
    parts: list[str] = []
    used = 0
    for char in text:
        piece = html.escape(char)
        if used + len(piece) > limit - len(ELLIPSIS):
            break
        parts.append(piece)
        used += len(piece)
    return "".join(parts) + ELLIPSIS


def _record_block(index: int, record: FundRecord) -> str:
    return "\n".join([
        f"{index}. <b>{html.escape(record.name)}</b> "
        f"(<code>{html.escape(record.code)}</code>)",
        f"   {premium_text(record.discount_rate)}",
        f"   price {record.market_price} / valuation {record.valuation} "
        f"/ change {signed_pct(record.price_change_pct)}",
    ])


def render_telegram(title: str, message: str, records: list[FundRecord] | None) -> str:
    """HTML parse-mode body within the Bot API limit.

    The message text is cut before escaping and fund entries are dropped
    whole, so the result never contains a split tag or entity.
    """
    heading = f"<b>{escape_within(title, MAX_TITLE_LENGTH)}</b>"
    body = escape_within(message, MAX_MESSAGE_LENGTH - len(heading) - 2)
    text = f"{heading}\n\n{body}"
    if not records:
        return text

    details = "\n\n<b>Fund details:</b>"
    if len(text) + len(details) > MAX_MESSAGE_LENGTH:
        return text
    text += details

    for index, record in enumerate(records, 1):
        block = "\n" + _record_block(index, record)
        remaining = len(records) - index + 1
        more = f"\n{ELLIPSIS} and {remaining} more funds"
        reserve = len(more) if remaining > 1 else 0
        if len(text) + len(block) + reserve > MAX_MESSAGE_LENGTH:
            if len(text) + len(more) <= MAX_MESSAGE_LENGTH:
                text += more
            break
        text += block
    return text


class TelegramChannel(NotificationChannel):
    """Posts alerts to a single chat."""

    name = "telegram"
    BASE_URL = "https://api.telegram.org/bot"

    def __init__(
        self,
        settings: TelegramSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=15)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send(
        self,
        title: str,
        message: str,
        records: list[FundRecord] | None = None,
    ) -> None:
        url = f"{self.BASE_URL}{self._settings.bot_token.get_secret_value()}/sendMessage"
        payload = {
            "chat_id": self._settings.chat_id,
            "text": render_telegram(title, message, records),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        session = self._get_session()
        try:
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise ChannelError(self.name, f"HTTP {response.status}: {body[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ChannelError(self.name, str(exc)) from exc
        logger.info("telegram_message_sent", chat_id=self._settings.chat_id, title=title)
