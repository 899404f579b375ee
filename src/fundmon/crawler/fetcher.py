"""Listing fetcher for the arbitrage source, one HTTP GET per fund category.

CRITICAL implementation notes:
- The source bans clients that poll quickly. Categories are fetched strictly
  one after another with ``pacing_delay_seconds`` between calls, including
  after a failed category. Never parallelise these requests.
- A rate-limit rejection can arrive as a 200 response without an error code,
  carrying only a free-text ``msg``.
- The listing normally sits at ``data.arbitrageListVos``, but older and
  error-adjacent responses use other shapes (see ``extract_listing``).
"""

import asyncio
from collections import deque
from collections.abc import Iterable
from typing import Any

import aiohttp

from fundmon.config import UpstreamSettings
from fundmon.exceptions import UpstreamError, UpstreamErrorKind
from fundmon.logging import get_logger

logger = get_logger(__name__)

_LISTING_FIELD = "arbitrageListVos"
_ALTERNATE_FIELDS = ("data", "result", "list", "items", "records")
_SUCCESS_CODES = {"0", "200"}

_DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "zh-CN,zh;q=0.9",
    "User-Agent": "Mozilla/5.0 (compatible; fund-premium-monitor/0.1)",
}


def _dict_items(items: list) -> list[dict]:
    return [item for item in items if isinstance(item, dict)]


def _first_nested_list(payload: Any) -> list | None:
    """Breadth-first search for the first list-valued field in a payload."""
    queue: deque = deque([payload])
    while queue:
        node = queue.popleft()
        if not isinstance(node, dict):
            continue
        for value in node.values():
            if isinstance(value, list):
                return value
            if isinstance(value, dict):
                queue.append(value)
    return None


def extract_listing(payload: Any) -> list[dict]:
    """Locate the listing array in a response payload.

    Lookup order: ``data.arbitrageListVos``, a top-level array, the common
    alternate fields, then the first array found anywhere. Returns an empty
    list when nothing matches.
    """
    if isinstance(payload, list):
        return _dict_items(payload)
    if not isinstance(payload, dict):
        return []

    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get(_LISTING_FIELD), list):
        return _dict_items(data[_LISTING_FIELD])

    for key in _ALTERNATE_FIELDS:
        if isinstance(payload.get(key), list):
            return _dict_items(payload[key])

    found = _first_nested_list(payload)
    if found is None:
        logger.warning("listing_not_found", keys=sorted(payload.keys()))
        return []
    logger.info("listing_found_by_fallback", count=len(found))
    return _dict_items(found)


class FundFetcher:
    """Fetches raw fund listings from the upstream source.

    Owns an aiohttp session unless one is injected. Call ``close()`` (or use
    ``async with``) to release it.

    Usage:
        async with FundFetcher(settings.upstream) as fetcher:
            raw = await fetcher.fetch_all_categories()
    """

    def __init__(
        self,
        settings: UpstreamSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "FundFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout_seconds),
                headers=_DEFAULT_HEADERS,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, category: int) -> Any:
        """GET one category and decode the JSON body."""
        headers = {}
        token = self._settings.token.get_secret_value()
        if token:
            headers["token"] = token

        session = self._get_session()
        try:
            async with session.get(
                self._settings.base_url,
                params={self._settings.category_param: str(category)},
                headers=headers,
            ) as response:
                if response.status != 200:
                    raise UpstreamError(
                        UpstreamErrorKind.TRANSPORT,
                        f"HTTP status {response.status}",
                    )
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise UpstreamError(
                UpstreamErrorKind.TRANSPORT, str(exc) or type(exc).__name__
            ) from exc
        except ValueError as exc:
            raise UpstreamError(
                UpstreamErrorKind.TRANSPORT, f"invalid JSON body: {exc}"
            ) from exc

    def _check_payload(self, payload: Any) -> None:
        """Raise for application error codes and rate-limit messages."""
        if not isinstance(payload, dict):
            return

        code = payload.get("code")
        message = payload.get("msg") or payload.get("message") or ""
        if not isinstance(message, str):
            message = str(message)

        if code not in (None, "") and str(code) not in _SUCCESS_CODES:
            raise UpstreamError(
                UpstreamErrorKind.APPLICATION_CODE,
                message or "unknown error",
                code=code,
            )

        lowered = message.casefold()
        if any(phrase.casefold() in lowered for phrase in self._settings.rate_limit_phrases):
            raise UpstreamError(UpstreamErrorKind.RATE_LIMITED, message)

    async def fetch_category(self, category: int) -> list[dict]:
        """Fetch the raw listing for one fund category.

        Raises:
            UpstreamError: transport failure, application error code, or
                rate-limit message.
        """
        logger.info("fetching_category", category=category)
        payload = await self._request(category)

        if not payload:
            logger.warning("empty_payload", category=category)
            return []

        self._check_payload(payload)
        items = extract_listing(payload)

        logger.info("category_fetched", category=category, count=len(items))
        return items

    async def fetch_all_categories(
        self, categories: Iterable[int] | None = None
    ) -> list[dict]:
        """Fetch every category in order, pacing between requests.

        A failure on the first category aborts the whole run. Later failures
        are logged and skipped; results of the other categories are kept.
        Items missing a ``type`` field are tagged with the category they
        were fetched under.
        """
        ordered = list(self._settings.categories if categories is None else categories)
        results: list[dict] = []
        failed: list[int] = []

        for index, category in enumerate(ordered):
            try:
                items = await self.fetch_category(category)
            except Exception as exc:
                if index == 0:
                    logger.error("first_category_failed", category=category, error=str(exc))
                    raise
                failed.append(category)
                logger.warning("category_failed_skipping", category=category, error=str(exc))
            else:
                results.extend({"type": category, **item} for item in items)

            if index < len(ordered) - 1:
                logger.info(
                    "pacing_before_next_category",
                    delay_seconds=self._settings.pacing_delay_seconds,
                    next_category=ordered[index + 1],
                )
                await asyncio.sleep(self._settings.pacing_delay_seconds)

        logger.info(
            "all_categories_fetched",
            total=len(results),
            categories=len(ordered),
            failed_categories=failed,
        )
        return results

    async def test_connection(self) -> bool:
        """Return True when the first configured category can be fetched."""
        category = self._settings.categories[0] if self._settings.categories else 0
        try:
            await self.fetch_category(category)
        except UpstreamError as exc:
            logger.error("upstream_connection_test_failed", error=str(exc))
            return False
        return True
