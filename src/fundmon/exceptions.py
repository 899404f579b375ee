"""Custom exceptions for the fund premium monitor.

Kept in one module so the crawler, store and notifiers can share them
without importing each other.
"""

from enum import Enum


class FundMonitorError(Exception):
    """Base exception for all fund monitor errors."""


class UpstreamErrorKind(str, Enum):
    """Why a listing request was rejected."""

    TRANSPORT = "transport"
    APPLICATION_CODE = "application_code"
    RATE_LIMITED = "rate_limited"


class UpstreamError(FundMonitorError):
    """Raised when the listing source cannot deliver a category."""

    def __init__(
        self,
        kind: UpstreamErrorKind,
        message: str,
        code: int | str | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.code = code
        detail = f"{kind.value}: {message}"
        if code is not None:
            detail += f" (code {code})"
        super().__init__(detail)


class PersistenceError(FundMonitorError):
    """Raised when a batched write cannot be committed.

    The store recovers from it by inserting the batch row by row.
    """


class ChannelError(FundMonitorError):
    """Raised by a notification channel that failed to deliver."""

    def __init__(self, channel: str, message: str) -> None:
        self.channel = channel
        super().__init__(f"{channel}: {message}")
