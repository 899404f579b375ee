"""Map raw listing items onto FundRecord.

Upstream items use camelCase names and mix strings, numbers and nulls for
the same field. ``normalize_record`` never raises: unparseable numbers
become ``Decimal("0")`` and a missing or unreadable update time becomes
the current wall clock.
"""

from datetime import datetime, timezone, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any

from fundmon.models import FundCategory, FundRecord

_ZERO = Decimal("0")

REQUIRED_FIELDS = ("code", "name", "valuation", "discount_rate")


def to_decimal(value: Any) -> Decimal:
    """Coerce a raw numeric field to Decimal, defaulting to zero."""
    if value is None or isinstance(value, bool):
        return _ZERO
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return _ZERO
    if not result.is_finite():
        return _ZERO
    return result


def to_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return default


def to_bool(value: Any) -> bool:
    """Truthy coercion. The strings "0" and "false" count as False."""
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "null", "none")
    return bool(value)


def to_category(value: Any) -> FundCategory:
    try:
        return FundCategory(to_int(value))
    except ValueError:
        return FundCategory.LOF


def to_timestamp(
    value: Any,
    naive_tz: tzinfo = timezone.utc,
    now: datetime | None = None,
) -> datetime:
    """Parse an upstream timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with or without offset, ``Z`` included),
    ``YYYY-MM-DD HH:MM:SS`` strings and epoch seconds or milliseconds.
    Values without an offset are read in ``naive_tz``.
    """
    fallback = now or datetime.now(timezone.utc)

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.isdigit():
            return to_timestamp(int(text), naive_tz, now)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return fallback
    else:
        return fallback

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=naive_tz)
    return parsed.astimezone(timezone.utc)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def normalize_record(
    raw: dict[str, Any],
    naive_tz: tzinfo = timezone.utc,
    now: datetime | None = None,
) -> FundRecord:
    """Build a FundRecord from one raw listing item."""
    return FundRecord(
        code=str(raw.get("fundCode") or "").strip(),
        name=str(raw.get("fundName") or "").strip(),
        category=to_category(raw.get("type")),
        valuation=to_decimal(raw.get("value")),
        discount_rate=to_decimal(raw.get("discount")),
        estimate_limit=to_decimal(raw.get("estimateLimit")),
        market_price=to_decimal(raw.get("currentPrice")),
        price_change_pct=to_decimal(raw.get("increaseRt")),
        source_updated_at=to_timestamp(raw.get("updateTime"), naive_tz, now),
        remind_enabled=to_bool(raw.get("openRemind")),
        watcher_id=str(raw.get("wxUserId") or ""),
        watch_started_at=_optional_str(raw.get("intoTime")),
        pause_state=to_int(raw.get("isPause")),
        note=_optional_str(raw.get("info")),
        net_asset_flag=to_bool(raw.get("nav")),
        decline_count=_optional_str(raw.get("fallNum")),
        trade_amount=to_decimal(raw.get("amount")),
        total_shares=to_decimal(raw.get("allShare")),
        share_delta=to_decimal(raw.get("incrShare")),
    )


def validate_record(record: FundRecord) -> bool:
    """Return False when a record lacks code, name, valuation or discount rate."""
    for field_name in REQUIRED_FIELDS:
        value = getattr(record, field_name, None)
        if value is None:
            return False
        if isinstance(value, str) and not value:
            return False
    return True
