"""Plain-text rendering shared by the dispatcher and the channels."""

from datetime import datetime, timezone
from decimal import Decimal

from fundmon.models import AlertType, FundRecord

_TWO_PLACES = Decimal("0.01")


def signed_pct(value: Decimal) -> str:
    rounded = value.quantize(_TWO_PLACES)
    return f"+{rounded}%" if rounded > 0 else f"{rounded}%"


def premium_text(rate: Decimal) -> str:
    """'premium 3.50%' or 'discount 2.10%'."""
    if rate > 0:
        return f"premium {rate.quantize(_TWO_PLACES)}%"
    return f"discount {abs(rate).quantize(_TWO_PLACES)}%"


def record_lines(record: FundRecord) -> list[str]:
    return [
        f"{record.name} ({record.code})",
        f"   Premium/discount: {premium_text(record.discount_rate)}",
        f"   Market price: {record.market_price}",
        f"   Valuation: {record.valuation}",
        f"   Change: {signed_pct(record.price_change_pct)}",
    ]


def format_abnormal_title(count: int) -> str:
    return f"Fund premium/discount alert ({count} funds)"


def format_abnormal_message(records: list[FundRecord], now: datetime | None = None) -> str:
    """Numbered summary of every breaching fund."""
    lines = [f"{len(records)} funds outside the premium/discount band:", ""]
    for index, record in enumerate(records, 1):
        first, *rest = record_lines(record)
        lines.append(f"{index}. {first}")
        lines.extend(rest)
        lines.append("")
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S UTC")
    lines.append(f"Generated at: {stamp}")
    return "\n".join(lines)


def format_single_title(alert_type: AlertType) -> str:
    return "Fund premium alert" if alert_type is AlertType.POSITIVE else "Fund discount alert"


def format_single_message(record: FundRecord, alert_type: AlertType) -> str:
    lines = [
        format_single_title(alert_type),
        "",
        f"Name: {record.name}",
        f"Code: {record.code}",
        f"Premium/discount: {premium_text(record.discount_rate)}",
        f"Market price: {record.market_price}",
        f"Valuation: {record.valuation}",
        f"Change: {signed_pct(record.price_change_pct)}",
        f"Updated: {record.source_updated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
    ]
    return "\n".join(lines)
