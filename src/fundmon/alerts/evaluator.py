"""Threshold evaluation of fund premium/discount rates."""

from collections.abc import Iterable
from decimal import Decimal

from fundmon.models import AlertEvent, AlertType, FundRecord


def evaluate(
    records: Iterable[FundRecord],
    positive_threshold: Decimal,
    negative_threshold: Decimal,
) -> list[AlertEvent]:
    """Return one AlertEvent per record outside the threshold band.

    Both bounds are inclusive: a premium equal to ``positive_threshold`` or a
    discount equal to ``negative_threshold`` (expected negative) alerts.
    Input order is preserved.
    """
    events: list[AlertEvent] = []
    for record in records:
        if record.discount_rate >= positive_threshold:
            events.append(AlertEvent(record, AlertType.POSITIVE, positive_threshold))
        elif record.discount_rate <= negative_threshold:
            events.append(AlertEvent(record, AlertType.NEGATIVE, negative_threshold))
    return events
