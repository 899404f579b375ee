"""Tests for premium/discount threshold evaluation."""

from decimal import Decimal

from factories import make_record

from fundmon.alerts.evaluator import evaluate
from fundmon.models import AlertType

POS = Decimal("3.0")
NEG = Decimal("-3.0")


class TestEvaluate:
    def test_bounds_are_inclusive(self) -> None:
        events = evaluate(
            [make_record(code="a", discount_rate="3.0"), make_record(code="b", discount_rate="-3.0")],
            POS,
            NEG,
        )
        assert [(e.record.code, e.alert_type) for e in events] == [
            ("a", AlertType.POSITIVE),
            ("b", AlertType.NEGATIVE),
        ]

    def test_inside_band_is_quiet(self) -> None:
        records = [
            make_record(code="a", discount_rate="2.99"),
            make_record(code="b", discount_rate="-2.99"),
            make_record(code="c", discount_rate="0"),
        ]
        assert evaluate(records, POS, NEG) == []

    def test_event_carries_threshold(self) -> None:
        [event] = evaluate([make_record(discount_rate="-7.25")], POS, NEG)
        assert event.alert_type is AlertType.NEGATIVE
        assert event.threshold == NEG

    def test_preserves_input_order(self) -> None:
        records = [
            make_record(code="z", discount_rate="-5"),
            make_record(code="m", discount_rate="1"),
            make_record(code="a", discount_rate="9"),
        ]
        assert [e.record.code for e in evaluate(records, POS, NEG)] == ["z", "a"]

    def test_asymmetric_thresholds(self) -> None:
        records = [make_record(code="a", discount_rate="2.0"), make_record(code="b", discount_rate="-2.0")]
        events = evaluate(records, Decimal("1.5"), Decimal("-5.0"))
        assert [e.record.code for e in events] == ["a"]

    def test_accepts_generator(self) -> None:
        events = evaluate((make_record(discount_rate="4") for _ in range(2)), POS, NEG)
        assert len(events) == 2
