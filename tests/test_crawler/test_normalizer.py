"""Tests for raw listing normalization and validation."""

from datetime import datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from factories import make_raw_item

from fundmon.crawler.normalizer import (
    normalize_record,
    to_bool,
    to_category,
    to_decimal,
    to_timestamp,
    validate_record,
)
from fundmon.models import FundCategory

SHANGHAI = ZoneInfo("Asia/Shanghai")
NOW = datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)


class TestCoercion:
    def test_decimal_from_string_and_number(self) -> None:
        assert to_decimal("3.50") == Decimal("3.50")
        assert to_decimal(-2.1) == Decimal("-2.1")

    def test_decimal_invalid_values_become_zero(self) -> None:
        for value in (None, "", "abc", "NaN", "inf", True):
            assert to_decimal(value) == Decimal("0")

    def test_bool_string_forms(self) -> None:
        assert to_bool("1") is True
        assert to_bool(1) is True
        assert to_bool("0") is False
        assert to_bool("false") is False
        assert to_bool(None) is False

    def test_unknown_category_maps_to_lof(self) -> None:
        assert to_category("1") is FundCategory.ETF
        assert to_category(3) is FundCategory.SPECIAL
        assert to_category(9) is FundCategory.LOF
        assert to_category(None) is FundCategory.LOF


class TestTimestamp:
    def test_naive_string_read_in_source_zone(self) -> None:
        result = to_timestamp("2026-03-02 10:00:00", SHANGHAI, NOW)
        assert result == datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)

    def test_iso_with_z_suffix(self) -> None:
        result = to_timestamp("2026-03-02T10:00:00Z", SHANGHAI, NOW)
        assert result == datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

    def test_epoch_seconds_and_milliseconds(self) -> None:
        expected = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)
        seconds = int(expected.timestamp())
        assert to_timestamp(seconds, SHANGHAI, NOW) == expected
        assert to_timestamp(seconds * 1000, SHANGHAI, NOW) == expected
        assert to_timestamp(str(seconds * 1000), SHANGHAI, NOW) == expected

    def test_missing_or_garbage_falls_back_to_now(self) -> None:
        assert to_timestamp(None, SHANGHAI, NOW) == NOW
        assert to_timestamp("", SHANGHAI, NOW) == NOW
        assert to_timestamp("yesterday", SHANGHAI, NOW) == NOW

    def test_result_is_utc(self) -> None:
        result = to_timestamp("2026-03-02T10:00:00+08:00", SHANGHAI, NOW)
        assert result.tzinfo == timezone.utc
        assert result.hour == 2


class TestNormalizeRecord:
    def test_maps_all_upstream_fields(self) -> None:
        raw = make_raw_item(
            code="501096",
            discount="3.5",
            type=1,
            openRemind="1",
            wxUserId="u-1",
            intoTime="2026-01-01",
            info="watch",
            nav=1,
            fallNum=2,
        )
        record = normalize_record(raw, naive_tz=SHANGHAI, now=NOW)

        assert record.code == "501096"
        assert record.name == "Fund 501096"
        assert record.category is FundCategory.ETF
        assert record.valuation == Decimal("1.2000")
        assert record.discount_rate == Decimal("3.5")
        assert record.market_price == Decimal("1.2420")
        assert record.price_change_pct == Decimal("0.50")
        assert record.source_updated_at == datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)
        assert record.remind_enabled is True
        assert record.watcher_id == "u-1"
        assert record.watch_started_at == "2026-01-01"
        assert record.note == "watch"
        assert record.net_asset_flag is True
        assert record.decline_count == "2"
        assert record.trade_amount == Decimal("1234.5")
        assert record.share_delta == Decimal("-20")
        assert record.ingested_at is None

    def test_code_is_stripped(self) -> None:
        record = normalize_record(make_raw_item(code=" 160216 "), now=NOW)
        assert record.code == "160216"

    def test_never_raises_on_sparse_item(self) -> None:
        record = normalize_record({}, now=NOW)
        assert record.code == ""
        assert record.discount_rate == Decimal("0")
        assert record.source_updated_at == NOW


class TestValidateRecord:
    def test_complete_record_is_valid(self) -> None:
        assert validate_record(normalize_record(make_raw_item(), now=NOW)) is True

    def test_missing_code_is_invalid(self) -> None:
        assert validate_record(normalize_record(make_raw_item(fundCode=""), now=NOW)) is False

    def test_missing_name_is_invalid(self) -> None:
        assert validate_record(normalize_record(make_raw_item(fundName=None), now=NOW)) is False

    def test_zero_discount_is_still_valid(self) -> None:
        record = normalize_record(make_raw_item(discount="0"), now=NOW)
        assert validate_record(record) is True
