"""Shared data models for the fund premium monitor.

CRITICAL: All prices, valuations and rates use Decimal. Never use float.
Timestamps are timezone-aware UTC datetimes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum


class FundCategory(IntEnum):
    """Fund structure type as numbered by the listing source."""

    LOF = 0
    ETF = 1
    OTHER = 2
    SPECIAL = 3


class AlertType(str, Enum):
    """Which threshold a record breached."""

    POSITIVE = "positive"  # premium
    NEGATIVE = "negative"  # discount


@dataclass(frozen=True)
class FundRecord:
    """One observation of one fund at one upstream timestamp.

    ``(code, source_updated_at)`` is the natural key. Records are never
    updated once stored. ``ingested_at`` is None until the store writes it.
    """

    code: str
    name: str
    category: FundCategory
    valuation: Decimal
    discount_rate: Decimal  # percent, positive = premium
    estimate_limit: Decimal
    market_price: Decimal
    price_change_pct: Decimal
    source_updated_at: datetime
    remind_enabled: bool = False
    watcher_id: str = ""
    watch_started_at: str | None = None
    pause_state: int = 0
    note: str | None = None
    net_asset_flag: bool = False
    decline_count: str | None = None
    trade_amount: Decimal = Decimal("0")
    total_shares: Decimal = Decimal("0")
    share_delta: Decimal = Decimal("0")
    ingested_at: datetime | None = None

    @property
    def natural_key(self) -> tuple[str, datetime]:
        return (self.code, self.source_updated_at)


@dataclass(frozen=True)
class AlertEvent:
    """A record paired with the threshold it breached at evaluation time."""

    record: FundRecord
    alert_type: AlertType
    threshold: Decimal


@dataclass
class StoreResult:
    """Outcome of a store() call.

    ``skipped`` counts natural-key duplicates, ``failed`` counts rows
    rejected for any other reason. ``inserted_records`` is the freshly
    stored subset, in input order.
    """

    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    inserted_records: list[FundRecord] = field(default_factory=list)

    def merge(self, other: "StoreResult") -> None:
        self.inserted += other.inserted
        self.skipped += other.skipped
        self.failed += other.failed
        self.inserted_records.extend(other.inserted_records)


@dataclass
class LatestFilters:
    """Optional filters for the latest-observation-per-fund query."""

    code: str | None = None
    discount_min: Decimal | None = None
    discount_max: Decimal | None = None
    category: FundCategory | None = None
    limit: int | None = None


@dataclass
class DeliveryOutcome:
    """Result of one channel's delivery attempt during a dispatch."""

    channel: str
    success: bool
    error: str | None = None


@dataclass
class IngestionReport:
    """Summary of one fetch-normalize-store-alert run."""

    label: str
    fetched: int = 0
    valid: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    alerts: int = 0
    duration_seconds: float = 0.0
