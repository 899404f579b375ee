"""JSON conversion helpers for API responses."""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any

from fundmon.models import FundRecord


def to_jsonable(obj: Any) -> Any:
    """Recursively convert Decimal and datetime values for JSON output."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    return obj


def record_to_dict(record: FundRecord) -> dict:
    data = to_jsonable(asdict(record))
    data["category"] = int(record.category)
    return data
