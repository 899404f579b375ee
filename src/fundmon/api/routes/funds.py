"""Fund observation endpoints: latest listing, rankings, anomalies and history."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from fundmon.api.serialize import record_to_dict
from fundmon.models import FundCategory, FundRecord, LatestFilters

log = structlog.get_logger(__name__)

router = APIRouter()


def _sort_records(
    records: list[FundRecord], key: str, descending: bool
) -> list[FundRecord]:
    if key == "updated":
        return sorted(records, key=lambda r: r.source_updated_at, reverse=descending)
    if key == "change":
        return sorted(records, key=lambda r: r.price_change_pct, reverse=descending)
    return sorted(records, key=lambda r: r.discount_rate, reverse=descending)


@router.get("")
async def list_funds(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    discount_min: Decimal | None = None,
    discount_max: Decimal | None = None,
    category: int | None = None,
    sort: Literal["discount", "updated"] = "discount",
    order: Literal["asc", "desc"] = "desc",
) -> JSONResponse:
    """Latest observation per fund with optional filters."""
    fund_category = None
    if category is not None:
        try:
            fund_category = FundCategory(category)
        except ValueError:
            return JSONResponse(
                status_code=400,
                content={"error": f"unknown category {category}"},
            )

    store = request.app.state.store
    records = await store.latest_per_instrument(
        LatestFilters(
            discount_min=discount_min,
            discount_max=discount_max,
            category=fund_category,
        )
    )
    records = _sort_records(records, sort, descending=order == "desc")[:limit]
    return JSONResponse(content={
        "count": len(records),
        "funds": [record_to_dict(r) for r in records],
    })


@router.get("/abnormal")
async def list_abnormal(
    request: Request,
    threshold: Decimal | None = None,
) -> JSONResponse:
    """Funds whose latest absolute premium/discount reaches the threshold."""
    if threshold is None:
        threshold = request.app.state.settings.alerts.threshold_positive
    records = await request.app.state.store.abnormal(abs(threshold))
    return JSONResponse(content={
        "threshold": str(threshold),
        "count": len(records),
        "funds": [record_to_dict(r) for r in records],
    })


_RANKINGS: dict[str, tuple[str, bool]] = {
    "discount_high": ("discount", True),
    "discount_low": ("discount", False),
    "change_high": ("change", True),
}


@router.get("/ranking")
async def ranking(
    request: Request,
    ranking_type: Literal["discount_high", "discount_low", "change_high"] = Query(
        "discount_high", alias="type"
    ),
    limit: int = Query(10, ge=1, le=100),
) -> JSONResponse:
    key, descending = _RANKINGS[ranking_type]
    records = await request.app.state.store.latest_per_instrument()
    records = _sort_records(records, key, descending)[:limit]
    return JSONResponse(content={
        "type": ranking_type,
        "funds": [record_to_dict(r) for r in records],
    })


@router.get("/{code}")
async def get_fund(code: str, request: Request) -> JSONResponse:
    """Latest observation for a single fund."""
    records = await request.app.state.store.latest_per_instrument(
        LatestFilters(code=code, limit=1)
    )
    if not records:
        log.debug("fund_not_found", code=code)
        return JSONResponse(status_code=404, content={"error": f"fund {code} not found"})
    return JSONResponse(content=record_to_dict(records[0]))


@router.get("/{code}/history")
async def get_fund_history(
    code: str,
    request: Request,
    days: int = Query(30, ge=1, le=365),
) -> JSONResponse:
    records = await request.app.state.store.history(code, window_days=days)
    return JSONResponse(content={
        "code": code,
        "days": days,
        "count": len(records),
        "history": [record_to_dict(r) for r in records],
    })
