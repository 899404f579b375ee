"""System endpoints: status, masked configuration and manual triggers."""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from fundmon.api.serialize import to_jsonable
from fundmon.exceptions import UpstreamError

log = structlog.get_logger(__name__)

router = APIRouter()


class AlertTestRequest(BaseModel):
    message: str = "This is a test alert from Fund Premium Monitor."


class CleanupRequest(BaseModel):
    days: int = Field(90, ge=1)


@router.get("/status")
async def system_status(request: Request) -> JSONResponse:
    state = request.app.state
    scheduler = getattr(state, "scheduler", None)
    tasks = scheduler.get_task_status() if scheduler is not None else {}
    data = await state.store.get_data_status()
    return JSONResponse(content={
        "uptime_seconds": round(time.time() - state.started_at, 1),
        "scheduler_running": bool(scheduler is not None and scheduler.is_running),
        "tasks": tasks,
        "data": data,
        "channels": [c.name for c in state.dispatcher.channels],
    })


@router.get("/config")
async def system_config(request: Request) -> JSONResponse:
    """Effective configuration. Secret values are masked."""
    # SecretStr fields dump as "**********" in json mode
    settings = request.app.state.settings.model_dump(mode="json")
    return JSONResponse(content=settings)


@router.get("/test-upstream")
async def test_upstream(request: Request) -> JSONResponse:
    ok = await request.app.state.fetcher.test_connection()
    return JSONResponse(
        status_code=200 if ok else 502,
        content={"success": ok},
    )


@router.post("/refresh")
async def refresh(request: Request) -> JSONResponse:
    """Clear stored history and re-ingest every category now."""
    log.info("manual_refresh_requested")
    try:
        report = await request.app.state.pipeline.refresh_all()
    except UpstreamError as exc:
        log.error("manual_refresh_failed", kind=exc.kind.value, error=exc.message)
        return JSONResponse(
            status_code=502,
            content={"success": False, "kind": exc.kind.value, "error": exc.message},
        )
    return JSONResponse(content={
        "success": True,
        "report": to_jsonable(vars(report)),
    })


@router.post("/cleanup")
async def cleanup(request: Request, body: CleanupRequest | None = None) -> JSONResponse:
    """Purge observations ingested more than ``days`` ago."""
    days = body.days if body is not None else CleanupRequest().days
    deleted = await request.app.state.store.purge_older_than(days)
    log.info("manual_cleanup_complete", days=days, deleted=deleted)
    return JSONResponse(content={
        "success": True,
        "days": days,
        "deleted_count": deleted,
    })


@router.post("/test-notifications")
async def test_notifications(request: Request) -> JSONResponse:
    results = await request.app.state.dispatcher.test_channels()
    return JSONResponse(content={
        "success": all(r["success"] for r in results.values()),
        "channels": results,
    })


@router.post("/send-test-alert")
async def send_test_alert(request: Request, body: AlertTestRequest | None = None) -> JSONResponse:
    """Broadcast a system notice through every channel."""
    message = body.message if body is not None else AlertTestRequest().message
    outcomes = await request.app.state.dispatcher.send_system_alert("test", message)
    return JSONResponse(content={
        "success": any(o.success for o in outcomes),
        "outcomes": [
            {"channel": o.channel, "success": o.success, "error": o.error}
            for o in outcomes
        ],
    })
