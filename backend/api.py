"""
AquaOps API Endpoints
"""

import os
import sys
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from loguru import logger
from pydantic import BaseModel

# Add project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.aquaops.dashboard import Dashboard
from core.aquaops.exceptions import AquaOpsError, EmptyFleetError, InvalidReading, UnitNotFoundError

router = APIRouter()

APP_VERSION = "0.1.0"

# Dashboard engine (set by app.py during startup)
dashboard: Dashboard | None = None


class ReadingRequest(BaseModel):
    """Request body for a telemetry reading."""
    metric: str
    value: float


class AdvisoryRequestBody(BaseModel):
    """Request body for an advisory question."""
    text: str


class AutoManageRequest(BaseModel):
    """Request body for the fleet-wide automation switch."""
    enabled: bool


def _require_dashboard() -> Dashboard:
    if dashboard is None:
        raise HTTPException(status_code=503, detail="Dashboard engine not initialized")
    return dashboard


def _to_http(e: AquaOpsError) -> HTTPException:
    """Map engine errors to HTTP status codes."""
    if isinstance(e, UnitNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidReading):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, EmptyFleetError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=503, detail=str(e))


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "AquaOps",
        "version": APP_VERSION,
        "engine_ready": dashboard is not None,
    }


@router.get("/api/status")
async def get_status():
    """Get system status."""
    engine = _require_dashboard()
    return {
        "system": "operational",
        "mode": engine.mode.value,
        "units": len(engine.list_units()),
        "advisory_thinking": engine.thinking,
        "pending_requests": engine.advisory.pending_count,
        "telemetry_enabled": engine.settings.telemetry_enabled,
    }


@router.get("/api/units")
async def get_units():
    """Get all monitored units in display order."""
    engine = _require_dashboard()
    return {"units": [unit.to_dict() for unit in engine.list_units()]}


@router.get("/api/units/{unit_id}")
async def get_unit(unit_id: str):
    """Get one unit including its history windows."""
    engine = _require_dashboard()
    try:
        return engine.get_unit(unit_id).to_dict()
    except AquaOpsError as e:
        raise _to_http(e) from e


@router.post("/api/units/{unit_id}/readings")
async def post_reading(unit_id: str, request: ReadingRequest):
    """Apply one telemetry reading to a unit."""
    engine = _require_dashboard()
    try:
        unit = engine.apply_reading(unit_id, request.metric, request.value)
    except AquaOpsError as e:
        logger.warning(f"Rejected reading for {unit_id}: {e}")
        raise _to_http(e) from e

    return unit.to_dict()


@router.post("/api/units/{unit_id}/reassess")
async def reassess_unit(unit_id: str):
    """Queue a status re-evaluation for a unit."""
    engine = _require_dashboard()
    try:
        request_id = engine.request_reassessment(unit_id)
    except AquaOpsError as e:
        raise _to_http(e) from e

    return {"request_id": request_id, "unit_id": unit_id}


@router.get("/api/fleet/summary")
async def get_fleet_summary():
    """Get fleet-wide averages, scalars and status counts."""
    engine = _require_dashboard()
    try:
        summary = engine.get_fleet_summary()
    except AquaOpsError as e:
        raise _to_http(e) from e

    return {**summary.to_dict(), "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/api/fleet/share")
async def share_status():
    """Get the one-line shareable status."""
    engine = _require_dashboard()
    return {"status": engine.share_status()}


@router.put("/api/fleet/auto-manage")
async def set_auto_manage(request: AutoManageRequest):
    """Switch automatic management on or off for all units."""
    engine = _require_dashboard()
    engine.store.set_auto_manage_all(request.enabled)
    return {"auto_manage_all": request.enabled}


@router.post("/api/demo/toggle")
async def toggle_demo():
    """Toggle demo presentation mode."""
    engine = _require_dashboard()
    try:
        mode = engine.toggle_demo_mode()
    except AquaOpsError as e:
        raise _to_http(e) from e

    logger.info(f"Mode switched to {mode.value}")
    return {"mode": mode.value, "demo_active": mode.value == "demo"}


@router.post("/api/advisory")
async def submit_advisory(request: AdvisoryRequestBody):
    """Queue an advisory question. The answer arrives in the message log."""
    engine = _require_dashboard()
    try:
        request_id = engine.submit_advisory(request.text)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except AquaOpsError as e:
        raise _to_http(e) from e

    return {"request_id": request_id, "thinking": engine.thinking}


@router.get("/api/advisory/messages")
async def get_messages():
    """Get the advisory log, oldest first."""
    engine = _require_dashboard()
    messages = engine.messages()
    return {
        "count": len(messages),
        "thinking": engine.thinking,
        "messages": [m.to_dict() for m in messages],
    }


@router.get("/api/advisory/requests/{request_id}")
async def get_advisory_request(request_id: str):
    """Get the state of an advisory request."""
    engine = _require_dashboard()
    request = engine.get_request(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail=f"Request not found: {request_id}")
    return request.to_dict()
