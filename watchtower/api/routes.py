"""API routes for the monitor and the backup-mode surface.

Endpoints:
  GET  /api/health             monitor health + fresh probe of the primary
  POST /api/ping               heartbeat from a client service
  GET  /api/status             current liveness belief
  GET  /api/status/history     recent status records + emergency log
  POST /api/emergency/alert    record an externally reported emergency
  POST /api/backup/login       degraded login while the primary is down
  GET  /api/backup/status      backup-mode status summary
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from watchtower.monitor.models import EmergencyKind
from watchtower.monitor.store import PersistError

logger = logging.getLogger(__name__)

router = APIRouter()

_STARTED = time.monotonic()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# -- Request models ------------------------------------------------------------


class PingBody(BaseModel):
    service: str = "unknown"
    timestamp: str | None = None
    status: str | None = None


class EmergencyAlertBody(BaseModel):
    type: str
    message: str
    data: dict[str, Any] | None = None


class BackupLoginBody(BaseModel):
    location: Any = None


# -- Monitor -------------------------------------------------------------------


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Probe the primary now and report both services."""
    scheduler = request.app.state.scheduler
    tracker = request.app.state.tracker

    try:
        result = await scheduler.probe_now()
        primary_down = result.belief.is_down
    except Exception:
        logger.exception("On-demand probe failed")
        primary_down = tracker.current_status().is_down

    storage = "connected" if await asyncio.to_thread(tracker.gateway.ping) else "disconnected"
    return {
        "status": "healthy",
        "service": "monitoring",
        "timestamp": _now(),
        "storage": storage,
        "primaryService": {
            "url": scheduler.target_url,
            "status": "down" if primary_down else "healthy",
            "lastChecked": _now(),
        },
        "uptime": round(time.monotonic() - _STARTED, 1),
    }


@router.post("/ping")
def ping(body: PingBody) -> dict[str, Any]:
    logger.info("Ping received from %s at %s", body.service, body.timestamp)
    return {
        "received": True,
        "timestamp": _now(),
        "message": "Ping acknowledged",
    }


@router.get("/status")
def status(request: Request) -> dict[str, Any]:
    tracker = request.app.state.tracker
    data = tracker.current_status().to_dict()
    data["scheduler"] = request.app.state.scheduler.to_dict()
    return data


@router.get("/status/history")
def status_history(request: Request) -> dict[str, Any]:
    history = request.app.state.tracker.history(status_limit=100, emergency_limit=50)
    return {
        "history": [r.to_dict() for r in history["statuses"]],
        "emergencies": [e.to_dict() for e in history["emergencies"]],
    }


@router.post("/emergency/alert")
def emergency_alert(body: EmergencyAlertBody, request: Request) -> dict[str, Any]:
    """Log an emergency reported by another service."""
    tracker = request.app.state.tracker
    payload = dict(body.data or {})
    try:
        kind = EmergencyKind(body.type)
    except ValueError:
        kind = EmergencyKind.CUSTOM
        payload.setdefault("type", body.type)

    try:
        tracker.record_external_emergency(kind, body.message, payload)
    except PersistError:
        logger.exception("Failed to log emergency %s", body.type)
        raise HTTPException(status_code=500, detail="Failed to log emergency")
    return {"success": True, "logged": True}


# -- Backup mode ---------------------------------------------------------------


@router.post("/backup/login")
def backup_login(body: BackupLoginBody):
    if not body.location:
        return JSONResponse(
            status_code=403,
            content={
                "error": "EMERGENCY MODE: Location permission REQUIRED",
                "emergency": True,
                "backupMode": True,
            },
        )
    return {
        "success": True,
        "message": "Backup service active - Limited functionality",
        "backupMode": True,
        "timestamp": _now(),
    }


@router.get("/backup/status")
def backup_status(request: Request) -> dict[str, Any]:
    tracker = request.app.state.tracker
    belief = tracker.current_status()
    latest = tracker.latest_status()
    return {
        "service": "monitoring_backup",
        "primaryStatus": latest.to_dict() if latest else {"status": "unknown"},
        "backupActive": True,
        "liveness": belief.to_dict(),
        "timestamp": _now(),
        "message": (
            "Primary service is down. Backup mode active."
            if belief.is_down
            else "All services operational."
        ),
    }
