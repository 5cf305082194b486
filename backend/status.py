import os
import platform
import sys
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from .config import settings

health_router = APIRouter()
kudos_router = APIRouter()

STARTED_AT = time.monotonic()

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

@health_router.get("")
def health():
    return {
        "status": "ok",
        "timestamp": _now(),
        "uptime": time.monotonic() - STARTED_AT,
        "environment": settings.ENVIRONMENT,
    }

@health_router.get("/detailed")
def health_detailed(request: Request):
    client = getattr(request.app.state, "strava_client", None)
    return {
        "status": "ok",
        "timestamp": _now(),
        "uptime": time.monotonic() - STARTED_AT,
        "environment": settings.ENVIRONMENT,
        "pid": os.getpid(),
        "version": sys.version,
        "platform": platform.platform(),
        "arch": platform.machine(),
        "strava_rate_limit": client.rate_limiter.get_stats() if client else None,
    }

# Kudos bot runs in webhook mode only, so these report a fixed state.

@kudos_router.get("/status")
def kudos_status(request: Request):
    return {
        "status": "active",
        "mode": "webhook",
        "description": "Automatically gives kudos to new activities from followed athletes",
        "lastActivity": _now(),
        "webhookUrl": f"{request.base_url}strava/webhook",
    }

@kudos_router.post("/start")
def kudos_start():
    return {
        "success": True,
        "message": "Kudos bot is already running in webhook mode",
        "status": "active",
    }

@kudos_router.post("/stop")
def kudos_stop():
    return {
        "success": True,
        "message": "Kudos bot is running in webhook mode and cannot be stopped",
        "status": "active",
    }

@kudos_router.get("/recent")
def kudos_recent():
    return {
        "message": "Recent kudos activity is not stored; history is not persisted",
        "activities": [],
    }
