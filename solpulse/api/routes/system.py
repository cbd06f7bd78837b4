"""System endpoints — heartbeat and runtime status."""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from solpulse import __version__
from solpulse.api.deps import get_services
from solpulse.utils import time_ago, utc_now_iso

router = APIRouter(tags=["system"])


@router.get("/heartbeat")
async def heartbeat(request: Request):
    services = get_services(request)
    return {
        "status": "ok",
        "agentName": services.settings.agent_name,
        "time": utc_now_iso(),
        "version": __version__,
        "capabilities": ["narratives", "signals", "history", "ideas"],
        "lastAction": "serving dashboard",
        "nextAction": "waiting for narrative detection request",
    }


@router.get("/status")
async def status(request: Request):
    services = get_services(request)
    started = datetime.fromtimestamp(services.started_at, tz=timezone.utc)
    return {
        "status": "ok",
        "version": __version__,
        "mock_mode": services.settings.mock_mode,
        "started": time_ago(started),
        "uptime_seconds": round(time.time() - services.started_at, 1),
        "models": services.router.active_models(),
        "router": services.router.get_stats(),
        "detector": services.detector.get_stats(),
        "ideas": services.generator.get_stats(),
        "cache": services.cache.stats(),
        "rate_limiter": services.rate_limiter.stats(),
        "history": services.history.get_stats(),
        "collectors": services.aggregator.get_status(),
    }
