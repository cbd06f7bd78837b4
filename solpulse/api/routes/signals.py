"""Signal endpoint — raw merged collector output."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from solpulse.api.deps import get_services, rate_limited
from solpulse.collectors.aggregator import SIGNAL_CACHE_KEY
from solpulse.rate_limit import RateLimits

router = APIRouter(tags=["signals"])


@router.get("/signals")
async def list_signals(request: Request, refresh: bool = Query(False)):
    limited = rate_limited(request, "signals", RateLimits.SIGNALS)
    if limited is not None:
        return limited

    services = get_services(request)
    from_cache = not refresh and services.cache.get(SIGNAL_CACHE_KEY) is not None
    result = await services.aggregator.collect_all(force_refresh=refresh)
    sources = list(dict.fromkeys(s.source for s in result.signals))
    return {
        "success": True,
        "data": {
            "signals": [s.to_json() for s in result.signals],
            "count": len(result.signals),
            "collectedAt": result.collected_at,
            "sources": sources,
            "fromCache": from_cache,
            "cacheAge": services.cache.age(SIGNAL_CACHE_KEY) or 0,
        },
    }
