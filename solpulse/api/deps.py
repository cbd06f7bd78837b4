"""Shared route helpers: service lookup and rate-limit enforcement."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from solpulse.rate_limit import RateLimitConfig, client_id_from_headers
from solpulse.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def rate_limited(request: Request, route_key: str, config: RateLimitConfig) -> JSONResponse | None:
    """Return a ready 429 response when the caller is over quota, else None."""
    services = get_services(request)
    decision = services.rate_limiter.check(client_id_from_headers(request.headers), route_key, config)
    if decision.allowed:
        return None
    return JSONResponse(
        {
            "success": False,
            "error": f"Rate limit exceeded. Try again in {decision.retry_after} seconds.",
            "retryAfter": decision.retry_after,
        },
        status_code=429,
        headers=decision.headers(),
    )
