"""Sliding-window rate limiter for the expensive API entry points.

Each ``route:client`` key keeps the timestamps of its accepted requests. A
check first drops timestamps older than the window, denies once the remaining
count reaches the limit, and otherwise records ``now``. Empty keys are swept
lazily, at most once per cleanup interval, so no background task is needed.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Mapping

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 5 * 60
UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window: float  # seconds


class RateLimits:
    """Per-route presets."""

    # full pipeline: AI inference + every collector
    NARRATIVES = RateLimitConfig(max_requests=10, window=15 * 60)
    # raw signals: every collector
    SIGNALS = RateLimitConfig(max_requests=10, window=5 * 60)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0
    reset_at: int = 0

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
            headers["X-RateLimit-Reset"] = str(self.reset_at)
        return headers


def client_id_from_headers(headers: Mapping[str, str]) -> str:
    """Resolve a client identifier from proxy headers.

    Uses the first X-Forwarded-For hop, then X-Real-IP. Without either, every
    caller shares the ``unknown`` bucket.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return UNKNOWN_CLIENT


class SlidingWindowRateLimiter:
    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = CLEANUP_INTERVAL,
        max_window: float = RateLimits.NARRATIVES.window,
    ) -> None:
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._max_window = max_window
        self._store: dict[str, list[float]] = {}
        self._last_cleanup = clock()

    def check(self, client_id: str, route_key: str, config: RateLimitConfig) -> RateLimitDecision:
        key = f"{route_key}:{client_id}"
        now = self._clock()
        self._maybe_cleanup(now)

        timestamps = [t for t in self._store.get(key, []) if now - t < config.window]
        self._store[key] = timestamps

        if len(timestamps) >= config.max_requests:
            oldest = timestamps[0]
            retry_after = max(1, math.ceil(config.window - (now - oldest)))
            logger.info("[rate_limit] denied %s (%d/%d, retry in %ds)", key, len(timestamps), config.max_requests, retry_after)
            return RateLimitDecision(
                allowed=False,
                limit=config.max_requests,
                remaining=0,
                retry_after=retry_after,
                reset_at=math.ceil(oldest + config.window),
            )

        timestamps.append(now)
        return RateLimitDecision(
            allowed=True,
            limit=config.max_requests,
            remaining=config.max_requests - len(timestamps),
        )

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        for key in list(self._store):
            live = [t for t in self._store[key] if now - t < self._max_window]
            if live:
                self._store[key] = live
            else:
                del self._store[key]

    def stats(self) -> dict[str, int]:
        return {
            "tracked_keys": len(self._store),
            "entries": sum(len(v) for v in self._store.values()),
        }
