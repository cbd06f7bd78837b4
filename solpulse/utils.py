"""Shared utilities: logging, outbound pacing, slug/id and time helpers."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
import string
import sys
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


# ── Structured JSON logging ───────────────────────────────────────────

# "[detector] reasoning completed" -> component "detector"
_COMPONENT_PREFIX = re.compile(r"^\[([\w.-]+)\]\s*")


class _JSONFormatter(logging.Formatter):
    """One JSON object per record; a leading ``[component]`` tag becomes its own field."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        match = _COMPONENT_PREFIX.match(message)
        if match:
            payload["component"] = match.group(1)
            message = message[match.end():]
        payload["msg"] = message
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # per-request noise from the HTTP and model clients
    for noisy in ("httpx", "openai", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ── Outbound pacing ───────────────────────────────────────────────────

class OutboundPacer:
    """Keeps calls to one upstream API under ``max_calls`` per ``period`` seconds.

    Callers over quota wait for the oldest call to leave the window instead
    of being rejected::

        pacer = OutboundPacer("github", max_calls=10, period=60)
        async with pacer:
            await client.get(...)
    """

    def __init__(
        self,
        name: str,
        max_calls: int,
        period: float = 60.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self._max_calls = max_calls
        self._period = period
        self._sleep = sleep
        self._calls: list[float] = []
        self._lock = asyncio.Lock()
        self.calls = 0
        self.waits = 0
        self.waited_seconds = 0.0

    async def __aenter__(self) -> OutboundPacer:
        async with self._lock:
            now = time.monotonic()
            self._calls = [t for t in self._calls if now - t < self._period]
            if len(self._calls) >= self._max_calls:
                wait = self._period - (now - self._calls[0])
                if wait > 0:
                    self.waits += 1
                    self.waited_seconds += wait
                    logger.info(
                        "[%s] %d calls in %.0fs window, pacing for %.1fs",
                        self.name, len(self._calls), self._period, wait,
                    )
                    await self._sleep(wait)
                self._calls.pop(0)
            self._calls.append(time.monotonic())
            self.calls += 1
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    def get_stats(self) -> dict[str, Any]:
        return {"calls": self.calls, "waits": self.waits, "waited_seconds": round(self.waited_seconds, 1)}


# ── Identifiers ───────────────────────────────────────────────────────

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Deterministic URL slug: 'DeFi Renaissance!' -> 'defi-renaissance'."""
    return _SLUG_RE.sub("-", name.lower()).strip("-")


def random_suffix(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


# ── Timestamp helpers ─────────────────────────────────────────────────

def utc_now() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into a timezone-aware datetime."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def time_ago(dt: datetime) -> str:
    """Coarse age label for status output: 'just now', '5m ago', '3h 12m ago', '2d 1h ago'."""
    seconds = int((utc_now() - dt).total_seconds())
    if seconds < 60:
        return "just now"
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days:
        rest = f" {hours % 24}h" if hours % 24 else ""
        return f"{days}d{rest} ago"
    if hours:
        rest = f" {minutes % 60}m" if minutes % 60 else ""
        return f"{hours}h{rest} ago"
    return f"{minutes}m ago"
