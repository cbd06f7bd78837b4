"""SignalAggregator: fault-isolated fan-out over every collector, plus clustering."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Sequence

from solpulse.cache import CacheTTL, TTLCache
from solpulse.collectors.base import BaseCollector
from solpulse.collectors.formatting import enrich_signal_descriptions
from solpulse.models import CollectorResult, Signal
from solpulse.utils import utc_now_iso

logger = logging.getLogger(__name__)

SIGNAL_CACHE_KEY = "all-signals"
COLLECTOR_CACHE_PREFIX = "collector:"
MIN_CLUSTER_SIZE = 2


class SignalAggregator:
    """Runs every registered collector concurrently and merges the result.

    A failing collector is logged and left out of the merge; callers only see
    fewer signals. The merged result is cached under ``SIGNAL_CACHE_KEY``.
    """

    def __init__(self, collectors: Sequence[BaseCollector], cache: TTLCache) -> None:
        self._collectors = list(collectors)
        self._cache = cache

    @property
    def collectors(self) -> list[BaseCollector]:
        return list(self._collectors)

    async def collect_all(self, force_refresh: bool = False) -> CollectorResult:
        if not force_refresh:
            cached = self._cache.get(SIGNAL_CACHE_KEY)
            if cached is not None:
                logger.info(
                    "[aggregator] returning cached signals (%d signals, collected at %s)",
                    len(cached.signals), cached.collected_at,
                )
                return cached

        logger.info("[aggregator] cache miss, collecting from %d collectors", len(self._collectors))
        collected_at = utc_now_iso()
        results = await asyncio.gather(
            *(self._run_collector(c, force_refresh) for c in self._collectors),
            return_exceptions=True,
        )

        merged: list[Signal] = []
        errors: list[str] = []
        for collector, result in zip(self._collectors, results):
            if isinstance(result, BaseException):
                logger.error("[aggregator] collector %s failed: %s", collector.name, result)
                errors.append(f"{collector.name}: {result}")
                continue
            if collector.last_error:
                errors.append(f"{collector.name}: {collector.last_error}")
            merged.extend(result)

        merged.sort(key=lambda s: s.strength, reverse=True)
        result = CollectorResult(
            signals=enrich_signal_descriptions(merged),
            collected_at=collected_at,
            error="; ".join(errors) or None,
        )
        self._cache.set(SIGNAL_CACHE_KEY, result, CacheTTL.SIGNALS)
        logger.info("[aggregator] cached %d signals (TTL: %ds)", len(result.signals), CacheTTL.SIGNALS)
        return result

    async def _run_collector(self, collector: BaseCollector, force_refresh: bool) -> list[Signal]:
        key = f"{COLLECTOR_CACHE_PREFIX}{collector.name}"
        if not force_refresh:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
        signals = await collector.run_once()
        if collector.last_error is None:
            self._cache.set(key, signals, CacheTTL.COLLECTOR)
        return signals

    def get_status(self) -> dict[str, Any]:
        return {c.name: c.get_stats() for c in self._collectors}


# ── clustering ──────────────────────────────────────────────────────────

def cluster_signals(signals: Sequence[Signal]) -> dict[str, list[Signal]]:
    """Group signals by shared project, token and category.

    A signal joins one cluster per related project, one per related token and
    one for its category. Only keys with at least two members survive.
    """
    clusters: dict[str, list[Signal]] = defaultdict(list)
    for signal in signals:
        for project in signal.related_projects:
            clusters[f"project:{project.lower()}"].append(signal)
        for token in signal.related_tokens:
            clusters[f"token:{token.lower()}"].append(signal)
        clusters[f"category:{signal.category.lower()}"].append(signal)
    return {k: v for k, v in clusters.items() if len(v) >= MIN_CLUSTER_SIZE}


def cluster_strength(signals: Sequence[Signal]) -> float:
    """Mean strength plus 10 per extra distinct source, capped at 100."""
    if not signals:
        return 0.0
    sources = {s.source for s in signals}
    avg = sum(s.strength for s in signals) / len(signals)
    return min(100.0, avg + (len(sources) - 1) * 10)
