"""NarrativePipeline — collect → detect → record, with a cached response body.

The body is cached for 15 minutes unless the caller supplied its own
previously-seen idea titles (those results are session-specific). A caller
that already holds a signal list skips collection entirely.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from solpulse.brain.detector import NarrativeDetector
from solpulse.cache import CacheTTL, TTLCache
from solpulse.collectors.aggregator import SignalAggregator
from solpulse.history import EditionHistory
from solpulse.models import Signal
from solpulse.utils import utc_now_iso

logger = logging.getLogger(__name__)

NARRATIVE_CACHE_KEY = "narrative-result"


class NarrativePipeline:
    def __init__(
        self,
        aggregator: SignalAggregator,
        detector: NarrativeDetector,
        history: EditionHistory,
        cache: TTLCache,
    ) -> None:
        self.aggregator = aggregator
        self.detector = detector
        self.history = history
        self.cache = cache
        self.runs = 0

    async def run(
        self,
        force_refresh: bool = False,
        previous_titles: list[str] | None = None,
        signals: list[Signal] | None = None,
    ) -> dict[str, Any]:
        session_dedup = bool(previous_titles)
        cacheable = not session_dedup and signals is None

        if cacheable and not force_refresh:
            cached = self.cache.get(NARRATIVE_CACHE_KEY)
            if cached is not None:
                age = self.cache.age(NARRATIVE_CACHE_KEY) or 0
                logger.info("[pipeline] returning cached narratives (age: %ds)", age)
                return {**cached, "fromCache": True, "cacheAge": age}

        started = time.monotonic()
        self.runs += 1
        if signals is None:
            collected = await self.aggregator.collect_all(force_refresh=force_refresh)
            signals, collected_at = collected.signals, collected.collected_at
        else:
            collected_at = utc_now_iso()
            logger.info("[pipeline] using %d client-supplied signals, skipping collection", len(signals))

        result = await self.detector.detect(signals, previous_titles)
        contexts = result.signal_contexts
        enriched = [
            s.model_copy(update={"ai_context": contexts[s.id]}) if s.id in contexts else s
            for s in signals
        ]
        processing_ms = round((time.monotonic() - started) * 1000)

        edition = await self.history.record(result.narratives, len(enriched), processing_ms)

        body = {
            "narratives": [n.to_json() for n in result.narratives],
            "signals": [s.to_json() for s in enriched],
            "signalCount": len(enriched),
            "collectedAt": collected_at,
            "processingTime": processing_ms,
            "degraded": result.degraded,
            "mode": result.mode,
            "fromCache": False,
            "edition": {
                "id": edition.id,
                "narrativeStatuses": [
                    {"slug": n.slug, "status": n.status, "confidenceDelta": n.confidence_delta}
                    for n in edition.narratives
                ],
            },
        }
        if cacheable:
            self.cache.set(NARRATIVE_CACHE_KEY, body, CacheTTL.NARRATIVES)
            logger.info("[pipeline] cached narrative result (TTL: %ds)", CacheTTL.NARRATIVES)
        else:
            logger.info("[pipeline] session-specific run, result not cached")
        logger.info(
            "[pipeline] %d narratives from %d signals in %.1fs (mode=%s)",
            len(result.narratives),
            len(enriched),
            processing_ms / 1000,
            result.mode,
        )
        return body
