"""Process-wide component wiring.

The cache, rate limiter, router breakers and edition history are stateful
stores; they are created once here and handed to whoever needs them, so
tests can build a fresh, isolated set per case.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from solpulse.brain.detector import NarrativeDetector
from solpulse.brain.generator import IdeaGenerator
from solpulse.brain.router import ModelRouter
from solpulse.cache import TTLCache
from solpulse.collectors.aggregator import SignalAggregator
from solpulse.collectors.base import BaseCollector
from solpulse.collectors.manager import build_collectors
from solpulse.config import Settings
from solpulse.history import EditionHistory
from solpulse.pipeline import NarrativePipeline
from solpulse.rate_limit import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    cache: TTLCache
    rate_limiter: SlidingWindowRateLimiter
    aggregator: SignalAggregator
    router: ModelRouter
    generator: IdeaGenerator
    detector: NarrativeDetector
    history: EditionHistory
    pipeline: NarrativePipeline
    started_at: float = field(default_factory=time.time)

    async def aclose(self) -> None:
        await self.history.close()


def build_services(
    settings: Settings,
    mock: bool | None = None,
    router: ModelRouter | None = None,
    collectors: list[BaseCollector] | None = None,
) -> Services:
    mock = settings.mock_mode if mock is None else mock
    cache = TTLCache()
    if collectors is None:
        collectors = build_collectors(settings, mock=mock)
    aggregator = SignalAggregator(collectors, cache)
    router = router or ModelRouter.from_settings(settings)

    history = EditionHistory(settings.history_file, max_editions=settings.max_editions)
    history.load()

    generator = IdeaGenerator(
        router,
        history=history,
        tracked_tokens=list(settings.tracked_tokens),
        tracked_orgs=settings.github_tracked_orgs,
    )
    detector = NarrativeDetector(
        router,
        generator,
        max_signals=settings.max_signals_for_ai,
        min_per_source=settings.min_signals_per_source,
        max_clusters=settings.max_clusters,
        timeout=settings.reasoning_timeout_seconds,
        max_tokens=settings.reasoning_max_tokens,
        repair_max_tokens=settings.repair_max_tokens,
    )
    pipeline = NarrativePipeline(aggregator, detector, history, cache)
    logger.info("Services ready (mock=%s, models=%s)", mock, router.active_models())
    return Services(
        settings=settings,
        cache=cache,
        rate_limiter=SlidingWindowRateLimiter(),
        aggregator=aggregator,
        router=router,
        generator=generator,
        detector=detector,
        history=history,
        pipeline=pipeline,
    )
