"""Collector registry — decides which producers feed the aggregator."""

from __future__ import annotations

import logging

from solpulse.collectors.base import BaseCollector
from solpulse.config import Settings

logger = logging.getLogger(__name__)


def build_collectors(settings: Settings, mock: bool = False) -> list[BaseCollector]:
    """Instantiate the collector set.

    In mock mode every source uses its Mock* counterpart. In real mode the
    network collectors are used and the sources without one are skipped.
    """
    if mock:
        from solpulse.collectors.defi_llama import MockDefiLlamaCollector
        from solpulse.collectors.github import MockGitHubCollector
        from solpulse.collectors.market import MockMarketCollector
        from solpulse.collectors.mock import MockGovernanceCollector, MockOnChainCollector
        from solpulse.collectors.social import MockSocialCollector

        collectors: list[BaseCollector] = [
            MockMarketCollector(),
            MockGitHubCollector(),
            MockOnChainCollector(),
            MockSocialCollector(),
            MockDefiLlamaCollector(),
            MockGovernanceCollector(),
        ]
        logger.info("Mock mode: registered %d collectors", len(collectors))
        return collectors

    from solpulse.collectors.defi_llama import DefiLlamaCollector
    from solpulse.collectors.github import GitHubCollector
    from solpulse.collectors.market import MarketCollector
    from solpulse.collectors.social import SocialCollector

    collectors = [
        MarketCollector(
            settings.coingecko_base_url,
            settings.tracked_tokens,
            timeout=settings.collector_timeout_seconds,
        ),
        GitHubCollector(
            settings.github_base_url,
            settings.github_tracked_orgs,
            token=settings.github_token,
            pacing_seconds=settings.collector_pacing_seconds,
            timeout=settings.collector_timeout_seconds,
        ),
        SocialCollector(pacing_seconds=settings.collector_pacing_seconds),
        DefiLlamaCollector(settings.defillama_base_url, timeout=settings.collector_timeout_seconds),
    ]
    if not settings.github_token:
        logger.warning("GitHub collector running unauthenticated — GITHUB_TOKEN not set")
    logger.info(
        "Real mode: %d active collectors [%s]",
        len(collectors),
        ", ".join(c.name for c in collectors),
    )
    return collectors
