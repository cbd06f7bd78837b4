"""Social collector — ecosystem blogs and research feeds via RSS/Atom."""

from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import Any

import feedparser

from solpulse.collectors.base import BaseCollector
from solpulse.models import Signal

logger = logging.getLogger(__name__)

# (name, url, category, solana_only)
RSS_FEEDS: list[tuple[str, str, str, bool]] = [
    ("Helius Blog", "https://www.helius.dev/blog/rss.xml", "Infrastructure", True),
    ("Messari", "https://messari.io/rss", "Market Research", False),
    ("Electric Capital", "https://electriccapital.substack.com/feed", "VC Report", False),
    ("Solana Foundation", "https://solana.com/news/rss", "Ecosystem News", True),
    ("Superteam", "https://blog.superteam.fun/rss.xml", "Community", True),
    ("Jupiter", "https://www.jup.ag/blog/rss.xml", "DeFi", True),
    ("Jito Labs", "https://www.jito.network/blog/rss.xml", "Infrastructure", True),
    ("Marinade Finance", "https://blog.marinade.finance/rss/", "DeFi", True),
]

_SOLANA_TERMS = re.compile(r"\b(solana|sol|spl|jupiter|jito|helius|phantom|raydium|orca)\b", re.I)
_TAG_RE = re.compile(r"<[^>]+>")
_MAX_ITEMS_PER_FEED = 5


def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip()).lower()


class SocialCollector(BaseCollector):
    def __init__(self, feeds: list[tuple[str, str, str, bool]] | None = None, pacing_seconds: float = 0.2) -> None:
        super().__init__()
        self._feeds = feeds or RSS_FEEDS
        self._pacing = pacing_seconds

    @property
    def source(self) -> str:
        return "social"

    def _parse_feed(self, name: str, url: str) -> list[Any]:
        parsed = feedparser.parse(url, request_headers={"User-Agent": "solpulse/0.4"})
        if parsed.bozo and not parsed.entries:
            logger.warning("[social] feed %s unreadable: %s", name, parsed.get("bozo_exception"))
            return []
        return list(parsed.entries)

    async def collect(self) -> list[Signal]:
        loop = asyncio.get_running_loop()
        signals: list[Signal] = []
        for name, url, category, solana_only in self._feeds:
            try:
                entries = await loop.run_in_executor(None, self._parse_feed, name, url)
            except Exception:
                logger.warning("[social] failed to parse %s", name, exc_info=True)
                continue
            kept = 0
            for entry in entries:
                if kept >= _MAX_ITEMS_PER_FEED:
                    break
                title = (entry.get("title") or "").strip()
                if not title:
                    continue
                summary = _TAG_RE.sub("", entry.get("summary") or "").strip()
                if not solana_only and not _SOLANA_TERMS.search(f"{title} {summary}"):
                    continue
                signals.append(self._make_signal(
                    signal_id=f"rss-{_slug(name)}-{kept}",
                    category=category,
                    metric="rss_mention",
                    value=1,
                    description=f"📰 {name}: {title}",
                    strength=55 - kept * 5,
                    source_url=entry.get("link"),
                    full_text=summary[:1000] or None,
                ))
                kept += 1
            await asyncio.sleep(self._pacing)
        return signals


# ── Mock ───────────────────────────────────────────────────────────────

_MOCK_POSTS = [
    ("Helius Blog", "Infrastructure", "State compression costs fall another 40% after ZK compression rollout", ["helius"]),
    ("Superteam", "Community", "Record bounty participation as Solana builder grants double", ["superteam"]),
    ("Jupiter", "DeFi", "Jupiter perps volume hits all-time high on memecoin rotation", ["jup-ag"]),
    ("Jito Labs", "Infrastructure", "Restaking vaults cross $500M as Jito NCN launches", ["jito-foundation"]),
    ("Messari", "Market Research", "Solana DePIN revenue outpaces every other L1 this quarter", ["helium"]),
    ("Solana Foundation", "Ecosystem News", "Firedancer testnet validators reach 20% of stake", ["solana-labs"]),
]


class MockSocialCollector(BaseCollector):
    @property
    def source(self) -> str:
        return "social"

    async def collect(self) -> list[Signal]:
        signals: list[Signal] = []
        for i, (feed, category, title, projects) in enumerate(random.sample(_MOCK_POSTS, 4)):
            signals.append(self._make_signal(
                signal_id=f"rss-{_slug(feed)}-{i}",
                category=category,
                metric="rss_mention",
                value=1,
                description=f"📰 {feed}: {title}",
                strength=random.randint(35, 70),
                related_projects=projects,
            ))
        return signals
