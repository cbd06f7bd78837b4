"""CoinGecko market collector — trending tokens, tracked price moves, category trends."""

from __future__ import annotations

import logging
import random
from typing import Any

import httpx

from solpulse.collectors.base import BaseCollector
from solpulse.collectors.formatting import format_delta, format_scale
from solpulse.models import Signal

logger = logging.getLogger(__name__)

_CATEGORY_FILTER = ("solana", "defi", "depin", "gaming", "nft", "layer", "meme", "ai", "infra", "real-world", "real world")


class MarketCollector(BaseCollector):
    """Public CoinGecko endpoints, no key required."""

    def __init__(self, base_url: str, tracked_tokens: dict[str, str], timeout: float = 20.0) -> None:
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._tracked = tracked_tokens
        self._timeout = timeout

    @property
    def source(self) -> str:
        return "market"

    async def _get(self, client: httpx.AsyncClient, path: str, params: dict[str, Any] | None = None) -> Any:
        resp = await client.get(f"{self._base_url}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    async def collect(self) -> list[Signal]:
        signals: list[Signal] = []
        async with httpx.AsyncClient(timeout=self._timeout, headers={"Accept": "application/json"}) as client:
            for part in (self._trending, self._price_moves, self._categories):
                try:
                    signals.extend(await part(client))
                except httpx.HTTPError as exc:
                    logger.warning("[market] %s failed: %s", part.__name__, exc)
        return signals

    async def _trending(self, client: httpx.AsyncClient) -> list[Signal]:
        data = await self._get(client, "/search/trending")
        signals: list[Signal] = []
        for rank, coin in enumerate((data.get("coins") or [])[:15], start=1):
            item = coin.get("item") or {}
            details = item.get("data") or {}
            change = float((details.get("price_change_percentage_24h") or {}).get("usd") or 0)
            symbol = item.get("symbol", "")
            name = item.get("name", "")
            signals.append(self._make_signal(
                signal_id=f"trending-{item.get('id', rank)}",
                category="Trending Token",
                metric="trending_rank",
                value=rank,
                delta=change,
                description=f"{name} ({symbol}) is trending #{rank} — price {format_delta(change) or '0.0%'} 24h",
                strength=80 - rank * 5 + abs(change),
                related_tokens=[symbol] if symbol else [],
                source_url=f"https://www.coingecko.com/en/coins/{item.get('id', '')}",
            ))
        return signals

    async def _price_moves(self, client: httpx.AsyncClient) -> list[Signal]:
        data = await self._get(client, "/simple/price", params={
            "ids": ",".join(self._tracked.values()),
            "vs_currencies": "usd",
            "include_24hr_vol": "true",
            "include_24hr_change": "true",
            "include_market_cap": "true",
        })
        signals: list[Signal] = []
        for symbol, coingecko_id in self._tracked.items():
            row = data.get(coingecko_id)
            if not row:
                continue
            change = float(row.get("usd_24h_change") or 0)
            if abs(change) <= 5:
                continue
            price = float(row.get("usd") or 0)
            verb = "surged" if change > 0 else "dropped"
            signals.append(self._make_signal(
                signal_id=f"price-{symbol}",
                category="Price Movement",
                metric="price_change_24h",
                value=price,
                delta=change,
                description=f"{symbol} {verb} {format_delta(change)} in 24h (now ${price:.4f})",
                strength=abs(change) * 3,
                related_tokens=[symbol],
                source_url=f"https://www.coingecko.com/en/coins/{coingecko_id}",
            ))
        return signals

    async def _categories(self, client: httpx.AsyncClient) -> list[Signal]:
        data = await self._get(client, "/coins/categories", params={"order": "market_cap_change_24h_desc"})
        relevant = [c for c in data or [] if any(k in (c.get("name") or "").lower() for k in _CATEGORY_FILTER)]
        signals: list[Signal] = []
        for cat in relevant[:10]:
            change = float(cat.get("market_cap_change_24h") or 0)
            if abs(change) <= 3:
                continue
            mcap = float(cat.get("market_cap") or 0)
            direction = "growing" if change > 0 else "shrinking"
            signals.append(self._make_signal(
                signal_id=f"category-{cat.get('id')}",
                category="Category Trend",
                metric="category_market_cap_change",
                value=mcap,
                delta=change,
                description=f'"{cat.get("name")}" category {direction} {format_delta(change)} market cap 24h',
                strength=abs(change) * 4,
                source_url=f"https://www.coingecko.com/en/categories/{cat.get('id')}",
                full_text=f'"{cat.get("name")}" category: market cap ${format_scale(mcap)} ({format_delta(change)} 24h).',
            ))
        return signals


# ── Mock ───────────────────────────────────────────────────────────────

_MOCK_TOKENS = [
    ("JUP", "Jupiter", "jupiter-exchange-solana"),
    ("JTO", "Jito", "jito-governance-token"),
    ("BONK", "Bonk", "bonk"),
    ("WIF", "dogwifhat", "dogwifcoin"),
    ("PYTH", "Pyth Network", "pyth-network"),
    ("RENDER", "Render", "render-token"),
    ("HNT", "Helium", "helium"),
    ("RAY", "Raydium", "raydium"),
]


class MockMarketCollector(BaseCollector):
    @property
    def source(self) -> str:
        return "market"

    async def collect(self) -> list[Signal]:
        signals: list[Signal] = []
        for rank, (symbol, name, cg_id) in enumerate(random.sample(_MOCK_TOKENS, 6), start=1):
            change = round(random.uniform(-18, 32), 1)
            signals.append(self._make_signal(
                signal_id=f"trending-{cg_id}",
                category="Trending Token",
                metric="trending_rank",
                value=rank,
                delta=change,
                description=f"{name} ({symbol}) is trending #{rank} — price {format_delta(change) or '0.0%'} 24h",
                strength=80 - rank * 5 + abs(change),
                related_tokens=[symbol],
                source_url=f"https://www.coingecko.com/en/coins/{cg_id}",
            ))
        return signals
