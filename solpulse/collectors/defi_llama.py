"""DeFi Llama collector: Solana chain TVL, top protocols, big movers, category totals."""

from __future__ import annotations

import logging
import random
from typing import Any

import httpx

from solpulse.collectors.base import BaseCollector
from solpulse.collectors.formatting import format_delta, format_scale
from solpulse.models import Signal

logger = logging.getLogger(__name__)

_MIN_PROTOCOL_TVL = 1_000_000
_TOP_PROTOCOLS = 10
_MOVER_THRESHOLD = 15.0
_MAX_MOVERS = 5
_TOP_CATEGORIES = 5


def _solana_tvl(protocol: dict[str, Any]) -> float:
    chain_tvls = protocol.get("chainTvls") or {}
    return float(chain_tvls.get("Solana") or protocol.get("tvl") or 0)


class DefiLlamaCollector(BaseCollector):
    """Public DeFi Llama endpoints, no key required."""

    def __init__(self, base_url: str = "https://api.llama.fi", timeout: float = 20.0) -> None:
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def source(self) -> str:
        return "defi-llama"

    async def _get(self, client: httpx.AsyncClient, path: str) -> Any:
        resp = await client.get(f"{self._base_url}{path}")
        resp.raise_for_status()
        return resp.json()

    async def collect(self) -> list[Signal]:
        signals: list[Signal] = []
        async with httpx.AsyncClient(timeout=self._timeout, headers={"Accept": "application/json"}) as client:
            for part in (self._chain_tvl, self._protocols):
                try:
                    signals.extend(await part(client))
                except httpx.HTTPError as exc:
                    logger.warning("[defi-llama] %s failed: %s", part.__name__, exc)
        return signals

    async def _chain_tvl(self, client: httpx.AsyncClient) -> list[Signal]:
        chains = await self._get(client, "/v2/chains")
        solana = next(
            (c for c in chains if c.get("name") == "Solana" or c.get("gecko_id") == "solana"),
            None,
        )
        if solana is None:
            return []
        tvl = float(solana.get("tvl") or 0)
        return [self._make_signal(
            signal_id="solana-tvl",
            category="DeFi TVL",
            metric="total_tvl",
            value=round(tvl),
            description=f"Solana ecosystem TVL: ${format_scale(tvl)} across all protocols",
            strength=70 if tvl > 5e9 else 55 if tvl > 2e9 else 40,
            related_tokens=["SOL"],
            related_projects=["solana"],
            source_url="https://defillama.com/chain/Solana",
        )]

    async def _protocols(self, client: httpx.AsyncClient) -> list[Signal]:
        return self.signals_from_protocols(await self._get(client, "/protocols"))

    def signals_from_protocols(self, protocols: list[dict[str, Any]]) -> list[Signal]:
        ranked = sorted(
            (p for p in protocols if "Solana" in (p.get("chains") or []) and _solana_tvl(p) > _MIN_PROTOCOL_TVL),
            key=_solana_tvl,
            reverse=True,
        )
        signals: list[Signal] = []

        for rank, proto in enumerate(ranked[:_TOP_PROTOCOLS]):
            tvl = _solana_tvl(proto)
            d1 = float(proto.get("change_1d") or 0)
            d7 = float(proto.get("change_7d") or 0)
            surging = d1 > 10 or d7 > 25
            declining = d1 < -10 or d7 < -20
            moves = "".join(f" ({label}: {format_delta(d)})" for label, d in (("1d", d1), ("7d", d7)) if d)
            flag = " 📈 SURGING" if surging else " 📉 DECLINING" if declining else ""
            signals.append(self._make_signal(
                signal_id=f"protocol-{proto.get('slug')}",
                category="DeFi Protocol",
                metric="tvl",
                value=round(tvl),
                delta=d1,
                description=f"{proto.get('name')} [{proto.get('category')}]: ${format_scale(tvl)} TVL{moves}{flag}",
                strength=85 if surging else 60 if declining else min(75, 50 + (_TOP_PROTOCOLS - rank) * 3),
                related_projects=[str(proto.get("name"))],
                source_url=f"https://defillama.com/protocol/{proto.get('slug')}",
                full_text=(
                    f"{proto.get('name')} is a {proto.get('category')} protocol on Solana with "
                    f"${format_scale(tvl)} TVL. Ranked #{rank + 1} on Solana by TVL."
                ),
            ))

        movers = sorted(
            (p for p in ranked if p.get("change_1d") is not None and abs(float(p["change_1d"])) > _MOVER_THRESHOLD),
            key=lambda p: abs(float(p["change_1d"])),
            reverse=True,
        )[:_MAX_MOVERS]
        for proto in movers:
            tvl = _solana_tvl(proto)
            delta = float(proto["change_1d"])
            direction = "inflow" if delta > 0 else "outflow"
            signals.append(self._make_signal(
                signal_id=f"mover-{proto.get('slug')}",
                category="TVL Movement",
                metric="tvl_change_1d",
                value=round(tvl),
                delta=delta,
                description=(
                    f"💰 {proto.get('name')}: {format_delta(delta)} {direction} (24h), "
                    f"${format_scale(tvl)} TVL [{proto.get('category')}]"
                ),
                strength=min(90, 55 + abs(delta)),
                related_projects=[str(proto.get("name"))],
                source_url=f"https://defillama.com/protocol/{proto.get('slug')}",
            ))

        categories: dict[str, list[dict[str, Any]]] = {}
        for proto in ranked:
            categories.setdefault(str(proto.get("category") or "Other"), []).append(proto)
        top = sorted(categories.items(), key=lambda kv: sum(_solana_tvl(p) for p in kv[1]), reverse=True)
        for category, members in top[:_TOP_CATEGORIES]:
            total = sum(_solana_tvl(p) for p in members)
            leaders = ", ".join(f"{p.get('name')}: ${format_scale(_solana_tvl(p))}" for p in members[:3])
            signals.append(self._make_signal(
                signal_id=f"category-{'-'.join(category.lower().split())}",
                category="DeFi Category",
                metric="category_tvl",
                value=round(total),
                description=f"Solana {category}: {len(members)} protocols, ${format_scale(total)} combined TVL",
                strength=min(65, 35 + len(members) * 3),
                source_url="https://defillama.com/chain/Solana",
                full_text=f"Top {category} protocols on Solana: {leaders}.",
            ))
        return signals


_PROTOCOLS = [
    ("Kamino", "DeFi TVL", None),
    ("Jito", "DeFi TVL", "JTO"),
    ("Marinade", "DeFi TVL", "MNDE"),
    ("Drift", "DeFi Protocol", None),
    ("Sanctum", "DeFi Protocol", None),
    ("Raydium", "DeFi TVL", "RAY"),
]


class MockDefiLlamaCollector(BaseCollector):
    @property
    def source(self) -> str:
        return "defi-llama"

    async def collect(self) -> list[Signal]:
        signals: list[Signal] = []
        for name, category, token in random.sample(_PROTOCOLS, 4):
            tvl = random.uniform(150e6, 2.5e9)
            change = round(random.uniform(-12, 25), 1)
            signals.append(self._make_signal(
                signal_id=f"tvl-{name.lower()}",
                category=category,
                metric="tvl_change_7d",
                value=tvl,
                delta=change,
                description=f"{name} TVL {'up' if change > 0 else 'down'} {abs(change)}% over 7d (${tvl / 1e6:,.0f}M)",
                strength=abs(change) * 3,
                related_projects=[name.lower()],
                related_tokens=[token] if token else [],
                source_url=f"https://defillama.com/protocol/{name.lower()}",
            ))
        return signals
