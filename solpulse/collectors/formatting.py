"""Signal description normalisation: badge prefixes and number formatting."""

from __future__ import annotations

import re

from solpulse.models import Signal

SOURCE_BADGES: dict[str, str] = {
    "onchain": "⛓️",
    "github": "🔧",
    "market": "📈",
    "social": "💬",
    "defi-llama": "🏦",
    "governance": "🏛️",
}

CATEGORY_BADGES: dict[str, str] = {
    "Governance": "🏛️",
    "NFT Collection": "🎨",
    "NFT Floor Price": "🖼️",
    "DEX Trending": "📊",
    "DEX Boosted": "🚀",
    "New Pair": "🆕",
    "Whale Activity": "🐋",
    "Whale Movement": "🐋",
    "KOL Signal": "🐦",
    "X Trend": "🔥",
    "New Programs": "🚀",
    "Validator Health": "🛡️",
    "Stablecoin Supply": "💵",
    "DeFi TVL": "🏦",
    "DeFi Protocol": "🏦",
    "TVL Movement": "💰",
    "Trending Token": "🔥",
}

# any pictograph at the start counts as an existing marker
_LEADING_MARKER = re.compile(
    "^[\U0001F000-\U0001FFFF☀-➿⛓⭐]"
)


def has_leading_marker(description: str) -> bool:
    return bool(_LEADING_MARKER.match(description))


def enrich_description(signal: Signal) -> str:
    desc = signal.description
    if has_leading_marker(desc):
        return desc
    badge = CATEGORY_BADGES.get(signal.category) or SOURCE_BADGES.get(signal.source, "")
    return f"{badge} {desc}" if badge else desc


def enrich_signal_descriptions(signals: list[Signal]) -> list[Signal]:
    """Return copies with a badge prefixed to any unmarked description."""
    return [s.model_copy(update={"description": enrich_description(s)}) for s in signals]


def format_scale(value: float) -> str:
    if value >= 1e12:
        return f"{value / 1e12:.1f}T"
    if value >= 1e9:
        return f"{value / 1e9:.2f}B"
    if value >= 1e6:
        return f"{value / 1e6:.1f}M"
    if value >= 1e3:
        return f"{value / 1e3:.0f}K"
    return f"{value:,.0f}" if value == int(value) else f"{value:,}"


def format_delta(delta: float) -> str:
    if delta == 0:
        return ""
    sign = "+" if delta > 0 else ""
    return f"{sign}{delta:.1f}%"
