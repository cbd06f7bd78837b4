"""Deterministic, non-AI narrative synthesis.

Used when the reasoning step cannot produce a usable answer (provider
failure, unparseable output after the repair attempt, or the deadline).
Signals are bucketed by source into a handful of themes; each non-empty
bucket becomes one low-confidence narrative with a templated idea.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from solpulse.collectors.aggregator import cluster_strength
from solpulse.collectors.formatting import format_delta
from solpulse.models import BuildIdea, Narrative, Signal
from solpulse.utils import slugify, utc_now_iso

logger = logging.getLogger(__name__)

# fallback narratives never claim more than this
MAX_FALLBACK_CONFIDENCE = 40.0
_SIGNALS_PER_NARRATIVE = 6


@dataclass(frozen=True)
class _Bucket:
    key: str
    name: str
    category: str
    sources: tuple[str, ...]
    idea_title: str
    idea_description: str
    tech_stack: tuple[str, ...]
    solana_features: tuple[str, ...]


BUCKETS: tuple[_Bucket, ...] = (
    _Bucket(
        key="capital",
        name="Solana DeFi Capital Rotation",
        category="DeFi",
        sources=("market", "defi-llama"),
        idea_title="Cross-Protocol Yield Router",
        idea_description="Route idle stablecoins between the Solana lending and LP venues showing the strongest inflows.",
        tech_stack=("Anchor", "Jupiter API", "DeFi Llama API", "Next.js"),
        solana_features=("Token extensions", "Priority fees"),
    ),
    _Bucket(
        key="builders",
        name="Solana Builder & Network Momentum",
        category="Infrastructure",
        sources=("github", "onchain"),
        idea_title="Program Activity Alerts",
        idea_description="Notify teams when programs they integrate with ship upgrades or see unusual transaction spikes.",
        tech_stack=("Helius webhooks", "GitHub API", "TypeScript"),
        solana_features=("Program logs", "Versioned transactions"),
    ),
    _Bucket(
        key="community",
        name="Solana Community & Governance Pulse",
        category="Social",
        sources=("social", "governance"),
        idea_title="Governance Digest Blink",
        idea_description="A Blink that summarises live DAO proposals and lets holders vote straight from a post.",
        tech_stack=("Solana Actions", "Realms SDK", "Next.js"),
        solana_features=("Blinks", "SPL Governance"),
    ),
)


def _bucket_for(source: str) -> _Bucket:
    for bucket in BUCKETS:
        if source in bucket.sources:
            return bucket
    return BUCKETS[-1]


def _narrative_from_bucket(bucket: _Bucket, signals: list[Signal], now: str) -> Narrative:
    top = sorted(signals, key=lambda s: s.strength, reverse=True)[:_SIGNALS_PER_NARRATIVE]
    strength = cluster_strength(top)
    narrative_id = f"fallback-{bucket.key}"
    avg_delta = sum(s.delta for s in top) / len(top)
    lead = top[0]
    move = format_delta(lead.delta)
    summary = f"{len(signals)} {'/'.join(bucket.sources)} signals, led by: {lead.description}" + (
        f" ({move})" if move else ""
    )
    idea = BuildIdea(
        id=f"idea-{narrative_id}-0",
        title=bucket.idea_title,
        description=bucket.idea_description,
        tech_stack=list(bucket.tech_stack),
        complexity="Low",
        impact="Medium",
        narrative_id=narrative_id,
        solana_features=list(bucket.solana_features),
        supporting_signal_ids=[s.id for s in top[:3]],
        why_now=f"{len(signals)} live signals point at this theme right now.",
        target_user="Solana builders watching this part of the ecosystem.",
    )
    return Narrative(
        id=narrative_id,
        name=bucket.name,
        slug=slugify(bucket.name),
        category=bucket.category,
        confidence=min(MAX_FALLBACK_CONFIDENCE, round(strength / 2)),
        summary=summary,
        explanation=(
            "Generated without AI analysis from the strongest raw signals in this group. "
            "Treat it as a rough grouping rather than a detected narrative."
        ),
        signals=top,
        signal_strength=strength,
        ideas=[idea],
        detected_at=now,
        updated_at=now,
        trend="rising" if avg_delta > 0 else "stable",
    )


def rule_based_narratives(signals: list[Signal]) -> list[Narrative]:
    """One narrative per non-empty source bucket, strongest bucket first."""
    if not signals:
        return default_narratives()
    grouped: dict[str, list[Signal]] = {}
    for s in signals:
        grouped.setdefault(_bucket_for(s.source).key, []).append(s)

    now = utc_now_iso()
    narratives = [
        _narrative_from_bucket(bucket, grouped[bucket.key], now)
        for bucket in BUCKETS
        if bucket.key in grouped
    ]
    narratives.sort(key=lambda n: n.signal_strength, reverse=True)
    logger.info("[fallback] built %d rule-based narratives from %d signals", len(narratives), len(signals))
    return narratives


def default_narratives() -> list[Narrative]:
    """Fixed narrative set for runs with no signals at all."""
    now = utc_now_iso()
    return [
        Narrative(
            id="default-1",
            name="Solana DeFi Renaissance",
            slug="solana-defi-renaissance",
            category="DeFi",
            confidence=70,
            summary="DeFi protocols on Solana are seeing renewed TVL growth and developer activity.",
            explanation=(
                "Established protocols like Jupiter, Raydium and Orca keep growing trading volume, while "
                "liquid staking (Sanctum, Marinade) and perps (Drift) attract both capital and developers."
            ),
            signal_strength=65,
            ideas=[
                BuildIdea(
                    id="idea-1",
                    title="DeFi Portfolio Tracker",
                    description="Track and visualise positions across all Solana DeFi protocols in one dashboard.",
                    tech_stack=["Next.js", "Helius API", "Recharts"],
                    complexity="Low",
                    impact="Medium",
                    narrative_id="default-1",
                    solana_features=["Token accounts", "DeFi composability"],
                    why_now="Growing DeFi TVL on Solana creates demand for unified position tracking.",
                    target_user="DeFi users managing positions across multiple Solana protocols.",
                )
            ],
            detected_at=now,
            updated_at=now,
            trend="rising",
        )
    ]
