"""Record types shared by every tier: signals, narratives, ideas, editions.

All records serialise with camelCase keys (``model_dump(by_alias=True)``) so the
JSON shape seen by dashboards and clients is stable, and they accept either
camelCase or snake_case on the way in.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SignalSource = Literal["onchain", "github", "market", "social", "defi-llama", "governance"]
Trend = Literal["rising", "stable", "declining"]
EditionStatus = Literal["new", "rising", "fading", "stable", "returning"]
Level = Literal["Low", "Medium", "High"]

NARRATIVE_CATEGORIES: tuple[str, ...] = (
    "DeFi",
    "DePIN",
    "AI & ML",
    "Gaming",
    "NFTs",
    "Infrastructure",
    "Payments",
    "Social",
    "Memecoins",
    "RWA",
    "Privacy",
    "Other",
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Signals ───────────────────────────────────────────────────────────

class Signal(_Record):
    """One normalised observation from a single external source."""

    id: str
    source: SignalSource
    category: str
    metric: str
    value: float
    delta: float = 0.0
    description: str
    related_tokens: list[str] = Field(default_factory=list)
    related_projects: list[str] = Field(default_factory=list)
    timestamp: str
    strength: float
    ai_context: str | None = None
    source_url: str | None = None
    full_text: str | None = None

    @field_validator("strength", mode="before")
    @classmethod
    def _clamp_strength(cls, v: Any) -> float:
        return clamp(float(v or 0))


class CollectorResult(_Record):
    """Merged output of one aggregation cycle."""

    signals: list[Signal]
    collected_at: str
    source: str = "aggregator"
    error: str | None = None


# ── Narratives and ideas ──────────────────────────────────────────────

class BuildIdea(_Record):
    id: str
    title: str
    description: str = ""
    tech_stack: list[str] = Field(default_factory=list)
    complexity: Level = "Medium"
    impact: Level = "Medium"
    narrative_id: str
    solana_features: list[str] = Field(default_factory=list)
    supporting_signal_ids: list[str] = Field(default_factory=list)
    signal_relevance: dict[str, str] = Field(default_factory=dict)
    why_now: str = ""
    target_user: str = ""
    problem_to_solve: str | None = None
    possible_solution: str | None = None


class Recommendation(_Record):
    thesis: str = ""
    actionables: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)


class Narrative(_Record):
    id: str
    name: str
    slug: str
    category: str = "Other"
    confidence: float
    summary: str = ""
    explanation: str = ""
    signals: list[Signal] = Field(default_factory=list)
    signal_strength: float = 0.0
    ideas: list[BuildIdea] = Field(default_factory=list)
    detected_at: str
    updated_at: str
    trend: Trend = "stable"
    recommendation: Recommendation | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return clamp(float(v or 0))


# ── Editions ──────────────────────────────────────────────────────────

class EditionNarrative(_Record):
    """Compact per-narrative summary stored in an edition."""

    id: str
    name: str
    slug: str
    category: str
    confidence: float
    signal_strength: float
    trend: Trend
    summary: str
    idea_count: int
    idea_titles: list[str] = Field(default_factory=list)
    signal_count: int
    status: EditionStatus | None = None
    confidence_delta: float | None = None

    @classmethod
    def from_narrative(cls, n: Narrative) -> EditionNarrative:
        return cls(
            id=n.id,
            name=n.name,
            slug=n.slug,
            category=n.category,
            confidence=n.confidence,
            signal_strength=n.signal_strength,
            trend=n.trend,
            summary=n.summary,
            idea_count=len(n.ideas),
            idea_titles=[i.title for i in n.ideas],
            signal_count=len(n.signals),
        )


class Edition(_Record):
    id: str
    detected_at: str
    narratives: list[EditionNarrative]
    signal_count: int
    processing_time: float


class HistoryData(_Record):
    editions: list[Edition] = Field(default_factory=list)
    last_updated: str


class TrajectoryPoint(_Record):
    edition: str
    detected_at: str
    confidence: float
    status: EditionStatus | None = None
