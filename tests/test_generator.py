from __future__ import annotations

import json
from typing import Any

import pytest

from solpulse.brain.generator import IdeaGenerator, default_idea, map_ideas
from solpulse.llm_client import ModelResponse
from solpulse.models import BuildIdea, Narrative, Signal


class _ScriptedRouter:
    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def route(self, role: str, messages: list[dict[str, str]], **options: Any) -> ModelResponse:
        self.calls.append({"role": role, "messages": messages, **options})
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return ModelResponse(content=item, provider="anthropic", model="claude-sonnet")


class _History:
    def __init__(self, by_slug: dict[str | None, list[str]]) -> None:
        self.by_slug = by_slug
        self.calls: list[tuple[str | None, int]] = []

    def recent_idea_titles(self, slug: str | None = None, edition_limit: int = 3) -> list[str]:
        self.calls.append((slug, edition_limit))
        return list(self.by_slug.get(slug, []))


def _narrative() -> Narrative:
    signal = Signal(
        id="market-price-JTO",
        source="market",
        category="Price Movement",
        metric="price_change_24h",
        value=3.1,
        delta=12.5,
        description="JTO up 12.5% in 24h",
        related_tokens=["JTO"],
        timestamp="2026-01-01T00:00:00+00:00",
        strength=70,
        ai_context="restaking demand",
    )
    return Narrative(
        id="nar-1",
        name="Liquid Staking Surge",
        slug="liquid-staking-surge",
        category="DeFi",
        confidence=80,
        summary="LST demand keeps climbing.",
        explanation="Jito and Sanctum lead.",
        signals=[signal],
        detected_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
        trend="rising",
    )


FIRST_PASS = json.dumps({"ideas": [
    {"title": "LST Rebalancer", "complexity": "Medium", "impact": "High", "techStack": ["Anchor"]},
    {"description": "no title, skipped"},
    {"title": "Restake Blink", "complexity": "Trivial"},
]})
REFINED = json.dumps({"ideas": [
    {"title": "Validator-Aware LST Rebalancer", "complexity": "Medium", "supportingSignalIds": ["market-price-JTO"]},
    {"title": "Restake Blink", "complexity": "Low", "whyNow": "JTO rallied 12.5%"},
]})


@pytest.mark.asyncio
async def test_generate_then_critique_returns_refined_ideas() -> None:
    router = _ScriptedRouter([FIRST_PASS, REFINED])
    generator = IdeaGenerator(router, tracked_tokens=["JTO"])  # type: ignore[arg-type]

    ideas = await generator.generate(_narrative(), previous_titles=["Old Vault"])

    assert [i.title for i in ideas] == ["Validator-Aware LST Rebalancer", "Restake Blink"]
    assert [i.id for i in ideas] == ["idea-nar-1-0", "idea-nar-1-1"]
    assert all(i.narrative_id == "nar-1" for i in ideas)
    assert ideas[1].complexity == "Low"
    assert ideas[0].supporting_signal_ids == ["market-price-JTO"]

    assert [c["role"] for c in router.calls] == ["writing", "writing"]
    system = router.calls[0]["messages"][0]["content"]
    assert "- Old Vault" in system
    assert "[market-price-JTO]" in system
    assert "Jito (MEV & liquid staking)" in system
    user = router.calls[0]["messages"][1]["content"]
    assert "restaking demand" in user
    # the critique pass sees the first-pass ideas
    assert "LST Rebalancer" in router.calls[1]["messages"][1]["content"]
    assert generator.get_stats() == {"ideas_generated": 2, "critique_failures": 0}


@pytest.mark.asyncio
async def test_failed_critique_keeps_first_pass() -> None:
    router = _ScriptedRouter([FIRST_PASS, RuntimeError("writer timeout")])
    generator = IdeaGenerator(router)  # type: ignore[arg-type]

    ideas = await generator.generate(_narrative())

    assert [i.title for i in ideas] == ["LST Rebalancer", "Restake Blink"]
    assert [i.id for i in ideas] == ["idea-nar-1-0", "idea-nar-1-2"]
    # unknown levels are normalised
    assert ideas[1].complexity == "Medium"
    assert generator.critique_failures == 1


@pytest.mark.asyncio
async def test_unparseable_critique_keeps_first_pass() -> None:
    router = _ScriptedRouter([FIRST_PASS, "I'd keep them all as they are."])
    generator = IdeaGenerator(router)  # type: ignore[arg-type]
    ideas = await generator.generate(_narrative())
    assert [i.title for i in ideas] == ["LST Rebalancer", "Restake Blink"]
    assert generator.critique_failures == 1


@pytest.mark.asyncio
async def test_failed_generation_yields_the_templated_idea() -> None:
    router = _ScriptedRouter([RuntimeError("all providers down")])
    narrative = _narrative()

    ideas = await IdeaGenerator(router).generate(narrative)  # type: ignore[arg-type]

    assert ideas == [default_idea(narrative)]
    assert ideas[0].title == "Liquid Staking Surge Explorer"
    assert ideas[0].id == "idea-nar-1-default"
    assert len(router.calls) == 1


@pytest.mark.asyncio
async def test_previous_titles_fall_back_to_history_deduplicated() -> None:
    history = _History({
        "liquid-staking-surge": ["LST Rebalancer", "Validator Scorecard"],
        None: ["Validator Scorecard", "Memecoin Radar"],
    })
    router = _ScriptedRouter([json.dumps({"ideas": []})])
    generator = IdeaGenerator(router, history=history)  # type: ignore[arg-type]

    ideas = await generator.generate(_narrative())

    assert history.calls == [("liquid-staking-surge", 3), (None, 2)]
    system = router.calls[0]["messages"][0]["content"]
    assert system.count("- Validator Scorecard") == 1
    assert "- Memecoin Radar" in system
    # an empty idea list skips the critique and templates one idea
    assert len(router.calls) == 1
    assert [i.id for i in ideas] == ["idea-nar-1-default"]


@pytest.mark.asyncio
async def test_client_titles_take_precedence_over_history() -> None:
    history = _History({"liquid-staking-surge": ["From History"]})
    router = _ScriptedRouter([FIRST_PASS, REFINED])
    await IdeaGenerator(router, history=history).generate(_narrative(), ["From Client"])  # type: ignore[arg-type]

    system = router.calls[0]["messages"][0]["content"]
    assert "- From Client" in system
    assert "From History" not in system
    assert history.calls == []


@pytest.mark.asyncio
async def test_deep_dive_reads_first_entry_or_top_level() -> None:
    idea = BuildIdea(id="idea-1", title="Restake Blink", narrative_id="nar-1", tech_stack=["Solana Actions"])
    router = _ScriptedRouter([
        json.dumps({"deepDives": [{"problemToSolve": "P1", "possibleSolution": "S1"}]}),
        json.dumps({"problemToSolve": "P2", "possibleSolution": "S2"}),
    ])
    generator = IdeaGenerator(router)  # type: ignore[arg-type]

    first = await generator.deep_dive(idea, "Liquid Staking Surge", "LSTs", signals=_narrative().signals)
    second = await generator.deep_dive(idea, "Liquid Staking Surge")

    assert first == {"problemToSolve": "P1", "possibleSolution": "S1"}
    assert second == {"problemToSolve": "P2", "possibleSolution": "S2"}
    assert "JTO up 12.5% in 24h" in router.calls[0]["messages"][0]["content"]
    assert "No signal evidence available" in router.calls[1]["messages"][0]["content"]
    assert 'Idea: "Restake Blink"' in router.calls[0]["messages"][1]["content"]


@pytest.mark.asyncio
async def test_deep_dive_errors_propagate() -> None:
    idea = BuildIdea(id="idea-1", title="Restake Blink", narrative_id="nar-1")
    generator = IdeaGenerator(_ScriptedRouter([RuntimeError("down")]))  # type: ignore[arg-type]
    with pytest.raises(RuntimeError, match="down"):
        await generator.deep_dive(idea, "Liquid Staking Surge")


def test_map_ideas_skips_non_objects_and_untitled_entries() -> None:
    ideas = map_ideas(["junk", {"title": ""}, {"title": "Keeper", "impact": "High"}], "nar-9")
    assert [(i.id, i.title, i.impact) for i in ideas] == [("idea-nar-9-2", "Keeper", "High")]
