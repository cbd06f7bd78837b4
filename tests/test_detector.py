from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from solpulse.brain.detector import NarrativeDetector, SynthesisState
from solpulse.llm_client import ModelResponse
from solpulse.models import BuildIdea, Narrative, Signal


class _ScriptedRouter:
    """Returns scripted replies in order; exceptions in the script are raised."""

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def route(self, role: str, messages: list[dict[str, str]], **options: Any) -> ModelResponse:
        self.calls.append({"role": role, "messages": messages, **options})
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return ModelResponse(content=item, provider="openai", model="o3", tokens_used=100)

    def active_models(self) -> dict[str, Any]:
        return {"reasoning": "o3 (reasoning)"}


class _HangingRouter(_ScriptedRouter):
    def __init__(self) -> None:
        super().__init__([])
        self.cancelled = False

    async def route(self, role: str, messages: list[dict[str, str]], **options: Any) -> ModelResponse:
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        raise AssertionError("unreachable")


def _signal(sid: str, source: str, strength: float = 60, **kw: Any) -> Signal:
    return Signal(
        id=sid,
        source=source,
        category=kw.pop("category", "Trending"),
        metric="m",
        value=kw.pop("value", 1),
        delta=kw.pop("delta", 0),
        description=kw.pop("description", f"signal {sid}"),
        timestamp="2026-01-01T00:00:00+00:00",
        strength=strength,
        **kw,
    )


SIGNALS = [
    _signal("market-price-JTO", "market", 80, delta=12.5, related_tokens=["JTO"], related_projects=["Jito"]),
    _signal("github-active-jito", "github", 70, related_projects=["jito"]),
    _signal("onchain-tps", "onchain", 55, value=4100),
    _signal("social-helius-0", "social", 50, full_text="Compression costs fall again"),
    _signal("defi-llama-tvl-kamino", "defi-llama", 65, delta=-3),
    _signal("governance-jup-dao", "governance", 40),
]

GOOD_REPLY = json.dumps({
    "narratives": [
        {
            "name": "Liquid Staking Surge",
            "category": "DeFi",
            "trend": "rising",
            "confidence": 82,
            "summary": "LST demand keeps climbing.",
            "explanation": "Jito token and repo activity move together.",
            "supportingSignals": [{"id": "market-price-JTO", "context": "JTO rallies on restaking demand"}],
            "recommendation": {"thesis": "Restaking", "actionables": ["Build vault"], "risks": ["Depeg"]},
        },
        {
            "name": "Mystery Theme",
            "category": "Weird",
            "trend": "sideways",
            "supportingSignalIds": ["github-active-jito", "onchain-tps"],
        },
        {"summary": "entry without a name is dropped"},
    ],
    "topSignalInsights": {"github-active-jito": "Jito client commits accelerate"},
})


@pytest.mark.asyncio
async def test_successful_reasoning_maps_narratives_and_contexts() -> None:
    router = _ScriptedRouter([GOOD_REPLY])
    result = await NarrativeDetector(router).detect(SIGNALS)

    assert result.mode == "ai"
    assert result.degraded is False
    assert result.states == [
        SynthesisState.IDLE,
        SynthesisState.SELECTING,
        SynthesisState.INVOKING,
        SynthesisState.PARSED,
        SynthesisState.ENRICHING_IDEAS,
        SynthesisState.DONE,
    ]
    assert [n.name for n in result.narratives] == ["Liquid Staking Surge", "Mystery Theme"]

    staking, mystery = result.narratives
    assert staking.slug == "liquid-staking-surge"
    assert staking.confidence == 82
    assert staking.trend == "rising"
    assert [s.id for s in staking.signals] == ["market-price-JTO"]
    assert staking.signals[0].ai_context == "JTO rallies on restaking demand"
    assert staking.recommendation is not None and staking.recommendation.risks == ["Depeg"]

    assert mystery.category == "Other"
    assert mystery.trend == "stable"
    assert mystery.confidence == 50
    assert {s.id for s in mystery.signals} == {"github-active-jito", "onchain-tps"}
    assert mystery.recommendation is None

    assert result.signal_contexts == {
        "github-active-jito": "Jito client commits accelerate",
        "market-price-JTO": "JTO rallies on restaking demand",
    }
    call = router.calls[0]
    assert call["role"] == "reasoning"
    assert call["json_mode"] is True


@pytest.mark.asyncio
async def test_invalid_reply_and_invalid_repair_degrade_to_rule_based() -> None:
    bad = "```json\n{\"narratives\": [ {\"name\": \"Half\n```"
    router = _ScriptedRouter([bad, "Here is the fixed JSON: {oops}"])
    detector = NarrativeDetector(router)

    result = await detector.detect(SIGNALS)

    assert len(router.calls) == 2
    repair_messages = router.calls[1]["messages"]
    assert [m["role"] for m in repair_messages] == ["system", "user", "assistant", "user"]
    assert repair_messages[2]["content"] == bad
    assert "ONLY valid JSON" in repair_messages[3]["content"]

    assert result.degraded is True
    assert result.mode == "fallback"
    assert result.narratives
    assert all(n.confidence <= 40 for n in result.narratives)
    assert SynthesisState.RETRY_PENDING in result.states
    assert SynthesisState.FAILED in result.states
    assert result.states[-1] is SynthesisState.DONE
    assert detector.get_stats() == {"runs": 1, "degraded_runs": 1, "repairs": 1}


@pytest.mark.asyncio
async def test_repair_call_can_recover_the_run() -> None:
    router = _ScriptedRouter(["Sure! {\"narratives\": [", GOOD_REPLY])
    detector = NarrativeDetector(router)

    result = await detector.detect(SIGNALS)

    assert result.mode == "ai"
    assert len(result.narratives) == 2
    assert result.states[3:5] == [SynthesisState.RETRY_PENDING, SynthesisState.PARSED]
    assert detector.repairs == 1


@pytest.mark.asyncio
async def test_deadline_cancels_the_call_and_falls_back() -> None:
    router = _HangingRouter()
    detector = NarrativeDetector(router, timeout=0.05)

    result = await detector.detect(SIGNALS)

    assert router.cancelled is True
    assert SynthesisState.TIMED_OUT in result.states
    assert result.mode == "fallback"
    assert result.degraded is True
    assert result.narratives


@pytest.mark.asyncio
async def test_router_failure_falls_back() -> None:
    router = _ScriptedRouter([RuntimeError("all providers down")])
    result = await NarrativeDetector(router).detect(SIGNALS)
    assert result.mode == "fallback"
    assert result.degraded is True
    assert {n.id for n in result.narratives} == {"fallback-capital", "fallback-builders", "fallback-community"}


@pytest.mark.asyncio
async def test_zero_narratives_from_the_model_falls_back() -> None:
    router = _ScriptedRouter([json.dumps({"narratives": []})])
    result = await NarrativeDetector(router).detect(SIGNALS)
    assert result.mode == "fallback"
    assert result.narratives


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"narratives": [{"name": "Liquid Staking Surge", "confidence": "high"}]},
        {"narratives": 5, "topSignalInsights": {"onchain-tps": "busy"}},
        {"narratives": [{
            "name": "Liquid Staking Surge",
            "supportingSignals": 7,
            "recommendation": {"thesis": "Restaking", "actionables": [{"step": "Build vault"}], "risks": "Depeg"},
        }]},
    ],
    ids=["text-confidence", "narratives-not-a-list", "nested-wrong-types"],
)
async def test_wrongly_typed_reply_never_escapes_detect(payload: dict[str, Any]) -> None:
    result = await NarrativeDetector(_ScriptedRouter([json.dumps(payload)])).detect(SIGNALS)

    assert result.narratives
    assert result.states[-1] is SynthesisState.DONE
    if result.mode == "ai":
        (narrative,) = result.narratives
        assert narrative.name == "Liquid Staking Surge"
        assert 0 <= narrative.confidence <= 100
    else:
        assert result.degraded is True


@pytest.mark.asyncio
async def test_wrongly_typed_fields_are_coerced() -> None:
    payload = {"narratives": [
        "not an object",
        {"name": "Liquid Staking Surge", "confidence": "high"},
        {
            "name": "Restaking Vaults",
            "confidence": "64",
            "recommendation": {"actionables": [{"step": "Build vault"}, 3], "risks": "Depeg"},
        },
    ]}
    result = await NarrativeDetector(_ScriptedRouter([json.dumps(payload)])).detect(SIGNALS)

    assert result.mode == "ai"
    surge, vaults = result.narratives
    assert surge.confidence == 50
    assert vaults.confidence == 64
    assert vaults.recommendation is not None
    assert vaults.recommendation.actionables == ["{'step': 'Build vault'}", "3"]
    assert vaults.recommendation.risks == []


@pytest.mark.asyncio
async def test_non_list_narratives_fall_back() -> None:
    result = await NarrativeDetector(_ScriptedRouter([json.dumps({"narratives": 5})])).detect(SIGNALS)
    assert result.mode == "fallback"
    assert result.degraded is True
    assert result.narratives


@pytest.mark.asyncio
async def test_no_signals_returns_defaults_without_calling_a_model() -> None:
    router = _ScriptedRouter([])
    result = await NarrativeDetector(router).detect([])
    assert result.mode == "default"
    assert result.degraded is True
    assert [n.id for n in result.narratives] == ["default-1"]
    assert router.calls == []


class _PartlyBrokenGenerator:
    def __init__(self) -> None:
        self.previous: list[Any] = []

    async def generate(self, narrative: Narrative, previous_titles: list[str] | None = None) -> list[BuildIdea]:
        self.previous.append(previous_titles)
        if narrative.name == "Mystery Theme":
            raise RuntimeError("writer unavailable")
        return [BuildIdea(id=f"idea-{narrative.id}-0", title="Restake Vault", narrative_id=narrative.id)]


@pytest.mark.asyncio
async def test_one_failed_idea_generation_does_not_affect_other_narratives() -> None:
    generator = _PartlyBrokenGenerator()
    detector = NarrativeDetector(_ScriptedRouter([GOOD_REPLY]), generator=generator)  # type: ignore[arg-type]

    result = await detector.detect(SIGNALS, previous_titles=["Old Idea"])

    staking, mystery = result.narratives
    assert [i.title for i in staking.ideas] == ["Restake Vault"]
    assert mystery.ideas == []
    assert result.mode == "ai"
    assert generator.previous == [["Old Idea"], ["Old Idea"]]


def test_context_lists_selected_signals_and_clusters() -> None:
    detector = NarrativeDetector(_ScriptedRouter([]))  # type: ignore[arg-type]
    context = detector.build_context(SIGNALS, SIGNALS)

    assert context.startswith("## Raw Signals (6 signals, diversity-selected across 6 sources)")
    for s in SIGNALS:
        assert f"[{s.id}]" in context
    assert 'Cluster "project:jito"' in context
    assert "context: Compression costs fall again" in context
    assert "all 6 of them" in context
