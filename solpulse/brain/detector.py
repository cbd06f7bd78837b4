"""NarrativeDetector — turns a signal set into narratives.

Run states:
  IDLE -> SELECTING -> INVOKING -> PARSED | RETRY_PENDING -> (PARSED | FAILED)
       -> ENRICHING_IDEAS -> DONE

INVOKING is bounded by a deadline; when it expires the call is cancelled
(TIMED_OUT) and the run takes the rule-based branch, as do FAILED and any
router error. detect() never raises.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from solpulse.brain.fallback import default_narratives, rule_based_narratives
from solpulse.brain.generator import IdeaGenerator
from solpulse.brain.parsing import parse_json_object
from solpulse.brain.prompts import NARRATIVE_DETECTION_PROMPT, REPAIR_INSTRUCTION
from solpulse.brain.router import ModelRouter
from solpulse.brain.selector import select_diverse_signals, source_counts
from solpulse.collectors.aggregator import cluster_signals, cluster_strength
from solpulse.collectors.formatting import format_delta, format_scale
from solpulse.models import NARRATIVE_CATEGORIES, Narrative, Recommendation, Signal
from solpulse.utils import random_suffix, slugify, utc_now_iso

logger = logging.getLogger(__name__)

_TRENDS = ("rising", "stable", "declining")
_DEFAULT_CONFIDENCE = 50.0


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _confidence(value: Any) -> float:
    """Model-reported confidence as a float; missing or non-numeric means the default."""
    if isinstance(value, bool):
        return _DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return _DEFAULT_CONFIDENCE
    if confidence != confidence:  # NaN
        return _DEFAULT_CONFIDENCE
    return confidence or _DEFAULT_CONFIDENCE


class SynthesisState(str, enum.Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    INVOKING = "invoking"
    PARSED = "parsed"
    RETRY_PENDING = "retry_pending"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ENRICHING_IDEAS = "enriching_ideas"
    DONE = "done"


@dataclass
class DetectionResult:
    narratives: list[Narrative]
    signal_contexts: dict[str, str] = field(default_factory=dict)
    degraded: bool = False
    # ai | fallback | default
    mode: str = "ai"
    states: list[SynthesisState] = field(default_factory=list)


class _ParseFailed(Exception):
    pass


class NarrativeDetector:
    def __init__(
        self,
        router: ModelRouter,
        generator: IdeaGenerator | None = None,
        max_signals: int = 50,
        min_per_source: int = 3,
        max_clusters: int = 25,
        timeout: float = 45.0,
        max_tokens: int = 12000,
        repair_max_tokens: int = 6000,
    ) -> None:
        self._router = router
        self._generator = generator
        self._max_signals = max_signals
        self._min_per_source = min_per_source
        self._max_clusters = max_clusters
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._repair_max_tokens = repair_max_tokens
        self.runs = 0
        self.degraded_runs = 0
        self.repairs = 0

    # ── context building ───────────────────────────────────────────────
    @staticmethod
    def _signal_line(s: Signal) -> str:
        parts = [f"[{s.id}] ({s.source}/{s.category}) {s.description}"]
        move = format_delta(s.delta)
        if move:
            parts.append(f"delta: {move}")
        parts.append(f"value: {format_scale(s.value)}")
        if s.related_tokens:
            parts.append(f"tokens: {','.join(s.related_tokens)}")
        if s.related_projects:
            parts.append(f"projects: {','.join(s.related_projects)}")
        if s.full_text:
            parts.append(f"context: {s.full_text[:200]}")
        parts.append(f"[strength: {s.strength:.0f}]")
        return " | ".join(parts)

    def build_context(self, selected: list[Signal], all_signals: list[Signal]) -> str:
        clusters = sorted(
            ((key, cluster_strength(members), members) for key, members in cluster_signals(all_signals).items()),
            key=lambda c: c[1],
            reverse=True,
        )[: self._max_clusters]
        signal_block = "\n".join(self._signal_line(s) for s in selected)
        cluster_block = "\n\n".join(
            f'Cluster "{key}" (strength: {strength:.0f}):\n'
            + "\n".join(f"  - [{s.id}] {s.description}" for s in members)
            for key, strength, members in clusters
        )
        n_sources = len(source_counts(selected))
        return (
            f"## Raw Signals ({len(selected)} signals, diversity-selected across {n_sources} sources)\n"
            f"{signal_block}\n\n"
            f"## Signal Clusters ({len(clusters)} clusters)\n{cluster_block}\n\n"
            'Respond with a JSON object containing a "narratives" array and a "topSignalInsights" map. '
            f"IMPORTANT: topSignalInsights MUST have an entry for EVERY signal ID listed above — all {len(selected)} of them."
        )

    # ── reasoning call with one repair ─────────────────────────────────
    async def _invoke(self, user_message: str, states: list[SynthesisState]) -> dict[str, Any]:
        messages = [
            {"role": "system", "content": NARRATIVE_DETECTION_PROMPT},
            {"role": "user", "content": user_message},
        ]
        response = await self._router.route(
            "reasoning", messages, json_mode=True, max_tokens=self._max_tokens, temperature=0.3,
        )
        logger.info(
            "[detector] reasoning completed via %s/%s (%s tokens)",
            response.provider,
            response.model,
            response.tokens_used or "?",
        )
        try:
            parsed = parse_json_object(response.content)
            states.append(SynthesisState.PARSED)
            return parsed
        except ValueError as exc:
            states.append(SynthesisState.RETRY_PENDING)
            logger.warning("[detector] JSON parse failed, issuing one repair call: %s", exc)
            error = str(exc)

        self.repairs += 1
        repair = await self._router.route(
            "reasoning",
            [
                *messages,
                {"role": "assistant", "content": response.content},
                {"role": "user", "content": REPAIR_INSTRUCTION.format(error=error)},
            ],
            json_mode=True,
            max_tokens=self._repair_max_tokens,
            temperature=0.2,
        )
        try:
            parsed = parse_json_object(repair.content)
        except ValueError as exc:
            states.append(SynthesisState.FAILED)
            raise _ParseFailed(str(exc)) from exc
        states.append(SynthesisState.PARSED)
        return parsed

    # ── mapping ────────────────────────────────────────────────────────
    @staticmethod
    def _entries(parsed: dict[str, Any]) -> list[dict[str, Any]]:
        raw = parsed.get("narratives")
        if not isinstance(raw, list):
            return []
        return [entry for entry in raw if isinstance(entry, dict) and entry.get("name")]

    @classmethod
    def _collect_contexts(cls, parsed: dict[str, Any]) -> dict[str, str]:
        contexts: dict[str, str] = {}
        for key in ("topSignalInsights", "signalContexts"):
            value = parsed.get(key)
            if isinstance(value, dict):
                contexts.update({str(k): str(v) for k, v in value.items() if v})
        for entry in cls._entries(parsed):
            for s in _as_list(entry.get("supportingSignals")):
                if isinstance(s, dict) and s.get("id") and s.get("context"):
                    contexts[str(s["id"])] = str(s["context"])
        return contexts

    @staticmethod
    def _map_narrative(
        entry: dict[str, Any], signals: list[Signal], contexts: dict[str, str], now: str
    ) -> Narrative:
        supporting = _as_list(entry.get("supportingSignals")) or _as_list(entry.get("supportingSignalIds"))
        ids = {str(s.get("id")) if isinstance(s, dict) else str(s) for s in supporting}
        members = [
            s.model_copy(update={"ai_context": contexts[s.id]}) if s.id in contexts else s
            for s in signals
            if s.id in ids
        ]
        rec = entry.get("recommendation")
        category = entry.get("category")
        trend = entry.get("trend")
        name = str(entry["name"])
        return Narrative(
            id=f"nar-{int(time.time() * 1000)}-{random_suffix()}",
            name=name,
            slug=slugify(name),
            category=category if category in NARRATIVE_CATEGORIES else "Other",
            confidence=_confidence(entry.get("confidence")),
            summary=str(entry.get("summary") or ""),
            explanation=str(entry.get("explanation") or ""),
            signals=members,
            signal_strength=cluster_strength(members),
            detected_at=now,
            updated_at=now,
            trend=trend if trend in _TRENDS else "stable",
            recommendation=Recommendation(
                thesis=str(rec.get("thesis") or ""),
                actionables=[str(a) for a in _as_list(rec.get("actionables"))],
                risks=[str(r) for r in _as_list(rec.get("risks"))],
            ) if isinstance(rec, dict) else None,
        )

    async def _enrich_ideas(self, narratives: list[Narrative], previous_titles: list[str] | None) -> list[Narrative]:
        if self._generator is None:
            return narratives
        results = await asyncio.gather(
            *(self._generator.generate(n, previous_titles) for n in narratives),
            return_exceptions=True,
        )
        enriched: list[Narrative] = []
        for narrative, ideas in zip(narratives, results):
            if isinstance(ideas, BaseException):
                logger.error("[detector] idea generation failed for %r: %s", narrative.name, ideas)
                enriched.append(narrative)
            else:
                enriched.append(narrative.model_copy(update={"ideas": ideas}))
        return enriched

    def _fallback(self, signals: list[Signal], states: list[SynthesisState]) -> DetectionResult:
        self.degraded_runs += 1
        states.append(SynthesisState.DONE)
        return DetectionResult(
            narratives=rule_based_narratives(signals), degraded=True, mode="fallback", states=states,
        )

    # ── entry point ────────────────────────────────────────────────────
    async def detect(self, signals: list[Signal], previous_titles: list[str] | None = None) -> DetectionResult:
        self.runs += 1
        states = [SynthesisState.IDLE]
        if not signals:
            self.degraded_runs += 1
            states.append(SynthesisState.DONE)
            return DetectionResult(narratives=default_narratives(), degraded=True, mode="default", states=states)

        states.append(SynthesisState.SELECTING)
        selected = select_diverse_signals(signals, self._max_signals, self._min_per_source)
        logger.info(
            "[detector] selected %d/%d signals for reasoning (sources: %s) — models: %s",
            len(selected),
            len(signals),
            ", ".join(f"{k}:{v}" for k, v in source_counts(selected).items()),
            self._router.active_models(),
        )
        user_message = self.build_context(selected, signals)

        states.append(SynthesisState.INVOKING)
        try:
            parsed = await asyncio.wait_for(self._invoke(user_message, states), timeout=self._timeout)
        except asyncio.TimeoutError:
            states.append(SynthesisState.TIMED_OUT)
            logger.warning("[detector] reasoning exceeded %.0fs deadline, using rule-based synthesis", self._timeout)
            return self._fallback(signals, states)
        except _ParseFailed as exc:
            logger.error("[detector] repair attempt still invalid (%s), using rule-based synthesis", exc)
            return self._fallback(signals, states)
        except Exception:
            logger.error("[detector] reasoning call failed, using rule-based synthesis", exc_info=True)
            return self._fallback(signals, states)

        contexts = self._collect_contexts(parsed)
        now = utc_now_iso()
        narratives: list[Narrative] = []
        for entry in self._entries(parsed):
            try:
                narratives.append(self._map_narrative(entry, signals, contexts, now))
            except (TypeError, ValueError) as exc:
                logger.warning("[detector] dropping malformed narrative %r: %s", entry.get("name"), exc)
        if not narratives:
            logger.warning("[detector] reasoning returned no narratives, using rule-based synthesis")
            return self._fallback(signals, states)
        logger.info("[detector] AI context applied to %d/%d signals", len(contexts), len(signals))

        states.append(SynthesisState.ENRICHING_IDEAS)
        narratives = await self._enrich_ideas(narratives, previous_titles)
        states.append(SynthesisState.DONE)
        return DetectionResult(narratives=narratives, signal_contexts=contexts, mode="ai", states=states)

    def get_stats(self) -> dict[str, int]:
        return {"runs": self.runs, "degraded_runs": self.degraded_runs, "repairs": self.repairs}
