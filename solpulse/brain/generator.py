"""IdeaGenerator — build ideas per narrative via the writing role.

Two passes: generate, then a self-critique that may rewrite weak ideas. A
failed critique keeps the first-pass ideas; a failed generation yields a
single templated idea so a narrative never comes back idea-less from here.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from solpulse.brain.parsing import parse_json_object
from solpulse.brain.prompts import (
    IDEA_CRITIQUE_PROMPT,
    IDEA_DEEPDIVE_PROMPT,
    IDEA_GENERATION_PROMPT,
    category_features,
    known_projects_context,
)
from solpulse.brain.router import ModelRouter
from solpulse.collectors.formatting import format_delta
from solpulse.history import EditionHistory
from solpulse.models import BuildIdea, Narrative, Signal

logger = logging.getLogger(__name__)

_LEVELS = ("Low", "Medium", "High")


def _level(value: Any) -> str:
    return value if value in _LEVELS else "Medium"


def _signal_evidence(signals: list[Signal]) -> str:
    lines = []
    for s in signals:
        parts = [f"- ({s.source}) {s.description}"]
        move = format_delta(s.delta)
        if move:
            parts.append(f"({move})")
        if s.related_tokens:
            parts.append(f"[{', '.join(s.related_tokens)}]")
        if s.ai_context:
            parts.append(f"— {s.ai_context}")
        lines.append(" ".join(parts))
    return "\n".join(lines)


def map_ideas(raw_ideas: list[Any], narrative_id: str) -> list[BuildIdea]:
    ideas: list[BuildIdea] = []
    for i, raw in enumerate(raw_ideas):
        if not isinstance(raw, dict) or not raw.get("title"):
            continue
        ideas.append(BuildIdea(
            id=f"idea-{narrative_id}-{i}",
            title=str(raw["title"]),
            description=str(raw.get("description") or ""),
            tech_stack=list(raw.get("techStack") or []),
            complexity=_level(raw.get("complexity")),
            impact=_level(raw.get("impact")),
            narrative_id=narrative_id,
            solana_features=list(raw.get("solanaFeatures") or []),
            supporting_signal_ids=list(raw.get("supportingSignalIds") or []),
            signal_relevance=dict(raw.get("signalRelevance") or {}),
            why_now=str(raw.get("whyNow") or ""),
            target_user=str(raw.get("targetUser") or ""),
            problem_to_solve=raw.get("problemToSolve") or "",
            possible_solution=raw.get("possibleSolution") or "",
        ))
    return ideas


def default_idea(narrative: Narrative) -> BuildIdea:
    return BuildIdea(
        id=f"idea-{narrative.id}-default",
        title=f"{narrative.name} Explorer",
        description=f"Build a dashboard to track and visualise the {narrative.name} trend in real time.",
        tech_stack=["Next.js", "Helius API", "Recharts"],
        complexity="Low",
        impact="Medium",
        narrative_id=narrative.id,
        solana_features=["RPC", "Token Accounts"],
        supporting_signal_ids=[s.id for s in narrative.signals[:3]],
        why_now=f"The {narrative.name} narrative is currently active with {len(narrative.signals)} supporting signals.",
        target_user="Solana ecosystem participants tracking this trend.",
        problem_to_solve="",
        possible_solution="",
    )


class IdeaGenerator:
    def __init__(
        self,
        router: ModelRouter,
        history: EditionHistory | None = None,
        tracked_tokens: list[str] | None = None,
        tracked_orgs: list[str] | None = None,
    ) -> None:
        self._router = router
        self._history = history
        self._known_projects = known_projects_context(tracked_tokens or [], tracked_orgs or [])
        self.ideas_generated = 0
        self.critique_failures = 0

    def _previous_titles(self, narrative: Narrative, client_titles: list[str] | None) -> list[str]:
        if client_titles:
            return list(client_titles)
        if self._history is None:
            return []
        titles = self._history.recent_idea_titles(narrative.slug, 3) + self._history.recent_idea_titles(None, 2)
        return list(dict.fromkeys(titles))

    async def generate(self, narrative: Narrative, previous_titles: list[str] | None = None) -> list[BuildIdea]:
        seen = self._previous_titles(narrative, previous_titles)
        signal_ids = "\n".join(
            f"- [{s.id}] ({s.source}) {s.description[:120]}" for s in narrative.signals
        )
        system_prompt = IDEA_GENERATION_PROMPT.format(
            narrative_name=narrative.name,
            narrative_explanation=narrative.explanation,
            signal_ids=signal_ids or "No signals available",
            known_projects=self._known_projects,
            category_features=category_features(narrative.category),
            previous_ideas="\n".join(f"- {t}" for t in seen) if seen else "None — this is the first run.",
        )
        evidence = _signal_evidence(narrative.signals)
        user_prompt = (
            f'Generate build ideas for the "{narrative.name}" narrative.\n\n'
            f"Category: {narrative.category}\nConfidence: {narrative.confidence:.0f}%\nTrend: {narrative.trend}\n\n"
            f"Context: {narrative.summary}"
            + (f"\n\nSupporting evidence:\n{evidence}" if evidence else "")
            + '\n\nRespond with a JSON object containing an "ideas" array.'
        )

        try:
            response = await self._router.route(
                "writing",
                [{"role": "system", "content": system_prompt}, {"role": "user", "content": user_prompt}],
                json_mode=True,
                max_tokens=3500,
                temperature=0.65,
            )
            raw_ideas = parse_json_object(response.content).get("ideas") or []
            logger.info(
                "[ideas] %d ideas via %s/%s for %r", len(raw_ideas), response.provider, response.model, narrative.name
            )
        except Exception:
            logger.error("[ideas] generation failed for %r", narrative.name, exc_info=True)
            return [default_idea(narrative)]

        raw_ideas = await self._critique(narrative, raw_ideas)
        ideas = map_ideas(raw_ideas, narrative.id) or [default_idea(narrative)]
        self.ideas_generated += len(ideas)
        return ideas

    async def _critique(self, narrative: Narrative, raw_ideas: list[Any]) -> list[Any]:
        if not raw_ideas:
            return raw_ideas
        try:
            response = await self._router.route(
                "writing",
                [
                    {"role": "system", "content": IDEA_CRITIQUE_PROMPT.format(narrative_name=narrative.name)},
                    {
                        "role": "user",
                        "content": (
                            f'Review and refine these ideas for the "{narrative.name}" narrative:\n\n'
                            f"{json.dumps({'ideas': raw_ideas}, indent=2)}\n\n"
                            'Return the refined set as a JSON object with an "ideas" array.'
                        ),
                    },
                ],
                json_mode=True,
                max_tokens=3500,
                temperature=0.3,
            )
            refined = parse_json_object(response.content).get("ideas")
        except Exception:
            self.critique_failures += 1
            logger.warning("[ideas] critique pass failed for %r, keeping first pass", narrative.name, exc_info=True)
            return raw_ideas
        if isinstance(refined, list) and refined:
            return refined
        return raw_ideas

    async def deep_dive(
        self,
        idea: BuildIdea,
        narrative_name: str,
        narrative_summary: str = "",
        signals: list[Signal] | None = None,
    ) -> dict[str, str]:
        """Problem/solution brief for one idea. Provider errors propagate."""
        evidence = _signal_evidence(signals or [])
        system_prompt = IDEA_DEEPDIVE_PROMPT.format(
            narrative_name=narrative_name,
            narrative_summary=narrative_summary,
            signal_evidence=evidence or "No signal evidence available",
        )
        idea_summary = (
            f'### Idea: "{idea.title}"\n'
            f"Description: {idea.description}\n"
            f"Tech Stack: {', '.join(idea.tech_stack)}\n"
            f"Why Now: {idea.why_now}\n"
            f"Target User: {idea.target_user}\n"
            f"Solana Features: {', '.join(idea.solana_features)}"
        )
        response = await self._router.route(
            "writing",
            [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": (
                        "Write a detailed problem/solution brief for the idea below. Return a JSON object "
                        f'with a "deepDives" array containing one entry.\n\n{idea_summary}'
                    ),
                },
            ],
            json_mode=True,
            max_tokens=2000,
            temperature=0.5,
        )
        parsed = parse_json_object(response.content)
        dives = parsed.get("deepDives")
        dive = dives[0] if isinstance(dives, list) and dives and isinstance(dives[0], dict) else parsed
        logger.info("[ideas] deep-dive generated for %r", idea.title)
        return {
            "problemToSolve": str(dive.get("problemToSolve") or ""),
            "possibleSolution": str(dive.get("possibleSolution") or ""),
        }

    def get_stats(self) -> dict[str, int]:
        return {"ideas_generated": self.ideas_generated, "critique_failures": self.critique_failures}
