"""Idea endpoints — regenerate ideas for known narratives, and per-idea deep dives."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from solpulse.api.deps import get_services, rate_limited
from solpulse.models import BuildIdea, Narrative, Signal
from solpulse.rate_limit import RateLimits

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ideas"])


class RegenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    narratives: list[Narrative] = Field(default_factory=list)
    previous_idea_titles: list[str] = Field(default_factory=list, alias="previousIdeaTitles")


class DeepDiveNarrative(BaseModel):
    name: str = ""
    summary: str = ""
    signals: list[Signal] = Field(default_factory=list)


class IdeaDetailRequest(BaseModel):
    idea: dict[str, Any] = Field(default_factory=dict)
    narrative: DeepDiveNarrative = Field(default_factory=DeepDiveNarrative)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=400)


@router.post("/regenerate-ideas")
async def regenerate_ideas(request: Request, body: RegenerateRequest):
    limited = rate_limited(request, "narratives", RateLimits.NARRATIVES)
    if limited is not None:
        return limited
    if not body.narratives:
        return _bad_request("No narratives provided")

    generator = get_services(request).generator
    started = time.monotonic()
    logger.info(
        "[api] regenerating ideas for %d narratives (%d seen titles)",
        len(body.narratives),
        len(body.previous_idea_titles),
    )
    results = await asyncio.gather(
        *(generator.generate(n, body.previous_idea_titles) for n in body.narratives),
        return_exceptions=True,
    )
    updated: list[dict[str, Any]] = []
    for narrative, ideas in zip(body.narratives, results):
        if isinstance(ideas, BaseException):
            logger.error("[api] idea regeneration failed for %r: %s", narrative.name, ideas)
            updated.append(narrative.to_json())
        else:
            updated.append(narrative.model_copy(update={"ideas": ideas}).to_json())

    return {
        "success": True,
        "data": {
            "narratives": updated,
            "processingTime": round((time.monotonic() - started) * 1000),
            "ideasOnly": True,
        },
    }


@router.post("/idea-detail")
async def idea_detail(request: Request, body: IdeaDetailRequest):
    if not body.idea.get("title") or not body.narrative.name:
        return _bad_request("Missing idea or narrative context")

    try:
        idea = BuildIdea.model_validate({"id": "idea-detail", "narrativeId": "", **body.idea})
    except ValidationError as exc:
        return _bad_request(f"Invalid idea: {exc.errors()[0]['msg']}")
    detail = await get_services(request).generator.deep_dive(
        idea,
        narrative_name=body.narrative.name,
        narrative_summary=body.narrative.summary,
        signals=body.narrative.signals,
    )
    return {"success": True, "data": detail}
