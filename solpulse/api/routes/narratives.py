"""Narrative endpoints — full pipeline via GET (cached) or POST (client-driven)."""

from __future__ import annotations

import base64
import binascii
import json
import logging

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from solpulse.api.deps import get_services, rate_limited
from solpulse.models import Signal
from solpulse.rate_limit import RateLimits

logger = logging.getLogger(__name__)

router = APIRouter(tags=["narratives"])

PREVIOUS_IDEAS_HEADER = "X-Previous-Ideas"


def decode_previous_ideas(header: str | None) -> list[str]:
    """Titles from a base64-encoded JSON array header; malformed values are ignored."""
    if not header:
        return []
    try:
        titles = json.loads(base64.b64decode(header, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.info("[api] ignoring malformed %s header", PREVIOUS_IDEAS_HEADER)
        return []
    if not isinstance(titles, list):
        return []
    return [str(t) for t in titles if t]


class NarrativeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    previous_idea_titles: list[str] = Field(default_factory=list, alias="previousIdeaTitles")
    signals: list[Signal] | None = None
    refresh: bool = False


@router.get("/narratives")
async def get_narratives(request: Request, refresh: bool = Query(False)):
    limited = rate_limited(request, "narratives", RateLimits.NARRATIVES)
    if limited is not None:
        return limited
    previous = decode_previous_ideas(request.headers.get(PREVIOUS_IDEAS_HEADER))
    data = await get_services(request).pipeline.run(force_refresh=refresh, previous_titles=previous)
    return {"success": True, "data": data}


@router.post("/narratives")
async def post_narratives(request: Request, body: NarrativeRequest):
    limited = rate_limited(request, "narratives", RateLimits.NARRATIVES)
    if limited is not None:
        return limited
    data = await get_services(request).pipeline.run(
        force_refresh=body.refresh,
        previous_titles=body.previous_idea_titles,
        signals=body.signals,
    )
    return {"success": True, "data": data}
