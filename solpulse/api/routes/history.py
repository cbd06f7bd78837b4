"""History endpoint — past editions or one narrative's trajectory."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from solpulse.api.deps import get_services

router = APIRouter(tags=["history"])


@router.get("/history")
async def get_history(request: Request, slug: str | None = None, limit: int = Query(10, ge=1, le=50)):
    history = get_services(request).history
    if slug:
        trajectory = history.trajectory(slug, limit)
        return {"success": True, "data": {"trajectory": [p.to_json() for p in trajectory]}}

    data = history.read()
    return {
        "success": True,
        "data": {
            "editions": [e.to_json() for e in data.editions],
            "totalEditions": len(data.editions),
            "lastUpdated": data.last_updated,
        },
    }
