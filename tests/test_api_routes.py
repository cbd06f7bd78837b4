from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from solpulse.api.app import create_app
from solpulse.api.routes.narratives import decode_previous_ideas
from solpulse.collectors.base import BaseCollector
from solpulse.config import Settings
from solpulse.llm_client import ModelResponse
from solpulse.models import Signal
from solpulse.services import build_services

DETECTION_REPLY = json.dumps({
    "narratives": [{
        "name": "Liquid Staking Surge",
        "category": "DeFi",
        "trend": "rising",
        "confidence": 78,
        "summary": "LST demand keeps climbing.",
        "supportingSignals": [
            {"id": "market-price-JTO", "context": "JTO rallies on restaking demand"},
            {"id": "github-active-jito"},
        ],
    }],
    "topSignalInsights": {"github-active-jito": "client commits accelerate"},
})
WRITING_REPLY = json.dumps({
    "ideas": [{"title": "Restake Blink", "complexity": "Low"}],
    "deepDives": [{"problemToSolve": "P", "possibleSolution": "S"}],
})


class _RoleRouter:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def route(self, role: str, messages: list[dict[str, str]], **options: Any) -> ModelResponse:
        self.calls.append(role)
        content = DETECTION_REPLY if role == "reasoning" else WRITING_REPLY
        return ModelResponse(content=content, provider="openai", model="test-model")

    def active_models(self) -> dict[str, Any]:
        return {"reasoning": "test-model (reasoning)", "writing": "test-model (writing)"}

    def get_stats(self) -> dict[str, Any]:
        return {"calls_routed": len(self.calls)}


class _StaticCollector(BaseCollector):
    def __init__(self, source: str, signals: list[Signal]) -> None:
        super().__init__()
        self._source = source
        self._signals = signals
        self.calls = 0

    @property
    def source(self) -> str:
        return self._source

    async def collect(self) -> list[Signal]:
        self.calls += 1
        return list(self._signals)


def _signal(sid: str, source: str, strength: float, **kw: Any) -> Signal:
    return Signal(
        id=sid,
        source=source,
        category="Trending",
        metric="m",
        value=1,
        description=f"📈 signal {sid}",
        timestamp="2026-01-01T00:00:00+00:00",
        strength=strength,
        **kw,
    )


@pytest.fixture
def router() -> _RoleRouter:
    return _RoleRouter()


@pytest.fixture
def collectors() -> list[_StaticCollector]:
    return [
        _StaticCollector("market", [_signal("market-price-JTO", "market", 80, related_tokens=["JTO"])]),
        _StaticCollector("github", [_signal("github-active-jito", "github", 60, related_projects=["jito"])]),
    ]


@pytest.fixture
def client(tmp_path: Path, router: _RoleRouter, collectors: list[_StaticCollector]):
    settings = Settings(_env_file=None, history_file=str(tmp_path / "history.json"), mock_mode=True)
    services = build_services(settings, router=router, collectors=collectors)  # type: ignore[arg-type]
    with TestClient(create_app(services)) as test_client:
        yield test_client


def _encoded(titles: list[str]) -> str:
    return base64.b64encode(json.dumps(titles).encode("utf-8")).decode("ascii")


def test_routes_are_registered() -> None:
    app = create_app()
    paths = {route.path for route in app.router.routes}
    for path in (
        "/api/narratives",
        "/api/signals",
        "/api/history",
        "/api/regenerate-ideas",
        "/api/idea-detail",
        "/api/heartbeat",
        "/api/status",
    ):
        assert path in paths


def test_heartbeat(client: TestClient) -> None:
    body = client.get("/api/heartbeat").json()
    assert body["status"] == "ok"
    assert body["agentName"] == "solana-narrative-pulse"
    assert "narratives" in body["capabilities"]


def test_signals_are_cached_and_rate_limited(client: TestClient, collectors: list[_StaticCollector]) -> None:
    first = client.get("/api/signals").json()["data"]
    assert first["count"] == 2
    assert first["fromCache"] is False
    assert first["sources"] == ["market", "github"]
    assert [s["id"] for s in first["signals"]] == ["market-price-JTO", "github-active-jito"]

    second = client.get("/api/signals").json()["data"]
    assert second["fromCache"] is True
    assert second["collectedAt"] == first["collectedAt"]
    assert collectors[0].calls == 1

    for _ in range(8):
        assert client.get("/api/signals").status_code == 200
    limited = client.get("/api/signals")
    assert limited.status_code == 429
    assert limited.json()["success"] is False
    assert int(limited.headers["Retry-After"]) > 0
    assert limited.headers["X-RateLimit-Remaining"] == "0"


def test_narratives_run_pipeline_then_serve_from_cache(client: TestClient, router: _RoleRouter) -> None:
    first = client.get("/api/narratives")
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["mode"] == "ai"
    assert data["degraded"] is False
    assert data["fromCache"] is False
    assert data["signalCount"] == 2

    (narrative,) = data["narratives"]
    assert narrative["slug"] == "liquid-staking-surge"
    assert [i["title"] for i in narrative["ideas"]] == ["Restake Blink"]
    contexts = {s["id"]: s.get("aiContext") for s in data["signals"]}
    assert contexts == {
        "market-price-JTO": "JTO rallies on restaking demand",
        "github-active-jito": "client commits accelerate",
    }
    assert data["edition"]["narrativeStatuses"] == [
        {"slug": "liquid-staking-surge", "status": "new", "confidenceDelta": 0.0}
    ]
    reasoning_calls = router.calls.count("reasoning")

    cached = client.get("/api/narratives").json()["data"]
    assert cached["fromCache"] is True
    assert "cacheAge" in cached
    assert cached["edition"] == data["edition"]
    assert router.calls.count("reasoning") == reasoning_calls


def test_previous_ideas_header_bypasses_cache(client: TestClient, router: _RoleRouter) -> None:
    client.get("/api/narratives")
    response = client.get("/api/narratives", headers={"X-Previous-Ideas": _encoded(["Old Vault"])})
    data = response.json()["data"]
    assert data["fromCache"] is False
    assert router.calls.count("reasoning") == 2
    assert data["edition"]["narrativeStatuses"][0]["status"] == "stable"


def test_post_with_client_signals_skips_collection(client: TestClient, collectors: list[_StaticCollector]) -> None:
    payload = {
        "signals": [_signal("market-price-JTO", "market", 90).to_json()],
        "previousIdeaTitles": ["Old Vault"],
    }
    data = client.post("/api/narratives", json=payload).json()["data"]
    assert data["signalCount"] == 1
    assert data["fromCache"] is False
    assert all(c.calls == 0 for c in collectors)


def test_invalid_narrative_body_is_a_400(client: TestClient) -> None:
    response = client.post("/api/narratives", json={"signals": [{"id": "only-an-id"}]})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_regenerate_ideas(client: TestClient) -> None:
    assert client.post("/api/regenerate-ideas", json={"narratives": []}).status_code == 400

    narrative = client.get("/api/narratives").json()["data"]["narratives"][0]
    narrative["ideas"] = []
    body = client.post(
        "/api/regenerate-ideas", json={"narratives": [narrative], "previousIdeaTitles": ["Restake Blink"]}
    ).json()
    assert body["success"] is True
    assert body["data"]["ideasOnly"] is True
    assert [i["title"] for i in body["data"]["narratives"][0]["ideas"]] == ["Restake Blink"]


def test_idea_detail(client: TestClient) -> None:
    missing = client.post("/api/idea-detail", json={"idea": {}, "narrative": {"name": "Liquid Staking Surge"}})
    assert missing.status_code == 400

    invalid = client.post(
        "/api/idea-detail",
        json={"idea": {"title": "Restake Blink", "complexity": "Extreme"}, "narrative": {"name": "LSTs"}},
    )
    assert invalid.status_code == 400

    ok = client.post(
        "/api/idea-detail",
        json={
            "idea": {"title": "Restake Blink", "techStack": ["Solana Actions"]},
            "narrative": {"name": "Liquid Staking Surge", "summary": "LST demand keeps climbing."},
        },
    )
    assert ok.status_code == 200
    assert ok.json()["data"] == {"problemToSolve": "P", "possibleSolution": "S"}


def test_history_lists_editions_and_trajectories(client: TestClient) -> None:
    empty = client.get("/api/history").json()["data"]
    assert empty["totalEditions"] == 0

    client.get("/api/narratives")
    data = client.get("/api/history").json()["data"]
    assert data["totalEditions"] == 1
    assert data["editions"][0]["narratives"][0]["slug"] == "liquid-staking-surge"

    trajectory = client.get("/api/history", params={"slug": "liquid-staking-surge"}).json()["data"]["trajectory"]
    assert [p["confidence"] for p in trajectory] == [78]


def test_status_reports_components(client: TestClient) -> None:
    body = client.get("/api/status").json()
    assert body["status"] == "ok"
    assert body["models"]["reasoning"] == "test-model (reasoning)"
    assert set(body["collectors"]) == {"market", "github"}
    assert body["history"]["editions"] == 0
    assert body["detector"] == {"runs": 0, "degraded_runs": 0, "repairs": 0}


def test_decode_previous_ideas() -> None:
    assert decode_previous_ideas(_encoded(["A", "", "B"])) == ["A", "B"]
    assert decode_previous_ideas(None) == []
    assert decode_previous_ideas("not base64!!") == []
    assert decode_previous_ideas(base64.b64encode(b"{\"a\": 1}").decode()) == []
