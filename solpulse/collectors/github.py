"""GitHub collector — recent repo activity across tracked Solana ecosystem orgs."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections import Counter
from datetime import timedelta
from typing import Any

import httpx

from solpulse.collectors.base import BaseCollector
from solpulse.models import Signal
from solpulse.utils import OutboundPacer, parse_iso, utc_now

logger = logging.getLogger(__name__)

_ORG_BATCH = 3
_ACTIVE_WINDOW = timedelta(days=7)


class GitHubCollector(BaseCollector):
    """Org repo listings via the REST API; the token is optional but lifts quota."""

    def __init__(
        self,
        base_url: str,
        orgs: list[str],
        token: str = "",
        pacing_seconds: float = 0.2,
        timeout: float = 20.0,
    ) -> None:
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._orgs = orgs
        self._token = token
        self._pacing = pacing_seconds
        self._timeout = timeout
        # unauthenticated quota is 60/h; stay well under it in a burst
        self._pacer = OutboundPacer("github", max_calls=30 if token else 10, period=60)

    @property
    def source(self) -> str:
        return "github"

    def get_stats(self) -> dict[str, Any]:
        return {**super().get_stats(), "pacing": self._pacer.get_stats()}

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _org_repos(self, client: httpx.AsyncClient, org: str) -> list[dict[str, Any]]:
        async with self._pacer:
            resp = await client.get(
                f"{self._base_url}/orgs/{org}/repos",
                params={"sort": "pushed", "direction": "desc", "per_page": 5, "type": "public"},
            )
        if resp.status_code == 403:
            logger.warning("[github] rate limit hit while listing %s", org)
            return []
        resp.raise_for_status()
        return [dict(repo, _org=org) for repo in resp.json()]

    async def collect(self) -> list[Signal]:
        repos: list[dict[str, Any]] = []
        async with httpx.AsyncClient(timeout=self._timeout, headers=self._headers()) as client:
            for i in range(0, len(self._orgs), _ORG_BATCH):
                batch = self._orgs[i:i + _ORG_BATCH]
                results = await asyncio.gather(
                    *(self._org_repos(client, org) for org in batch),
                    return_exceptions=True,
                )
                for org, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        logger.warning("[github] failed to list repos for %s: %s", org, result)
                        continue
                    repos.extend(result)
                await asyncio.sleep(self._pacing)
        return self.signals_from_repos(repos)

    def signals_from_repos(self, repos: list[dict[str, Any]]) -> list[Signal]:
        cutoff = utc_now() - _ACTIVE_WINDOW
        signals: list[Signal] = []
        org_activity: dict[str, dict[str, Any]] = {}

        for repo in repos:
            pushed = repo.get("pushed_at")
            if not pushed or parse_iso(pushed) < cutoff:
                continue
            org = repo["_org"]
            stars = int(repo.get("stargazers_count") or 0)
            description = repo.get("description") or ""
            activity = org_activity.setdefault(org, {"repos": 0, "stars": 0, "descriptions": []})
            activity["repos"] += 1
            activity["stars"] += stars
            if description:
                activity["descriptions"].append(description)

            if stars > 100:
                full_name = repo.get("full_name", f"{org}/{repo.get('name')}")
                topics = repo.get("topics") or []
                signals.append(self._make_signal(
                    signal_id=f"active-{full_name}",
                    category="Developer Activity",
                    metric="repo_activity",
                    value=stars,
                    description=f"{full_name} (⭐{stars}) is actively being developed — {description or 'No description'}",
                    strength=30 + math.log10(stars + 1) * 20,
                    related_projects=[org],
                    source_url=f"https://github.com/{full_name}",
                    full_text=". ".join(p for p in (
                        description,
                        f"Topics: {', '.join(topics)}" if topics else "",
                        f"Primary language: {repo['language']}" if repo.get("language") else "",
                    ) if p) or None,
                ))

        for org, activity in org_activity.items():
            if activity["repos"] < 2:
                continue
            details = "\n".join(f"- {d}" for d in activity["descriptions"][:5])
            signals.append(self._make_signal(
                signal_id=f"org-{org}",
                category="Org Activity Spike",
                metric="active_repos",
                value=activity["repos"],
                description=f"{org} has {activity['repos']} actively developed repos this week (total ⭐{activity['stars']})",
                strength=activity["repos"] * 15 + math.log10(activity["stars"] + 1) * 10,
                related_projects=[org],
                source_url=f"https://github.com/{org}",
                full_text=f"Active repos:\n{details}" if details else None,
            ))

        topic_counts = Counter(t for repo in repos for t in repo.get("topics") or [])
        for topic, count in topic_counts.most_common(5):
            if count < 3:
                break
            signals.append(self._make_signal(
                signal_id=f"topic-{topic}",
                category="Development Trend",
                metric="topic_popularity",
                value=count,
                description=f'"{topic}" appears in {count} active Solana ecosystem repos',
                strength=count * 20,
                source_url=f"https://github.com/topics/{topic}",
            ))
        return signals


# ── Mock ───────────────────────────────────────────────────────────────

_MOCK_REPOS = [
    ("jup-ag", "jupiter-core", "Jupiter swap aggregation core", 1450),
    ("jito-foundation", "jito-solana", "Jito-Solana validator client", 980),
    ("drift-labs", "protocol-v2", "Drift perpetuals protocol", 720),
    ("helium", "helium-program-library", "Helium programs on Solana", 310),
    ("metaplex-foundation", "mpl-core", "Metaplex Core NFT standard", 540),
    ("pyth-network", "pyth-crosschain", "Pyth cross-chain price feeds", 860),
    ("orca-so", "whirlpools", "Orca concentrated liquidity", 410),
]


class MockGitHubCollector(BaseCollector):
    @property
    def source(self) -> str:
        return "github"

    async def collect(self) -> list[Signal]:
        signals: list[Signal] = []
        for org, repo, description, stars in random.sample(_MOCK_REPOS, 5):
            stars += random.randint(-40, 120)
            signals.append(self._make_signal(
                signal_id=f"active-{org}/{repo}",
                category="Developer Activity",
                metric="repo_activity",
                value=stars,
                description=f"{org}/{repo} (⭐{stars}) is actively being developed — {description}",
                strength=30 + math.log10(stars + 1) * 20,
                related_projects=[org],
                source_url=f"https://github.com/{org}/{repo}",
            ))
        return signals
