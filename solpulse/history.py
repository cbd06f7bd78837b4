"""EditionHistory — rolling record of past runs and their trend classification.

Memory is the source of truth. Every record() also queues a snapshot for a
single background writer that persists it with temp-file-plus-rename, so
overlapping saves land on disk in order and never interleave. Disk failures
are logged and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from solpulse.models import Edition, EditionNarrative, EditionStatus, HistoryData, Narrative, TrajectoryPoint
from solpulse.utils import random_suffix, utc_now, utc_now_iso

logger = logging.getLogger(__name__)

RISING_THRESHOLD = 10.0
FADING_THRESHOLD = -10.0
# editions after the immediately prior one that count for "returning"
RETURNING_LOOKBACK = 4

_STOP = object()


def edition_id(now: datetime | None = None) -> str:
    now = now or utc_now()
    start = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    week = math.ceil((now - start).total_seconds() / (7 * 24 * 3600))
    return f"E-{now.year}-W{week}-{now.day}-{now:%H%M}-{random_suffix(3)}"


def classify(current: list[EditionNarrative], editions: list[Edition]) -> list[EditionNarrative]:
    """Attach status/confidenceDelta against the newest prior edition."""
    if not editions:
        return [n.model_copy(update={"status": "new", "confidence_delta": 0.0}) for n in current]

    previous = {n.slug: n for n in editions[0].narratives}
    older = {n.slug for e in editions[1:1 + RETURNING_LOOKBACK] for n in e.narratives}

    result: list[EditionNarrative] = []
    for n in current:
        prev = previous.get(n.slug)
        status: EditionStatus
        if prev is None:
            status = "returning" if n.slug in older else "new"
            delta = 0.0
        else:
            delta = n.confidence - prev.confidence
            if delta > RISING_THRESHOLD:
                status = "rising"
            elif delta < FADING_THRESHOLD:
                status = "fading"
            else:
                status = "stable"
        result.append(n.model_copy(update={"status": status, "confidence_delta": delta}))
    return result


class EditionHistory:
    def __init__(self, path: str | Path, max_editions: int = 20) -> None:
        self._path = Path(path)
        self._max_editions = max_editions
        self._data = HistoryData(editions=[], last_updated=utc_now_iso())
        self._queue: asyncio.Queue[Any] | None = None
        self._writer: asyncio.Task[None] | None = None
        self.writes_ok = 0
        self.writes_failed = 0

    @property
    def path(self) -> Path:
        return self._path

    # ── load / read ────────────────────────────────────────────────────
    def load(self) -> None:
        """Seed memory from disk; a missing or corrupt file starts empty."""
        if not self._path.exists():
            logger.info("[history] no history file at %s, starting fresh", self._path)
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            data = HistoryData.model_validate(raw)
        except (OSError, ValueError):
            logger.warning("[history] could not read %s, starting fresh", self._path, exc_info=True)
            return
        data.editions = data.editions[: self._max_editions]
        self._data = data
        logger.info("[history] loaded %d editions from %s", len(data.editions), self._path)

    def read(self) -> HistoryData:
        return self._data

    @property
    def editions(self) -> list[Edition]:
        return self._data.editions

    # ── writes ─────────────────────────────────────────────────────────
    async def record(
        self,
        narratives: list[Narrative],
        signal_count: int,
        processing_time: float,
    ) -> Edition:
        current = [EditionNarrative.from_narrative(n) for n in narratives]
        edition = Edition(
            id=edition_id(),
            detected_at=utc_now_iso(),
            narratives=classify(current, self._data.editions),
            signal_count=signal_count,
            processing_time=processing_time,
        )
        editions = [edition, *self._data.editions][: self._max_editions]
        self._data = HistoryData(editions=editions, last_updated=utc_now_iso())
        self._enqueue(self._data.to_json())
        logger.info(
            "[history] recorded %s (%d narratives, %d editions kept)",
            edition.id,
            len(edition.narratives),
            len(editions),
        )
        return edition

    def _enqueue(self, snapshot: dict[str, Any]) -> None:
        if self._queue is None or self._writer is None or self._writer.done():
            self._queue = asyncio.Queue()
            self._writer = asyncio.create_task(self._write_loop(self._queue))
        self._queue.put_nowait(snapshot)

    async def _write_loop(self, queue: asyncio.Queue[Any]) -> None:
        while True:
            snapshot = await queue.get()
            try:
                if snapshot is _STOP:
                    return
                await asyncio.to_thread(self._write_file, snapshot)
                self.writes_ok += 1
            except Exception:
                self.writes_failed += 1
                logger.warning("[history] failed to persist %s (non-fatal)", self._path, exc_info=True)
            finally:
                queue.task_done()

    def _write_file(self, snapshot: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(f"{self._path.name}.tmp")
        tmp.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
        os.replace(tmp, self._path)

    async def flush(self) -> None:
        """Wait until every queued snapshot has been handled."""
        if self._queue is not None and self._writer is not None and not self._writer.done():
            await self._queue.join()

    async def close(self) -> None:
        if self._queue is None or self._writer is None or self._writer.done():
            return
        self._queue.put_nowait(_STOP)
        await self._writer
        self._writer = None

    # ── queries ────────────────────────────────────────────────────────
    def trajectory(self, slug: str, limit: int = 10) -> list[TrajectoryPoint]:
        """Confidence points for ``slug`` over the newest ``limit`` editions, oldest first."""
        points: list[TrajectoryPoint] = []
        for e in self._data.editions[:limit]:
            match = next((n for n in e.narratives if n.slug == slug), None)
            if match is not None:
                points.append(TrajectoryPoint(
                    edition=e.id, detected_at=e.detected_at, confidence=match.confidence, status=match.status,
                ))
        points.reverse()
        return points

    def recent_idea_titles(self, slug: str | None = None, edition_limit: int = 3) -> list[str]:
        titles: list[str] = []
        for edition in self._data.editions[:edition_limit]:
            for n in edition.narratives:
                if slug and n.slug != slug:
                    continue
                titles.extend(n.idea_titles)
        return list(dict.fromkeys(titles))

    def get_stats(self) -> dict[str, Any]:
        return {
            "editions": len(self._data.editions),
            "max_editions": self._max_editions,
            "last_updated": self._data.last_updated,
            "writes_ok": self.writes_ok,
            "writes_failed": self.writes_failed,
        }
