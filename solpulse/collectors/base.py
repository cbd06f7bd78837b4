"""Abstract base collector that every signal source inherits from."""

from __future__ import annotations

import abc
import logging
from typing import Any

from solpulse.models import Signal, SignalSource
from solpulse.utils import utc_now_iso

logger = logging.getLogger(__name__)


class BaseCollector(abc.ABC):
    """Every signal producer inherits from this.

    Subclasses must implement ``source`` and ``collect()``. The aggregator only
    ever calls ``run_once()``, which keeps one collector's failure from
    escaping its own boundary.
    """

    def __init__(self) -> None:
        self._error_count = 0
        self._total_signals = 0
        self._last_collected_at: str | None = None
        self.last_error: str | None = None

    # ── abstract interface ─────────────────────────────────────────────

    @property
    @abc.abstractmethod
    def source(self) -> SignalSource:
        """Producer category, e.g. 'market', 'github'."""

    @property
    def name(self) -> str:
        """Registry name; defaults to the source category."""
        return self.source

    @abc.abstractmethod
    async def collect(self) -> list[Signal]:
        """Fetch raw data and return it as normalised signals."""

    # ── helpers ────────────────────────────────────────────────────────

    def _make_signal(
        self,
        signal_id: str,
        category: str,
        metric: str,
        value: float,
        description: str,
        strength: float,
        delta: float = 0.0,
        related_tokens: list[str] | None = None,
        related_projects: list[str] | None = None,
        source_url: str | None = None,
        full_text: str | None = None,
        timestamp: str | None = None,
    ) -> Signal:
        """Build a standardised signal; strength is clamped to 0-100."""
        return Signal(
            id=f"{self.source}-{signal_id}",
            source=self.source,
            category=category,
            metric=metric,
            value=value,
            delta=delta,
            description=description,
            related_tokens=related_tokens or [],
            related_projects=related_projects or [],
            timestamp=timestamp or utc_now_iso(),
            strength=strength,
            source_url=source_url,
            full_text=full_text,
        )

    # ── run ────────────────────────────────────────────────────────────

    async def run_once(self) -> list[Signal]:
        """Execute a single collection pass; never raises."""
        try:
            signals = await self.collect()
        except Exception as exc:
            self._error_count += 1
            self.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("[%s] collection error (#%d)", self.name, self._error_count)
            return []
        self.last_error = None
        self._total_signals += len(signals)
        self._last_collected_at = utc_now_iso()
        logger.info("[%s] collected %d signals (total: %d)", self.name, len(signals), self._total_signals)
        return signals

    # ── stats ──────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source,
            "total_signals": self._total_signals,
            "error_count": self._error_count,
            "last_collected_at": self._last_collected_at,
            "last_error": self.last_error,
        }
