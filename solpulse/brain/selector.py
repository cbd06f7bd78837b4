"""Source-diverse signal selection for the token-bounded reasoning call."""

from __future__ import annotations

from solpulse.models import Signal


def _by_strength(signals: list[Signal]) -> list[Signal]:
    # sorted() is stable, so equal strengths keep their input order
    return sorted(signals, key=lambda s: s.strength, reverse=True)


def select_diverse_signals(
    signals: list[Signal],
    max_total: int = 50,
    min_per_source: int = 3,
) -> list[Signal]:
    """Pick at most ``max_total`` signals, guaranteeing every source a floor.

    Each source first contributes its ``min_per_source`` strongest signals,
    however weak they are globally; remaining capacity goes to the strongest
    signals not yet chosen. Lists no longer than ``max_total`` are returned as-is.
    """
    if len(signals) <= max_total:
        return signals

    by_source: dict[str, list[Signal]] = {}
    for s in signals:
        by_source.setdefault(s.source, []).append(s)

    selected_ids: set[str] = set()
    result: list[Signal] = []
    for group in by_source.values():
        for s in _by_strength(group)[:min_per_source]:
            if s.id not in selected_ids:
                selected_ids.add(s.id)
                result.append(s)

    for s in _by_strength([s for s in signals if s.id not in selected_ids]):
        if len(result) >= max_total:
            break
        if s.id in selected_ids:
            continue
        selected_ids.add(s.id)
        result.append(s)

    return _by_strength(result)


def source_counts(signals: list[Signal]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for s in signals:
        counts[s.source] = counts.get(s.source, 0) + 1
    return counts
