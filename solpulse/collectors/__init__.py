"""Signal collectors and the aggregator that merges them."""

from solpulse.collectors.aggregator import SignalAggregator, cluster_signals, cluster_strength
from solpulse.collectors.base import BaseCollector
from solpulse.collectors.manager import build_collectors

__all__ = [
    "BaseCollector",
    "SignalAggregator",
    "build_collectors",
    "cluster_signals",
    "cluster_strength",
]
