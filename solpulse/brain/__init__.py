"""Narrative synthesis: signal selection, model routing, detection and ideas."""

from solpulse.brain.detector import DetectionResult, NarrativeDetector, SynthesisState
from solpulse.brain.generator import IdeaGenerator
from solpulse.brain.router import CircuitState, ModelRouter

__all__ = [
    "CircuitState",
    "DetectionResult",
    "IdeaGenerator",
    "ModelRouter",
    "NarrativeDetector",
    "SynthesisState",
]
