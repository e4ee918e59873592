"""Blend partial confidence signals into one score."""
from __future__ import annotations

from typing import Dict, Optional

WEIGHTS: Dict[str, float] = {
    "model": 0.3,
    "verifier": 0.5,
    "embedding": 0.2,
}

ACCEPT_THRESHOLD = 0.75
ESCALATE_THRESHOLD = 0.5


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def combine(
    model: Optional[float] = None,
    verifier: Optional[float] = None,
    embedding: Optional[float] = None,
) -> float:
    """Weighted mean over the signals that are present, clamped to [0, 1].

    Missing signals are left out of the denominator rather than counted as
    zero. Returns 0.0 when no signal is given.
    """
    signals = {"model": model, "verifier": verifier, "embedding": embedding}
    score = 0.0
    total_weight = 0.0
    for key, value in signals.items():
        if value is None:
            continue
        score += float(value) * WEIGHTS[key]
        total_weight += WEIGHTS[key]
    if total_weight == 0:
        return 0.0
    return clamp(score / total_weight)


def is_acceptable(confidence: float, threshold: float = ACCEPT_THRESHOLD) -> bool:
    return confidence >= threshold


def should_escalate(confidence: float, min_confidence: float = ESCALATE_THRESHOLD) -> bool:
    return confidence < min_confidence
