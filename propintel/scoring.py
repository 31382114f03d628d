"""
Shared numeric helpers for learned statistics.
"""

from typing import Iterable, Optional


def blend(current: float, observation: float, count: int, window: int) -> float:
    """
    Fold one observation into a running average.

    ``count`` is the number of observations already folded into ``current``.
    Until ``window`` observations have been seen this is the exact arithmetic
    mean; afterwards it becomes an exponential moving average with
    ``alpha = 1 / window``.
    """
    if count <= 0:
        return float(observation)
    alpha = 1.0 / min(count + 1, max(window, 1))
    return current + alpha * (observation - current)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_score(value: float) -> float:
    """Clamp to the 0-100 confidence/score range."""
    return clamp(value, 0.0, 100.0)


def mean(values: Iterable[float]) -> Optional[float]:
    items = list(values)
    if not items:
        return None
    return sum(items) / len(items)


def score_to_grade(score: float) -> str:
    """Letter grade for a 0-100 score."""
    if score >= 80:
        return "A"
    if score >= 65:
        return "B"
    if score >= 50:
        return "C"
    if score >= 35:
        return "D"
    return "F"
