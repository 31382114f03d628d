"""
Feedback comment rules.

When a user rates a comparable selection poorly, each rule whose keywords
appear in the comment applies one adjustment to the learned record. Rules
are independent; several may fire for the same comment.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from propintel.comparables.schemas import AreaRange, ComparableIntelligence


@dataclass(frozen=True)
class CommentRule:
    name: str
    keywords: tuple[str, ...]
    adjust: Callable[[ComparableIntelligence], None]

    def matches(self, comment: str) -> bool:
        text = comment.lower()
        return any(keyword in text for keyword in self.keywords)


def _shrink_distance(intelligence: ComparableIntelligence) -> None:
    criteria = intelligence.optimal_criteria
    criteria.max_distance *= 0.9
    criteria.optimal_distance *= 0.9


def _tighten_area_band(intelligence: ComparableIntelligence) -> None:
    band = intelligence.optimal_criteria.area_range
    low = max(0.7, band.min * 1.1)
    high = min(1.3, band.max * 0.9)
    # A band already narrower than one step collapses onto its midpoint
    if low > high:
        low = high = (low + high) / 2
    intelligence.optimal_criteria.area_range = AreaRange(min=low, max=high)


def _raise_feature_weight(intelligence: ComparableIntelligence) -> None:
    weights = intelligence.feature_weights
    weights.features = min(0.25, weights.features * 1.2)


def _prefer_recent_sales(intelligence: ComparableIntelligence) -> None:
    intelligence.optimal_criteria.preferred_age = max(30.0, intelligence.optimal_criteria.preferred_age * 0.8)
    weights = intelligence.feature_weights
    weights.recent_sales = min(0.15, weights.recent_sales * 1.3)


COMMENT_RULES: tuple[CommentRule, ...] = (
    CommentRule("distance", ("too far", "distance"), _shrink_distance),
    CommentRule("size", ("different size", "area", "size"), _tighten_area_band),
    CommentRule("features", ("features", "amenities"), _raise_feature_weight),
    CommentRule("recency", ("old", "outdated"), _prefer_recent_sales),
)


def apply_comment_rules(intelligence: ComparableIntelligence, comment: Optional[str]) -> list[str]:
    """Apply every matching rule; returns the names of the rules that fired."""
    if not comment:
        return []
    fired = []
    for rule in COMMENT_RULES:
        if rule.matches(comment):
            rule.adjust(intelligence)
            fired.append(rule.name)
    return fired
