"""
Learned comparable selection.

Usage:
    from propintel.comparables import ComparableSelectionEngine

    engine = ComparableSelectionEngine(open_store("comparable-intelligence"))
    criteria = engine.get_optimal_criteria(property)
    search = engine.generate_enhanced_criteria(property)
"""

from propintel.comparables.defaults import default_criteria, default_feature_weights
from propintel.comparables.engine import ComparableSelectionEngine, learning_confidence
from propintel.comparables.rules import COMMENT_RULES, CommentRule, apply_comment_rules
from propintel.comparables.schemas import (
    AreaRange,
    ComparableIntelligence,
    ComparablePattern,
    EnhancedSearchCriteria,
    FeatureWeights,
    SelectionCriteria,
)

__all__ = [
    "COMMENT_RULES",
    "AreaRange",
    "CommentRule",
    "ComparableIntelligence",
    "ComparablePattern",
    "ComparableSelectionEngine",
    "EnhancedSearchCriteria",
    "FeatureWeights",
    "SelectionCriteria",
    "apply_comment_rules",
    "default_criteria",
    "default_feature_weights",
    "learning_confidence",
]
