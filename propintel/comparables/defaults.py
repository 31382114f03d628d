"""
Default selection criteria and feature weights.

Used whenever a (region, property type) has no learned record or its
learning confidence is still below the gate.
"""

from propintel.comparables.schemas import AreaRange, FeatureWeights, SelectionCriteria

# property type -> weight overrides
TYPE_WEIGHT_OVERRIDES: dict[str, dict[str, float]] = {
    "apartment": {"location": 0.35, "size": 0.20},
    "flat": {"location": 0.35, "size": 0.20},
    "villa": {"size": 0.30, "features": 0.15},
    "house": {"size": 0.30, "features": 0.15},
    "penthouse": {"location": 0.40, "features": 0.20},
}


def default_criteria() -> SelectionCriteria:
    return SelectionCriteria(
        max_distance=5.0,
        optimal_distance=2.0,
        area_range=AreaRange(min=0.8, max=1.2),
        required_matches=["property_type"],
        preferred_matches=["bedrooms", "condition"],
        max_age=365,
        preferred_age=180.0,
        market_condition_weight=0.3,
    )


def default_feature_weights(property_type: str) -> FeatureWeights:
    overrides = TYPE_WEIGHT_OVERRIDES.get((property_type or "").strip().lower(), {})
    return FeatureWeights(**overrides)
