"""
Comparable Intelligence Schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from propintel.clock import as_naive_utc

Weight = float


class AreaRange(BaseModel):
    """Accepted comparable area as a fraction of the subject's area."""
    min: float = 0.8
    max: float = 1.2

    @model_validator(mode="after")
    def check_order(self) -> "AreaRange":
        if self.min > self.max:
            raise ValueError("area range min must not exceed max")
        return self

    @property
    def width(self) -> float:
        return self.max - self.min


class SelectionCriteria(BaseModel):
    max_distance: float = 5.0                   # km
    optimal_distance: float = 2.0               # km
    area_range: AreaRange = Field(default_factory=AreaRange)
    required_matches: list[str] = Field(default_factory=lambda: ["property_type"])
    preferred_matches: list[str] = Field(default_factory=lambda: ["bedrooms", "condition"])
    max_age: int = 365                          # days since sale/listing
    preferred_age: float = 180.0
    market_condition_weight: Weight = Field(default=0.3, ge=0, le=1)


class FeatureWeights(BaseModel):
    """Relative importance of each similarity dimension; each weight in [0, 1]."""
    location: Weight = Field(default=0.30, ge=0, le=1)
    size: Weight = Field(default=0.25, ge=0, le=1)
    condition: Weight = Field(default=0.15, ge=0, le=1)
    age: Weight = Field(default=0.10, ge=0, le=1)
    features: Weight = Field(default=0.10, ge=0, le=1)
    recent_sales: Weight = Field(default=0.05, ge=0, le=1)
    market_conditions: Weight = Field(default=0.05, ge=0, le=1)

    property_type_specific: dict[str, Weight] = Field(default_factory=dict)
    region_specific: dict[str, Weight] = Field(default_factory=dict)


class ComparablePattern(BaseModel):
    pattern_name: str
    description: str = ""
    conditions: list[str] = Field(default_factory=list)
    distance_adjustment: float = 0.0            # km relative to optimal distance
    time_adjustment: float = 0.0
    use_count: int = 1
    success_rate: float = Field(default=100.0, ge=0, le=100)
    user_satisfaction: float = Field(default=5.0, ge=0, le=5)


class ComparableIntelligence(BaseModel):
    """Learned selection knowledge for one (region, property type)."""
    id: str
    region_id: str
    property_type: str

    optimal_criteria: SelectionCriteria = Field(default_factory=SelectionCriteria)
    feature_weights: FeatureWeights = Field(default_factory=FeatureWeights)
    success_patterns: list[ComparablePattern] = Field(default_factory=list)

    selection_accuracy: float = Field(default=70.0, ge=0, le=100)
    valuation_accuracy: float = Field(default=70.0, ge=0, le=100)
    # The baseline accuracies count as one observation each
    selection_samples: int = 1
    valuation_samples: int = 1

    learning_confidence: float = Field(default=30.0, ge=0, le=100)
    last_updated: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("last_updated")
    @classmethod
    def normalize_last_updated(cls, v: datetime) -> datetime:
        return as_naive_utc(v)

    def pattern(self, name: str) -> Optional[ComparablePattern]:
        return next((p for p in self.success_patterns if p.pattern_name == name), None)


class EnhancedSearchCriteria(BaseModel):
    """Search filters for the comparable lookup, derived from learned weights."""
    property_type: str
    city: str
    province: str
    max_distance: float
    bedrooms_min: Optional[int] = None
    bedrooms_max: Optional[int] = None
    bathrooms_min: Optional[int] = None
    bathrooms_max: Optional[int] = None
    min_area_m2: float
    max_area_m2: float
    features: list[str] = Field(default_factory=list)
    max_results: int = 20
    learned: bool = False
