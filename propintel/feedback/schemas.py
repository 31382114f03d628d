"""
Feedback Schemas.

User ratings and corrections on a finished analysis, plus the follow-up
outcome record that may arrive weeks later once the property sells.

Every rating is an integer on the 1-5 scale; pydantic rejects anything else
before a record can reach the store.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from propintel.clock import as_naive_utc
from propintel.identity import new_id


class ComponentName(StrEnum):
    VALUATION = "valuation"
    COMPARABLES = "comparables"
    MARKET_ANALYSIS = "market_analysis"
    AMENITIES = "amenities"
    FUTURE_OUTLOOK = "future_outlook"
    AI_SUMMARY = "ai_summary"


class InvestmentOutcome(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    NEUTRAL = "neutral"
    POOR = "poor"
    BAD = "bad"


class TrendAccuracyLabel(StrEnum):
    VERY_ACCURATE = "very_accurate"
    ACCURATE = "accurate"
    SOMEWHAT_ACCURATE = "somewhat_accurate"
    INACCURATE = "inaccurate"


class TrendDirection(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


Rating = int


class ComponentRating(BaseModel):
    """Rating of one section of the report."""
    rating: Rating = Field(ge=1, le=5)
    accuracy: Rating = Field(ge=1, le=5)
    usefulness: Rating = Field(ge=1, le=5)
    comments: Optional[str] = None


class PropertyCorrection(BaseModel):
    """A user-supplied fix to a property attribute."""
    field: str
    original_value: Any = None
    corrected_value: Any = None
    confidence: Rating = Field(ge=1, le=5)
    source: Optional[str] = None


class OutcomeVerification(BaseModel):
    """Real-world result reported after the analysis."""
    actual_sale_price: Optional[float] = None
    actual_sale_date: Optional[str] = None
    time_on_market: Optional[int] = None
    final_sale_ratio: Optional[float] = None       # actual sale price / estimate

    investment_outcome: Optional[InvestmentOutcome] = None
    investment_reason: Optional[str] = None

    market_trend_accuracy: Optional[TrendAccuracyLabel] = None
    price_change_actual: Optional[float] = None    # percent


class Feedback(BaseModel):
    """One user's feedback on one analysis session."""
    id: str = Field(default_factory=lambda: new_id("feedback"))
    session_id: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    user_id: Optional[str] = None

    overall_rating: Rating = Field(ge=1, le=5)
    overall_comments: Optional[str] = None

    component_ratings: dict[ComponentName, ComponentRating] = Field(default_factory=dict)
    corrections: list[PropertyCorrection] = Field(default_factory=list)
    outcome_verification: Optional[OutcomeVerification] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_naive_utc(v)

    @field_validator("session_id")
    @classmethod
    def validate_session_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Session ID is required")
        return v

    def rating_for(self, component: ComponentName) -> Optional[ComponentRating]:
        return self.component_ratings.get(component)


class SubmissionResult(BaseModel):
    success: bool
    message: str
    feedback_id: Optional[str] = None


class FeedbackStats(BaseModel):
    total_feedback: int = 0
    average_rating: float = 0.0
    component_satisfaction: dict[str, float] = Field(default_factory=dict)
    recent_trend: TrendDirection = TrendDirection.STABLE
