"""
Prediction Tracking Schemas.

A prediction snapshots what an analysis forecast at report time. A
validation records what actually happened once an outcome is available,
and how far off the forecast was.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from propintel.clock import as_naive_utc
from propintel.identity import new_id
from propintel.schemas.report import InvestmentGrade, MarketTrend


class PredictionTimeframe(StrEnum):
    THREE_MONTHS = "3_months"
    SIX_MONTHS = "6_months"
    ONE_YEAR = "1_year"
    TWO_YEARS = "2_years"


class PriceRange(BaseModel):
    low: float
    high: float
    estimated: float
    confidence: float = Field(ge=0, le=100)


class MarketPrediction(BaseModel):
    """Forecast captured from a finished report."""
    id: str = Field(default_factory=lambda: new_id("pred"))
    session_id: str
    property_id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    # Routing back to regional/comparable learners
    city: str = ""
    province: str = ""
    property_type: str = "apartment"
    asking_price: Optional[float] = None
    average_comparable_distance: Optional[float] = None

    predicted_price_range: PriceRange
    predicted_market_trend: MarketTrend = MarketTrend.STABLE
    predicted_price_change: float = 0.0            # percent
    prediction_timeframe: PredictionTimeframe = PredictionTimeframe.SIX_MONTHS

    predicted_rental_yield: Optional[float] = None
    predicted_appreciation: Optional[float] = None
    investment_grade: InvestmentGrade = InvestmentGrade.C

    data_quality: float = Field(default=0.0, ge=0, le=100)
    model_confidence: float = Field(default=0.0, ge=0, le=100)

    analysis_methods: list[str] = Field(default_factory=list)
    data_sources: list[str] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_naive_utc(v)


class ActualOutcome(BaseModel):
    """Externally observed result for a predicted property."""
    actual_price: Optional[float] = None
    actual_market_trend: Optional[MarketTrend] = None
    actual_price_change: Optional[float] = None
    actual_time_on_market: Optional[int] = None
    actual_rental_yield: Optional[float] = None


class BiasDetection(BaseModel):
    price_range_bias: Optional[float] = None       # signed percent, set when |bias| > 5
    overconfident: bool = False


class ModelPerformance(BaseModel):
    accuracy_score: float = 0.0
    precision_score: float = 0.0
    recall_score: float = 0.0
    confidence_calibration: float = 0.0
    bias_detection: BiasDetection = Field(default_factory=BiasDetection)


class PredictionValidation(BaseModel):
    """Outcome-vs-forecast comparison for exactly one prediction."""
    id: str = Field(default_factory=lambda: new_id("val"))
    prediction_id: str
    validation_date: datetime = Field(default_factory=datetime.utcnow)

    actual_outcome: ActualOutcome

    price_accuracy: float = Field(ge=0, le=100)
    trend_accuracy: float = Field(ge=0, le=100)
    overall_accuracy: float = Field(ge=0, le=100)

    success_factors: list[str] = Field(default_factory=list)
    failure_factors: list[str] = Field(default_factory=list)
    model_performance: ModelPerformance = Field(default_factory=ModelPerformance)

    @field_validator("validation_date")
    @classmethod
    def normalize_validation_date(cls, v: datetime) -> datetime:
        return as_naive_utc(v)


class PerformanceStats(BaseModel):
    total_predictions: int = 0
    validated_predictions: int = 0
    average_accuracy: float = 0.0
    price_accuracy: float = 0.0
    trend_accuracy: float = 0.0
    model_calibration: float = 0.0


class ValidationRun(BaseModel):
    """Result of one ``validate_predictions`` pass."""
    checked: int = 0
    validated: int = 0
    skipped: int = 0
    accuracy: float = 0.0
    validations: list[PredictionValidation] = Field(default_factory=list)
