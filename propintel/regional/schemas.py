"""
Regional Knowledge Schemas.

One ``RegionalKnowledge`` record per (region type, region name). Every
running statistic keeps its own sample count so that a missing input
(no rent, no 6-month change) never dilutes the others.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from propintel.clock import as_naive_utc
from propintel.schemas.report import InvestmentGrade, MarketTrend


class RegionType(StrEnum):
    CITY = "city"
    PROVINCE = "province"
    NEIGHBORHOOD = "neighborhood"
    POSTAL_CODE = "postal_code"


class MarketLevel(StrEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class Season(StrEnum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MarketCharacteristics(BaseModel):
    average_price_per_m2: float = 0.0
    price_volatility: float = 0.0               # coefficient of variation, percent
    price_appreciation: float = 0.0             # annualised, percent
    average_time_on_market: float = 0.0         # days
    inventory_level: MarketLevel = MarketLevel.MODERATE
    demand_level: MarketLevel = MarketLevel.MODERATE

    best_performing_types: list[str] = Field(default_factory=list)
    worst_performing_types: list[str] = Field(default_factory=list)

    average_rental_yield: float = 0.0           # percent
    investment_grade: InvestmentGrade = InvestmentGrade.C

    risk_factors: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)

    # Observations folded into each running average
    price_samples: int = 0
    time_on_market_samples: int = 0
    appreciation_samples: int = 0
    rental_yield_samples: int = 0
    volatility_samples: int = 0


class PricingPattern(BaseModel):
    pattern: str
    conditions: list[str] = Field(default_factory=list)
    impact: float = 0.0                         # percent vs comparables
    confidence: float = Field(default=60.0, ge=0, le=100)
    example_cases: list[str] = Field(default_factory=list)


class DevelopmentImpactRecord(BaseModel):
    development_type: str
    distance_km: float = 1.0
    impact_on_price: float = 0.0                # percent
    impact_timeframe: str = "1-2 years"
    confidence: float = Field(default=40.0, ge=0, le=100)
    observations: int = 1


class SeasonalPattern(BaseModel):
    season: Season
    price_adjustment: float = 0.0               # percent vs regional average
    market_activity: MarketLevel = MarketLevel.MODERATE
    average_time_on_market: float = 0.0
    years_of_data: int = 1
    confidence: float = Field(default=30.0, ge=0, le=100)
    observations: int = 0


class BuyerProfile(BaseModel):
    age_range: str
    income_level: str
    family_status: str
    nationality: list[str] = Field(default_factory=lambda: ["Spanish", "International"])


class DemographicInsight(BaseModel):
    buyer_profile: BuyerProfile
    property_types: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    price_min: float = 0.0
    price_max: float = 0.0
    motivations: list[str] = Field(default_factory=list)
    price_sensitivity: float = 70.0
    market_sensitivity: float = 60.0


class RegionalKnowledge(BaseModel):
    """Everything learned about one region."""
    id: str
    region_type: RegionType
    region_name: str

    market: MarketCharacteristics = Field(default_factory=MarketCharacteristics)
    pricing_patterns: list[PricingPattern] = Field(default_factory=list)
    development_impacts: list[DevelopmentImpactRecord] = Field(default_factory=list)
    seasonal_patterns: list[SeasonalPattern] = Field(default_factory=list)
    demographic_insights: list[DemographicInsight] = Field(default_factory=list)

    average_analysis_quality: float = 0.0
    confidence_score: float = Field(default=0.0, ge=0, le=100)
    data_points: int = 0
    last_updated: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("last_updated")
    @classmethod
    def normalize_last_updated(cls, v: datetime) -> datetime:
        return as_naive_utc(v)

    def seasonal(self, season: Season) -> Optional[SeasonalPattern]:
        return next((s for s in self.seasonal_patterns if s.season == season), None)


class PerformancePrediction(BaseModel):
    """Expected behaviour of a property derived from regional knowledge."""
    region_id: str
    expected_low: float
    expected_high: float
    expected_price: float
    market_trend: MarketTrend
    time_on_market: float
    investment_grade: InvestmentGrade
    risk_factors: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=100)


class MarketPatterns(BaseModel):
    emerging_trends: list[str] = Field(default_factory=list)
    market_anomalies: list[str] = Field(default_factory=list)
    opportunity_areas: list[str] = Field(default_factory=list)
    risk_areas: list[str] = Field(default_factory=list)
