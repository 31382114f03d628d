"""
Analysis Report Schemas.

The finished property analysis handed to the learning subsystem by the
report pipeline. Only the fields the learners read are modelled; anything
else in an incoming payload is ignored.
"""

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MarketTrend(StrEnum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class InvestmentGrade(StrEnum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class DevelopmentImpact(StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Coordinates(_Inbound):
    lat: float
    lng: float


class PropertyData(_Inbound):
    """The subject property of an analysis."""
    address: str
    city: str
    province: str
    postal_code: Optional[str] = None
    neighborhood: Optional[str] = None
    property_type: str = "apartment"
    price: Optional[float] = None
    total_area_m2: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    condition: Optional[str] = None
    features: list[str] = Field(default_factory=list)

    @property
    def price_per_m2(self) -> Optional[float]:
        if self.price and self.total_area_m2 and self.total_area_m2 > 0:
            return self.price / self.total_area_m2
        return None


class Comparable(_Inbound):
    """A sold or listed property used as a valuation reference."""
    address: str = ""
    price: float
    area_m2: float
    distance_km: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    property_type: Optional[str] = None
    days_on_market: Optional[int] = None

    # Explicit location fields take precedence over address parsing
    urbanisation: Optional[str] = None
    suburb: Optional[str] = None
    city: Optional[str] = None

    @property
    def price_per_m2(self) -> Optional[float]:
        if self.area_m2 > 0:
            return self.price / self.area_m2
        return None


class ValuationEstimate(_Inbound):
    low: float
    high: float
    estimated: float
    confidence: float = Field(default=50.0, ge=0, le=100)


class MarketTrends(_Inbound):
    average_price: Optional[float] = None           # average €/m² in the market
    market_trend: MarketTrend = MarketTrend.STABLE
    price_change_6_month: Optional[float] = None    # percent
    days_on_market: Optional[float] = None
    average_monthly_rent: Optional[float] = None


class FutureDevelopment(_Inbound):
    type: str
    impact: DevelopmentImpact = DevelopmentImpact.NEUTRAL
    distance_km: Optional[float] = None
    description: str = ""


class Amenity(_Inbound):
    name: str = ""
    type: str = ""
    distance_km: Optional[float] = None


class ReportSummary(_Inbound):
    overview: str = ""


class AnalysisReport(_Inbound):
    """Finished analysis as produced by the report pipeline."""
    valuation: Optional[ValuationEstimate] = None
    market_trends: Optional[MarketTrends] = None
    comparables: list[Comparable] = Field(default_factory=list)
    nearby_amenities: list[Amenity] = Field(default_factory=list)
    future_developments: list[FutureDevelopment] = Field(default_factory=list)
    coordinates: Optional[Coordinates] = None
    summary: Optional[ReportSummary] = None
    walkability_score: Optional[float] = None
    mobility_data: Optional[dict] = None
