"""Inbound report schemas shared by every learner."""

from propintel.schemas.report import (
    Amenity,
    AnalysisReport,
    Comparable,
    Coordinates,
    DevelopmentImpact,
    FutureDevelopment,
    InvestmentGrade,
    MarketTrend,
    MarketTrends,
    PropertyData,
    ReportSummary,
    ValuationEstimate,
)

__all__ = [
    "Amenity",
    "AnalysisReport",
    "Comparable",
    "Coordinates",
    "DevelopmentImpact",
    "FutureDevelopment",
    "InvestmentGrade",
    "MarketTrend",
    "MarketTrends",
    "PropertyData",
    "ReportSummary",
    "ValuationEstimate",
]
