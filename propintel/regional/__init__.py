"""
Regional market intelligence.

Usage:
    from propintel.regional import RegionalIntelligence

    regional = RegionalIntelligence(open_store("regional-knowledge"))
    regional.learn_from_analysis(property, report)
    prediction = regional.predict_property_performance(property)
"""

from propintel.regional.intelligence import RegionalIntelligence
from propintel.regional.rules import (
    confidence_score,
    investment_grade,
    risk_level,
    season_of,
)
from propintel.regional.schemas import (
    DemographicInsight,
    DevelopmentImpactRecord,
    MarketCharacteristics,
    MarketLevel,
    MarketPatterns,
    PerformancePrediction,
    PricingPattern,
    RegionalKnowledge,
    RegionType,
    RiskLevel,
    Season,
    SeasonalPattern,
)

__all__ = [
    "DemographicInsight",
    "DevelopmentImpactRecord",
    "MarketCharacteristics",
    "MarketLevel",
    "MarketPatterns",
    "PerformancePrediction",
    "PricingPattern",
    "RegionType",
    "RegionalIntelligence",
    "RegionalKnowledge",
    "RiskLevel",
    "Season",
    "SeasonalPattern",
    "confidence_score",
    "investment_grade",
    "risk_level",
    "season_of",
]
