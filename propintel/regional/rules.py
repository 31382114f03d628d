"""
Regional scoring rules.

Pure functions over ``MarketCharacteristics``; the engine calls them after
every update so derived fields never drift from the running statistics.
"""

import math
from datetime import datetime
from typing import Optional

from propintel.regional.schemas import (
    BuyerProfile,
    DemographicInsight,
    MarketCharacteristics,
    MarketLevel,
    RegionalKnowledge,
    RiskLevel,
    Season,
)
from propintel.schemas.report import Comparable, InvestmentGrade, PropertyData
from propintel.scoring import clamp_score, mean, score_to_grade

FAST_MARKET_DAYS: float = 30.0
SLOW_MARKET_DAYS: float = 90.0
VERY_SLOW_MARKET_DAYS: float = 120.0
HIGH_VOLATILITY: float = 20.0
STRONG_APPRECIATION: float = 5.0
HIGH_RENTAL_YIELD: float = 5.0
RISK_FACTOR_PENALTY: int = 5


def season_of(moment: datetime) -> Season:
    if 3 <= moment.month <= 5:
        return Season.SPRING
    if 6 <= moment.month <= 8:
        return Season.SUMMER
    if 9 <= moment.month <= 11:
        return Season.AUTUMN
    return Season.WINTER


def activity_level(days_on_market: float) -> MarketLevel:
    """Fast markets are busy, slow ones quiet."""
    if days_on_market < FAST_MARKET_DAYS:
        return MarketLevel.HIGH
    if days_on_market > SLOW_MARKET_DAYS:
        return MarketLevel.LOW
    return MarketLevel.MODERATE


def inventory_and_demand(days_on_market: float) -> tuple[MarketLevel, MarketLevel]:
    if days_on_market < FAST_MARKET_DAYS:
        return MarketLevel.LOW, MarketLevel.HIGH
    if days_on_market > SLOW_MARKET_DAYS:
        return MarketLevel.HIGH, MarketLevel.LOW
    return MarketLevel.MODERATE, MarketLevel.MODERATE


def price_volatility(comparables: list[Comparable]) -> Optional[float]:
    """Coefficient of variation of comparable €/m², in percent."""
    prices = [c.price_per_m2 for c in comparables if c.price_per_m2]
    if len(prices) < 2:
        return None
    avg = sum(prices) / len(prices)
    if avg <= 0:
        return None
    variance = sum((p - avg) ** 2 for p in prices) / len(prices)
    return math.sqrt(variance) / avg * 100.0


def risk_factors(market: MarketCharacteristics) -> list[str]:
    factors = []
    if market.appreciation_samples and market.price_appreciation < 0:
        factors.append("Declining prices")
    if market.time_on_market_samples and market.average_time_on_market > SLOW_MARKET_DAYS:
        factors.append("Slow-selling market")
    if market.price_volatility > HIGH_VOLATILITY:
        factors.append("High price volatility")
    if market.inventory_level == MarketLevel.HIGH and market.demand_level == MarketLevel.LOW:
        factors.append("Oversupply")
    return factors


def opportunities(market: MarketCharacteristics) -> list[str]:
    found = []
    if market.price_appreciation > STRONG_APPRECIATION:
        found.append("Strong price appreciation")
    if market.inventory_level == MarketLevel.LOW and market.demand_level == MarketLevel.HIGH:
        found.append("Demand exceeding supply")
    if market.average_rental_yield > HIGH_RENTAL_YIELD:
        found.append("High rental yield")
    return found


def investment_score(market: MarketCharacteristics) -> int:
    score = 0

    if market.price_appreciation > 5:
        score += 25
    elif market.price_appreciation > 2:
        score += 15
    elif market.price_appreciation > 0:
        score += 10

    if market.average_rental_yield > 6:
        score += 20
    elif market.average_rental_yield > 4:
        score += 15
    elif market.average_rental_yield > 2:
        score += 10

    # Liquidity; an unobserved time on market earns nothing
    if market.time_on_market_samples:
        if market.average_time_on_market < 45:
            score += 20
        elif market.average_time_on_market < 75:
            score += 15
        elif market.average_time_on_market < 120:
            score += 10

    score += {MarketLevel.HIGH: 15, MarketLevel.MODERATE: 10}.get(market.demand_level, 0)
    score += {MarketLevel.LOW: 10, MarketLevel.MODERATE: 5}.get(market.inventory_level, 0)

    score -= len(market.risk_factors) * RISK_FACTOR_PENALTY
    return score


def investment_grade(market: MarketCharacteristics) -> InvestmentGrade:
    return InvestmentGrade(score_to_grade(investment_score(market)))


def risk_level(market: MarketCharacteristics) -> RiskLevel:
    score = 0

    if market.price_volatility > 20:
        score += 2
    elif market.price_volatility > 10:
        score += 1

    if market.average_time_on_market > 120:
        score += 2
    elif market.average_time_on_market > 75:
        score += 1

    if market.price_appreciation < -5:
        score += 3
    elif market.price_appreciation < 0:
        score += 1

    score += len(market.risk_factors)

    if score >= 6:
        return RiskLevel.HIGH
    if score >= 3:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def confidence_score(knowledge: RegionalKnowledge) -> float:
    score = (
        min(50, knowledge.data_points * 2)
        + min(20, len(knowledge.pricing_patterns) * 4)
        + min(15, len(knowledge.seasonal_patterns) * 5)
        + min(15, len(knowledge.development_impacts) * 3)
    )
    return clamp_score(score)


# ── Demographics ────────────────────────────────────────────────────────


def _age_range(bedrooms: int) -> str:
    if bedrooms >= 3:
        return "35-55"
    if bedrooms == 2:
        return "25-45"
    return "20-35"


def _income_level(price: Optional[float]) -> str:
    if not price:
        return "medium"
    if price > 500_000:
        return "high"
    if price > 200_000:
        return "medium"
    return "low"


def _family_status(bedrooms: int) -> str:
    if bedrooms >= 3:
        return "family"
    if bedrooms == 2:
        return "couple"
    return "single"


def _motivations(property: PropertyData) -> list[str]:
    motivations = ["primary_residence"]
    if property.price and property.price < 300_000:
        motivations.append("investment")
    features = {f.lower() for f in property.features}
    if features & {"terrace", "garden"}:
        motivations.append("lifestyle")
    if (property.condition or "").lower() == "needs work":
        motivations.append("renovation_project")
    return motivations


def demographic_snapshot(property: PropertyData) -> DemographicInsight:
    bedrooms = property.bedrooms or 0
    return DemographicInsight(
        buyer_profile=BuyerProfile(
            age_range=_age_range(bedrooms),
            income_level=_income_level(property.price),
            family_status=_family_status(bedrooms),
        ),
        property_types=[property.property_type],
        features=list(property.features),
        price_min=(property.price or 0.0) * 0.8,
        price_max=(property.price or 0.0) * 1.2,
        motivations=_motivations(property),
    )


def comparable_mean_price_per_m2(comparables: list[Comparable]) -> Optional[float]:
    return mean(c.price_per_m2 for c in comparables if c.price_per_m2)
