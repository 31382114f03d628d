"""
Regional Intelligence Engine.

Turns every finished analysis into per-region market knowledge:

    city          market + pricing patterns + seasons + development impacts
    province      market
    neighborhood  market + demographics
    postal code   market + demographics

All running statistics use ``scoring.blend`` with the regional smoothing
window: an exact mean for the first observations, an EMA afterwards.
Predictions are only produced once a region's confidence reaches
``min_prediction_confidence``; below that callers fall back to generic logic.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Optional

import structlog

from propintel.clock import resolve_now
from propintel.config import Settings, get_settings
from propintel.exceptions import InsufficientKnowledgeError
from propintel.identity import property_id, region_id
from propintel.regional import rules
from propintel.regional.schemas import (
    DevelopmentImpactRecord,
    MarketCharacteristics,
    MarketLevel,
    MarketPatterns,
    PerformancePrediction,
    PricingPattern,
    RegionalKnowledge,
    RegionType,
    Season,
    SeasonalPattern,
)
from propintel.schemas.report import (
    AnalysisReport,
    Comparable,
    DevelopmentImpact,
    FutureDevelopment,
    MarketTrend,
    PropertyData,
)
from propintel.scoring import blend, clamp, mean
from propintel.storage import KeyValueStore

logger = structlog.get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

TYPE_PERFORMANCE_BAND: float = 0.10     # ±10% vs regional €/m²
PATTERN_MIN_COMPARABLES: int = 3
PATTERN_DEVIATION: float = 10.0         # percent
PATTERN_INITIAL_CONFIDENCE: float = 60.0
PATTERN_CONFIDENCE_STEP: float = 5.0
SEASON_CONFIDENCE_STEP: float = 2.0
SEASON_TIME_WINDOW: int = 2
DEVELOPMENT_MATCH_KM: float = 0.5
DEVELOPMENT_DEFAULT_KM: float = 1.0
DEVELOPMENT_PRICE_IMPACT: float = 5.0   # percent
DEVELOPMENT_CONFIDENCE_STEP: float = 3.0
DEVELOPMENT_RADIUS_KM: float = 2.0      # developments affecting a prediction
DEFAULT_AREA_M2: float = 100.0
TREND_UP: float = 3.0
TREND_DOWN: float = -2.0
REPORT_TOP_REGIONS: int = 5


class RegionalIntelligence:
    """Per-region market knowledge learned from analyses."""

    def __init__(self, knowledge: KeyValueStore, settings: Optional[Settings] = None):
        self._knowledge = knowledge
        self._settings = settings or get_settings()

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get_knowledge(self, region_type: RegionType, name: str) -> Optional[RegionalKnowledge]:
        record = self._knowledge.get(region_id(region_type.value, name))
        return RegionalKnowledge.model_validate(record) if record else None

    def all_knowledge(self) -> list[RegionalKnowledge]:
        return [RegionalKnowledge.model_validate(r) for r in self._knowledge.values()]

    def get_regional_insights(
        self,
        city: str,
        province: str,
        neighborhood: Optional[str] = None,
        postal_code: Optional[str] = None,
    ) -> Optional[RegionalKnowledge]:
        """Most specific region whose confidence clears its gate."""
        for region_type, name in (
            (RegionType.NEIGHBORHOOD, neighborhood),
            (RegionType.POSTAL_CODE, postal_code),
        ):
            if not name:
                continue
            knowledge = self.get_knowledge(region_type, name)
            if knowledge and knowledge.confidence_score > self._settings.fine_region_confidence:
                return knowledge

        if city:
            knowledge = self.get_knowledge(RegionType.CITY, city)
            if knowledge and knowledge.confidence_score > self._settings.city_region_confidence:
                return knowledge

        return self.get_knowledge(RegionType.PROVINCE, province) if province else None

    # =========================================================================
    # LEARNING
    # =========================================================================

    def learn_from_analysis(
        self,
        property: PropertyData,
        report: AnalysisReport,
        comparables: Optional[list[Comparable]] = None,
        analysis_quality: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> list[RegionalKnowledge]:
        now = resolve_now(now)
        comparables = report.comparables if comparables is None else comparables

        scopes: list[tuple[RegionType, Optional[str]]] = [
            (RegionType.CITY, property.city),
            (RegionType.PROVINCE, property.province),
            (RegionType.NEIGHBORHOOD, property.neighborhood),
            (RegionType.POSTAL_CODE, property.postal_code),
        ]

        updated = []
        with self._knowledge.transaction():
            for region_type, name in scopes:
                if not name:
                    continue
                updated.append(self._learn_scope(
                    region_type, name, property, report, comparables, analysis_quality, now,
                ))

        logger.info(
            "regional_knowledge_updated",
            city=property.city,
            province=property.province,
            regions=len(updated),
        )
        return updated

    def _learn_scope(
        self,
        region_type: RegionType,
        name: str,
        property: PropertyData,
        report: AnalysisReport,
        comparables: list[Comparable],
        analysis_quality: Optional[float],
        now: datetime,
    ) -> RegionalKnowledge:
        key = region_id(region_type.value, name)
        record = self._knowledge.get(key)
        knowledge = (
            RegionalKnowledge.model_validate(record)
            if record
            else RegionalKnowledge(id=key, region_type=region_type, region_name=name, last_updated=now)
        )

        prior_average = knowledge.market.average_price_per_m2 if knowledge.market.price_samples else None
        self._update_market(knowledge.market, property, report, comparables)

        if region_type == RegionType.CITY:
            self._update_pricing_patterns(knowledge, property, comparables)
            self._update_seasonal_pattern(knowledge, property, report, prior_average, now)
            self._update_development_impacts(knowledge, report.future_developments)
        elif region_type in (RegionType.NEIGHBORHOOD, RegionType.POSTAL_CODE):
            knowledge.demographic_insights = [rules.demographic_snapshot(property)]

        if analysis_quality is not None:
            knowledge.average_analysis_quality = blend(
                knowledge.average_analysis_quality,
                analysis_quality,
                knowledge.data_points,
                self._settings.regional_smoothing_window,
            )

        knowledge.data_points += 1
        knowledge.confidence_score = rules.confidence_score(knowledge)
        knowledge.last_updated = now

        self._knowledge.set(key, knowledge.model_dump(mode="json"))
        return knowledge

    def _update_market(
        self,
        market: MarketCharacteristics,
        property: PropertyData,
        report: AnalysisReport,
        comparables: list[Comparable],
    ) -> None:
        window = self._settings.regional_smoothing_window
        price_per_m2 = property.price_per_m2

        if price_per_m2:
            if market.price_samples:
                self._classify_property_type(market, property.property_type, price_per_m2)
            market.average_price_per_m2 = blend(
                market.average_price_per_m2, price_per_m2, market.price_samples, window,
            )
            market.price_samples += 1

        trends = report.market_trends
        if trends is not None:
            if trends.days_on_market and trends.days_on_market > 0:
                market.average_time_on_market = blend(
                    market.average_time_on_market, trends.days_on_market, market.time_on_market_samples, window,
                )
                market.time_on_market_samples += 1
                market.inventory_level, market.demand_level = rules.inventory_and_demand(trends.days_on_market)

            if trends.price_change_6_month is not None:
                annualised = trends.price_change_6_month * 2
                market.price_appreciation = blend(
                    market.price_appreciation, annualised, market.appreciation_samples, window,
                )
                market.appreciation_samples += 1

            if trends.average_monthly_rent and property.price:
                rental_yield = trends.average_monthly_rent * 12 / property.price * 100
                market.average_rental_yield = blend(
                    market.average_rental_yield, rental_yield, market.rental_yield_samples, window,
                )
                market.rental_yield_samples += 1

        volatility = rules.price_volatility(comparables)
        if volatility is not None:
            market.price_volatility = blend(
                market.price_volatility, volatility, market.volatility_samples, window,
            )
            market.volatility_samples += 1

        market.risk_factors = rules.risk_factors(market)
        market.opportunities = rules.opportunities(market)
        market.investment_grade = rules.investment_grade(market)

    @staticmethod
    def _classify_property_type(market: MarketCharacteristics, property_type: str, price_per_m2: float) -> None:
        average = market.average_price_per_m2
        if price_per_m2 > average * (1 + TYPE_PERFORMANCE_BAND):
            if property_type not in market.best_performing_types:
                market.best_performing_types.append(property_type)
            market.worst_performing_types = [t for t in market.worst_performing_types if t != property_type]
        elif price_per_m2 < average * (1 - TYPE_PERFORMANCE_BAND):
            if property_type not in market.worst_performing_types:
                market.worst_performing_types.append(property_type)
            market.best_performing_types = [t for t in market.best_performing_types if t != property_type]

    def _update_pricing_patterns(
        self,
        knowledge: RegionalKnowledge,
        property: PropertyData,
        comparables: list[Comparable],
    ) -> None:
        if len(comparables) < PATTERN_MIN_COMPARABLES or not property.price_per_m2:
            return
        reference = rules.comparable_mean_price_per_m2(comparables)
        if not reference:
            return

        deviation = (property.price_per_m2 - reference) / reference * 100
        if abs(deviation) <= PATTERN_DEVIATION:
            return

        name = "Premium pricing in area" if deviation > 0 else "Discount pricing in area"
        case = property_id(property.address, property.city, property.province)
        existing = next((p for p in knowledge.pricing_patterns if p.pattern == name), None)

        if existing is None:
            knowledge.pricing_patterns.append(PricingPattern(
                pattern=name,
                conditions=[
                    f"Property type: {property.property_type}",
                    f"Size range: {property.total_area_m2}m²",
                    f"Feature set: {', '.join(property.features) or 'basic'}",
                ],
                impact=round(deviation),
                confidence=PATTERN_INITIAL_CONFIDENCE,
                example_cases=[case],
            ))
            logger.debug("pricing_pattern_discovered", region=knowledge.region_name, pattern=name)
            return

        existing.confidence = min(100.0, existing.confidence + PATTERN_CONFIDENCE_STEP)
        if case not in existing.example_cases:
            existing.example_cases.append(case)

    def _update_seasonal_pattern(
        self,
        knowledge: RegionalKnowledge,
        property: PropertyData,
        report: AnalysisReport,
        prior_average: Optional[float],
        now: datetime,
    ) -> None:
        season = rules.season_of(now)
        days = report.market_trends.days_on_market if report.market_trends else None
        adjustment = (
            (property.price_per_m2 - prior_average) / prior_average * 100
            if property.price_per_m2 and prior_average
            else None
        )

        pattern = knowledge.seasonal(season)
        if pattern is None:
            pattern = SeasonalPattern(
                season=season,
                price_adjustment=adjustment or 0.0,
                average_time_on_market=days or 0.0,
                observations=1,
            )
            if days:
                pattern.market_activity = rules.activity_level(days)
            knowledge.seasonal_patterns.append(pattern)
            return

        if days:
            pattern.average_time_on_market = blend(
                pattern.average_time_on_market, days, pattern.observations, SEASON_TIME_WINDOW,
            )
            pattern.market_activity = rules.activity_level(pattern.average_time_on_market)
        if adjustment is not None:
            pattern.price_adjustment = blend(
                pattern.price_adjustment, adjustment, pattern.observations, self._settings.regional_smoothing_window,
            )
        pattern.observations += 1
        pattern.confidence = min(100.0, pattern.confidence + SEASON_CONFIDENCE_STEP)

    @staticmethod
    def _update_development_impacts(
        knowledge: RegionalKnowledge,
        developments: list[FutureDevelopment],
    ) -> None:
        for development in developments:
            distance = development.distance_km or DEVELOPMENT_DEFAULT_KM
            impact = next(
                (
                    d for d in knowledge.development_impacts
                    if d.development_type == development.type
                    and abs(d.distance_km - distance) < DEVELOPMENT_MATCH_KM
                ),
                None,
            )
            if impact is None:
                price_impact = {
                    DevelopmentImpact.POSITIVE: DEVELOPMENT_PRICE_IMPACT,
                    DevelopmentImpact.NEGATIVE: -DEVELOPMENT_PRICE_IMPACT,
                }.get(development.impact, 0.0)
                knowledge.development_impacts.append(DevelopmentImpactRecord(
                    development_type=development.type,
                    distance_km=distance,
                    impact_on_price=price_impact,
                ))
            else:
                impact.confidence = min(100.0, impact.confidence + DEVELOPMENT_CONFIDENCE_STEP)
                impact.observations += 1

    # =========================================================================
    # PREDICTION
    # =========================================================================

    def require_knowledge(self, property: PropertyData) -> RegionalKnowledge:
        """Most specific region confident enough to forecast from."""
        knowledge = self.get_regional_insights(
            property.city, property.province, property.neighborhood, property.postal_code,
        )
        if knowledge is None:
            raise InsufficientKnowledgeError(f"No regional knowledge for {property.city}")
        if knowledge.confidence_score < self._settings.min_prediction_confidence:
            raise InsufficientKnowledgeError(
                f"Knowledge of {knowledge.region_name} is below the prediction threshold",
                region_id=knowledge.id,
                confidence=knowledge.confidence_score,
            )
        if not knowledge.market.price_samples:
            raise InsufficientKnowledgeError(
                f"No price observations for {knowledge.region_name}",
                region_id=knowledge.id,
                confidence=knowledge.confidence_score,
            )
        return knowledge

    def predict_property_performance(
        self,
        property: PropertyData,
        season: Optional[Season] = None,
    ) -> Optional[PerformancePrediction]:
        try:
            knowledge = self.require_knowledge(property)
        except InsufficientKnowledgeError as e:
            logger.debug(
                "regional_prediction_skipped",
                city=property.city,
                region_id=e.region_id or None,
                confidence=e.confidence,
            )
            return None

        market = knowledge.market
        base = market.average_price_per_m2
        if property.property_type in market.best_performing_types:
            base *= 1.1
        elif property.property_type in market.worst_performing_types:
            base *= 0.9

        seasonal = knowledge.seasonal(season) if season else None
        if seasonal is not None:
            base *= 1 + seasonal.price_adjustment / 100

        development = sum(
            d.impact_on_price for d in knowledge.development_impacts
            if d.distance_km <= DEVELOPMENT_RADIUS_KM
        )
        base *= 1 + development / 100

        expected = base * (property.total_area_m2 or DEFAULT_AREA_M2)
        band = expected * market.price_volatility / 100

        if market.price_appreciation > TREND_UP:
            trend = MarketTrend.UP
        elif market.price_appreciation < TREND_DOWN:
            trend = MarketTrend.DOWN
        else:
            trend = MarketTrend.STABLE

        time_on_market = market.average_time_on_market
        if seasonal is not None and seasonal.average_time_on_market:
            time_on_market = seasonal.average_time_on_market

        return PerformancePrediction(
            region_id=knowledge.id,
            expected_low=round(expected - band),
            expected_high=round(expected + band),
            expected_price=round(expected),
            market_trend=trend,
            time_on_market=time_on_market,
            investment_grade=market.investment_grade,
            risk_factors=list(market.risk_factors),
            opportunities=list(market.opportunities),
            confidence=knowledge.confidence_score,
        )

    # =========================================================================
    # CROSS-REGION ANALYSIS
    # =========================================================================

    def detect_market_patterns(self) -> MarketPatterns:
        regions = self.all_knowledge()
        patterns = MarketPatterns()
        opportunity_areas: list[str] = []
        risk_areas: list[str] = []

        rising = [k for k in regions if k.market.price_appreciation > 5]
        falling = [k for k in regions if k.market.price_appreciation < -3]
        if rising:
            patterns.emerging_trends.append(f"High appreciation trend in {len(rising)} regions")
            opportunity_areas.extend(k.region_name for k in rising)
        if falling:
            patterns.market_anomalies.append(f"Price decline detected in {len(falling)} regions")
            risk_areas.extend(k.region_name for k in falling)

        short_supply = [
            k for k in regions
            if k.market.inventory_level == MarketLevel.LOW and k.market.demand_level == MarketLevel.HIGH
        ]
        if short_supply:
            patterns.emerging_trends.append(f"Supply shortage in {len(short_supply)} high-demand regions")
            opportunity_areas.extend(k.region_name for k in short_supply)

        timed = [k for k in regions if k.market.time_on_market_samples]
        fast = [k for k in timed if k.market.average_time_on_market < 30]
        slow = [k for k in timed if k.market.average_time_on_market > rules.VERY_SLOW_MARKET_DAYS]
        if fast:
            patterns.emerging_trends.append(f"Fast-selling markets in {len(fast)} regions")
        if slow:
            patterns.market_anomalies.append(f"Slow-selling markets in {len(slow)} regions")
            risk_areas.extend(k.region_name for k in slow)

        patterns.opportunity_areas = list(dict.fromkeys(opportunity_areas))
        patterns.risk_areas = list(dict.fromkeys(risk_areas))
        return patterns

    def generate_regional_report(self, name: str, region_type: RegionType) -> dict[str, Any]:
        knowledge = self.get_knowledge(region_type, name)
        if knowledge is None:
            return {
                "region": name,
                "type": region_type.value,
                "status": "no_data",
                "message": "Insufficient data for this region",
            }

        market = knowledge.market
        if market.price_appreciation > 2:
            trend = MarketTrend.UP
        elif market.price_appreciation < -2:
            trend = MarketTrend.DOWN
        else:
            trend = MarketTrend.STABLE

        return {
            "region": knowledge.region_name,
            "type": region_type.value,
            "status": "ok",
            "confidence": knowledge.confidence_score,
            "data_points": knowledge.data_points,
            "last_updated": knowledge.last_updated.isoformat(),
            "market_overview": {
                "average_price_per_m2": market.average_price_per_m2,
                "price_appreciation": market.price_appreciation,
                "market_trend": trend.value,
                "time_on_market": market.average_time_on_market,
                "inventory_level": market.inventory_level.value,
                "demand_level": market.demand_level.value,
                "investment_grade": market.investment_grade.value,
            },
            "property_types": {
                "best_performing": list(market.best_performing_types),
                "worst_performing": list(market.worst_performing_types),
            },
            "patterns": {
                "pricing_patterns": [
                    {"pattern": p.pattern, "impact": p.impact, "confidence": p.confidence}
                    for p in knowledge.pricing_patterns
                ],
                "seasonal_trends": [
                    {"season": s.season.value, "adjustment": s.price_adjustment, "activity": s.market_activity.value}
                    for s in knowledge.seasonal_patterns
                ],
                "development_effects": [
                    {"type": d.development_type, "impact": d.impact_on_price, "distance": d.distance_km}
                    for d in knowledge.development_impacts
                ],
            },
            "forecast": {
                "price_forecast": {
                    "six_months": market.price_appreciation / 2,
                    "one_year": market.price_appreciation,
                    "two_years": market.price_appreciation * 1.8,
                },
                "market_activity": {
                    "expected_time_on_market": market.average_time_on_market,
                    "demand_forecast": market.demand_level.value,
                    "inventory_forecast": market.inventory_level.value,
                },
                "investment_outlook": {
                    "grade": market.investment_grade.value,
                    "rental_yield_forecast": market.average_rental_yield,
                    "risk_level": rules.risk_level(market).value,
                },
            },
            "risk_factors": list(market.risk_factors),
            "opportunities": list(market.opportunities),
            "seasonal_insights": [
                {
                    "season": s.season.value,
                    "price_adjustment": s.price_adjustment,
                    "market_activity": s.market_activity.value,
                    "time_on_market": s.average_time_on_market,
                }
                for s in knowledge.seasonal_patterns
            ],
            "development_impact": [
                {
                    "type": d.development_type,
                    "distance": d.distance_km,
                    "price_impact": d.impact_on_price,
                    "timeframe": d.impact_timeframe,
                }
                for d in knowledge.development_impacts
            ],
        }

    def get_stats(self) -> dict[str, Any]:
        regions = self.all_knowledge()
        if not regions:
            return {
                "total_regions": 0,
                "regions_by_type": {},
                "average_confidence": 0.0,
                "most_knowledgeable_regions": [],
                "least_knowledgeable_regions": [],
            }

        ranked = sorted(regions, key=lambda k: k.confidence_score * k.data_points, reverse=True)
        return {
            "total_regions": len(regions),
            "regions_by_type": dict(Counter(k.region_type.value for k in regions)),
            "average_confidence": clamp(mean(k.confidence_score for k in regions), 0.0, 100.0),
            "most_knowledgeable_regions": [k.region_name for k in ranked[:REPORT_TOP_REGIONS]],
            "least_knowledgeable_regions": [k.region_name for k in ranked[-REPORT_TOP_REGIONS:]],
        }
